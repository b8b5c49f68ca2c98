"""YMODEM building blocks: CRC, timed reads and single-packet transfer.

The state machines here are driven by repeated calls. Each call does as
much work as the data at hand allows and reports a :class:`YmodemState`;
``ON_GOING`` means "call again later".

Wire format of a packet::

    SOH|STX, block, 0xFF ^ block, 128|1024 data bytes, CRC high, CRC low
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from typing import Callable, Optional, Tuple

SOH = 0x01
"""Start of a 128-byte data packet."""
STX = 0x02
"""Start of a 1024-byte data packet."""
EOT = 0x04
"""End of transmission."""
ACK = 0x06
"""Positive acknowledgment."""
NAK = 0x15
"""Negative acknowledgment."""
CAN = 0x18
"""Cancel transfer."""
CRC_C = 0x43
"""ASCII 'C': request for CRC mode."""
CTRLZ = 0x1A
"""Padding byte for the unused tail of a data packet."""

DLY_1S = 1000
DLY_3S = 3 * DLY_1S
DLY_10S = 10 * DLY_1S

MAX_TRY_AGAIN = 10
"""Number of retries before a transfer is cancelled."""

DATA_SIZE = 128
DATA_1K_SIZE = 1024

_log = logging.getLogger(__name__)


def crc16(data: bytes) -> int:
    """CRC-16/XMODEM (polynomial 0x1021, initial value 0) of ``data``."""
    crc = 0
    for byte in bytes(data):
        crc ^= byte << 8
        for _ in range(8):
            if crc & 0x8000:
                crc = ((crc << 1) ^ 0x1021) & 0xFFFF
            else:
                crc = (crc << 1) & 0xFFFF
    return crc


class YmodemState(enum.IntEnum):
    """Result of one step of a YMODEM state machine."""

    FINISH = 0
    ON_GOING = 1
    PACKET_CPL = 2
    EOT = 3
    CAN = 4
    TIMEOUT = 5
    INCORRECT_CHAR = 6
    INCORRECT_NBLK = 7
    INCORRECT_PACKET_NUMBER = 8
    DUPLICATE_PACKET_NUMBER = 9
    INCORRECT_CHECKOUT = 10
    INCORRECT_SIZE = 11
    FAIL = 12


def _report(state: YmodemState, message: str) -> None:
    _log.info("ymodem: %s (%s)", message, state.name)


@dataclass
class YmodemOps:
    """Callbacks and the shared data buffer of a YMODEM session.

    ``read(size)`` returns up to ``size`` bytes; ``write(data)`` returns how
    many bytes were written. ``file_path(buffer, size)`` and
    ``file_data(buffer, size)`` either consume the first ``size`` bytes of
    ``buffer`` (receiving) or fill it (sending); both return a byte count.
    """

    read: Callable[[int], bytes]
    write: Callable[[bytes], int]
    file_path: Callable[[bytearray, int], int]
    file_data: Callable[[bytearray, int], int]
    buffer: bytearray = field(default_factory=lambda: bytearray(DATA_1K_SIZE))
    size: int = DATA_SIZE

    def __post_init__(self) -> None:
        for name in ("read", "write", "file_path", "file_data"):
            if not callable(getattr(self, name)):
                raise TypeError(f"{name} must be callable")
        if not isinstance(self.buffer, bytearray):
            self.buffer = bytearray(self.buffer)
        if len(self.buffer) < DATA_1K_SIZE:
            raise ValueError(f"buffer must hold at least {DATA_1K_SIZE} bytes")

    def on_file_path(self, buffer: bytearray, size: int) -> int:
        """Hand the file-path block to the user callback."""
        return int(self.file_path(buffer, size))

    def on_file_data(self, buffer: bytearray, size: int) -> int:
        """Hand a file-data block to the user callback."""
        return int(self.file_data(buffer, size))

    def read_data(self, size: int) -> bytes:
        """Read at most ``size`` bytes from the link."""
        return bytes(self.read(size) or b"")[:size]

    def write_data(self, data: bytes) -> int:
        """Write ``data`` to the link and return the count written."""
        return int(self.write(bytes(data)) or 0)


class TickClock:
    """Millisecond clock that advances by one on every reading."""

    def __init__(self) -> None:
        self._now = 0

    def __call__(self) -> int:
        self._now += 1
        return self._now


class TimedReader:
    """Collects an exact number of bytes, giving up after a timeout.

    :meth:`read` returns ``(state, data)``: ``PACKET_CPL`` with all the bytes,
    ``TIMEOUT`` (bytes collected so far are discarded), or ``ON_GOING``.
    ``size`` and ``timeout`` take effect when a new read starts.
    """

    def __init__(self, read: Callable[[int], bytes], clock: Optional[Callable[[], int]] = None) -> None:
        if not callable(read):
            raise TypeError("read must be callable")
        self._read = read
        self._clock = clock if clock is not None else TickClock()
        self._active = False
        self._collected = bytearray()
        self._remain = 0
        self._deadline = 0

    def read(self, size: int, timeout: int) -> Tuple[YmodemState, bytes]:
        if not self._active:
            if size < 0:
                raise ValueError("size must not be negative")
            self._collected = bytearray()
            self._remain = size
            self._deadline = timeout + self._clock()
            self._active = True

        got = bytes(self._read(self._remain) or b"")[: self._remain]
        if len(got) == self._remain:
            data = bytes(self._collected) + got
            self._active = False
            return YmodemState.PACKET_CPL, data
        self._collected += got
        self._remain -= len(got)

        if self._clock() >= self._deadline:
            self._active = False
            return YmodemState.TIMEOUT, b""
        return YmodemState.ON_GOING, b""


class _RxStage(enum.Enum):
    HEAD = enum.auto()
    BLOCK = enum.auto()
    NBLOCK = enum.auto()
    DATA = enum.auto()
    CHECK_HIGH = enum.auto()
    CHECK_LOW = enum.auto()
    VERIFY = enum.auto()


class PacketReceiver:
    """Receives one YMODEM packet through a :class:`TimedReader`.

    After ``PACKET_CPL`` the payload is in :attr:`data`, its length in
    :attr:`size` and the block number in :attr:`block`.
    """

    def __init__(self, reader: TimedReader) -> None:
        self._reader = reader
        self._stage = _RxStage.HEAD
        self.head = 0
        self.block = 0
        self._nblock = 0
        self._crc = 0
        self._check_high = 0
        self.size = DATA_SIZE
        self.data = b""

    def _restart(self) -> None:
        self._stage = _RxStage.HEAD

    def _read(self, size: int, timeout: int) -> Tuple[YmodemState, bytes]:
        state, data = self._reader.read(size, timeout)
        if state is YmodemState.TIMEOUT:
            self._restart()
        return state, data

    def receive(self, expected: int) -> YmodemState:
        """Advance reception of the packet numbered ``expected``."""
        expected &= 0xFF
        while True:
            stage = self._stage
            if stage is _RxStage.HEAD:
                state, got = self._read(1, DLY_3S)
                if state is not YmodemState.PACKET_CPL:
                    return state
                self.head = got[0]
                if self.head == EOT:
                    self._restart()
                    return YmodemState.EOT
                if self.head == CAN:
                    self._restart()
                    return YmodemState.CAN
                if self.head == SOH:
                    self.size = DATA_SIZE
                elif self.head == STX:
                    self.size = DATA_1K_SIZE
                else:
                    return YmodemState.INCORRECT_CHAR
                self._stage = _RxStage.BLOCK
            elif stage is _RxStage.BLOCK:
                state, got = self._read(1, DLY_1S)
                if state is not YmodemState.PACKET_CPL:
                    return state
                self.block = got[0]
                self._stage = _RxStage.NBLOCK
            elif stage is _RxStage.NBLOCK:
                state, got = self._read(1, DLY_1S)
                if state is not YmodemState.PACKET_CPL:
                    return state
                self._nblock = got[0]
                if self.block ^ self._nblock != 0xFF:
                    self._restart()
                    return YmodemState.INCORRECT_NBLK
                self._stage = _RxStage.DATA
            elif stage is _RxStage.DATA:
                state, got = self._read(self.size, DLY_10S)
                if state is not YmodemState.PACKET_CPL:
                    return state
                self.data = got
                self._crc = crc16(got)
                self._stage = _RxStage.CHECK_HIGH
            elif stage is _RxStage.CHECK_HIGH:
                state, got = self._read(1, DLY_1S)
                if state is not YmodemState.PACKET_CPL:
                    return state
                self._check_high = got[0]
                self._stage = _RxStage.CHECK_LOW
            elif stage is _RxStage.CHECK_LOW:
                state, got = self._read(1, DLY_1S)
                if state is not YmodemState.PACKET_CPL:
                    return state
                if self._crc != (self._check_high << 8) + got[0]:
                    _report(YmodemState.PACKET_CPL, "incorrect checkout")
                    self._restart()
                    return YmodemState.INCORRECT_CHECKOUT
                self._stage = _RxStage.VERIFY
            else:
                self._restart()
                if expected > 0 and self.block == expected - 1:
                    _report(YmodemState.DUPLICATE_PACKET_NUMBER, "duplicate packet number")
                    return YmodemState.DUPLICATE_PACKET_NUMBER
                if self.block == expected:
                    self._crc = 0
                    return YmodemState.PACKET_CPL
                _report(YmodemState.INCORRECT_PACKET_NUMBER, "incorrect packet number")
                return YmodemState.INCORRECT_PACKET_NUMBER


class _TxStage(enum.Enum):
    START = enum.auto()
    HEAD = enum.auto()
    BLOCK = enum.auto()
    NBLOCK = enum.auto()
    DATA = enum.auto()
    CHECK_HIGH = enum.auto()
    CHECK_LOW = enum.auto()


class PacketSender:
    """Sends one YMODEM packet, resuming wherever a write fell short.

    The payload is taken when a new packet starts and must be exactly
    128 or 1024 bytes long.
    """

    def __init__(self, write: Callable[[bytes], int]) -> None:
        if not callable(write):
            raise TypeError("write must be callable")
        self._write = write
        self._stage = _TxStage.START
        self._data = b""
        self._head = SOH
        self._crc = 0
        self._written = 0

    def _put(self, byte: int) -> bool:
        return bool(self._write(bytes([byte & 0xFF])))

    def send(self, data: bytes, packet_num: int) -> YmodemState:
        """Advance sending ``data`` as packet ``packet_num``."""
        while True:
            stage = self._stage
            if stage is _TxStage.START:
                payload = bytes(data)
                if len(payload) not in (DATA_SIZE, DATA_1K_SIZE):
                    raise ValueError(f"packet data must be {DATA_SIZE} or {DATA_1K_SIZE} bytes")
                self._data = payload
                self._head = SOH if len(payload) <= DATA_SIZE else STX
                self._crc = crc16(payload)
                self._written = 0
                self._stage = _TxStage.HEAD
            elif stage is _TxStage.HEAD:
                if not self._put(self._head):
                    return YmodemState.ON_GOING
                self._stage = _TxStage.BLOCK
            elif stage is _TxStage.BLOCK:
                if not self._put(packet_num):
                    return YmodemState.ON_GOING
                self._stage = _TxStage.NBLOCK
            elif stage is _TxStage.NBLOCK:
                if not self._put(~packet_num):
                    return YmodemState.ON_GOING
                self._stage = _TxStage.DATA
            elif stage is _TxStage.DATA:
                self._written += int(self._write(self._data[self._written:]) or 0)
                if self._written < len(self._data):
                    return YmodemState.ON_GOING
                self._stage = _TxStage.CHECK_HIGH
            elif stage is _TxStage.CHECK_HIGH:
                if not self._put(self._crc >> 8):
                    return YmodemState.ON_GOING
                self._stage = _TxStage.CHECK_LOW
            else:
                if not self._put(self._crc):
                    return YmodemState.ON_GOING
                self._stage = _TxStage.START
                return YmodemState.PACKET_CPL