"""YMODEM sender driven by repeated calls to :meth:`YmodemSender.step`.

The sender waits for the receiver's ``'C'``, sends the file-path block
(block 0), then the numbered data blocks, and closes a file with the
``EOT``/``NAK``/``EOT``/``ACK`` exchange. When the file-path callback
supplies nothing, an empty block 0 is sent; once it is acknowledged the
session ends with ``YmodemState.FINISH``.
"""

from __future__ import annotations

import enum
import logging
from typing import Callable, Optional

from microlink.ymodem_packet import (
    ACK,
    CAN,
    CRC_C,
    CTRLZ,
    DATA_1K_SIZE,
    DATA_SIZE,
    DLY_10S,
    EOT,
    MAX_TRY_AGAIN,
    NAK,
    PacketSender,
    TimedReader,
    YmodemOps,
    YmodemState,
)

_log = logging.getLogger(__name__)


def _report(state: YmodemState, message: str) -> None:
    _log.info("ymodem: %s (%s)", message, state.name)


class _Stage(enum.Enum):
    START = enum.auto()
    RECEIVE_C1 = enum.auto()
    SEND_PATH = enum.auto()
    RECEIVE_ACK1 = enum.auto()
    RECEIVE_C2 = enum.auto()
    SEND_DATA = enum.auto()
    RECEIVE_ANSWER = enum.auto()
    SEND_EOT1 = enum.auto()
    RECEIVE_NAK = enum.auto()
    SEND_EOT2 = enum.auto()
    RECEIVE_ACK2 = enum.auto()


class YmodemSender:
    """Sends files over YMODEM through the callbacks of a :class:`YmodemOps`.

    The file-path callback is given ``ops.buffer`` and 128; it fills the
    block and returns 128, or returns 0 to end the session. The file-data
    callback is given ``ops.buffer`` and 1024 and returns how many bytes it
    filled; 0 ends the current file. Short blocks are padded with ``CTRLZ``.
    """

    def __init__(self, ops: YmodemOps, clock: Optional[Callable[[], int]] = None) -> None:
        if not isinstance(ops, YmodemOps):
            raise TypeError("ops must be a YmodemOps instance")
        self.ops = ops
        self._clock = clock
        self.reset()

    def reset(self) -> None:
        """Abandon any transfer in progress and start a new session."""
        self._reader = TimedReader(self.ops.read_data, self._clock)
        self._packet = PacketSender(self.ops.write_data)
        self._stage = _Stage.START
        self.try_count = 0
        self.packet_num = 0

    def _restart(self) -> None:
        self._stage = _Stage.START

    def _put(self, byte: int) -> bool:
        return bool(self.ops.write_data(bytes([byte & 0xFF])))

    def _send_block(self, packet_num: int) -> YmodemState:
        block = bytes(self.ops.buffer[: self.ops.size])
        return self._packet.send(block, packet_num)

    def _prepare_block(self, count: int) -> bool:
        """Pad the block of ``count`` bytes to a packet size; False if too large."""
        if count < 0 or count > DATA_1K_SIZE:
            _report(YmodemState.INCORRECT_SIZE, "incorrect size")
            self._restart()
            return False
        size = DATA_SIZE if count <= DATA_SIZE else DATA_1K_SIZE
        self.ops.size = size
        self.ops.buffer[count:size] = bytes([CTRLZ]) * (size - count)
        return True

    def step(self) -> YmodemState:
        """Advance the transfer as far as the link allows and report the result."""
        while True:
            stage = self._stage

            if stage is _Stage.START:
                self.ops.size = DATA_SIZE
                self.try_count = 0
                self.packet_num = 0
                self.ops.buffer[:DATA_SIZE] = bytes(DATA_SIZE)
                self._stage = _Stage.RECEIVE_C1

            elif stage is _Stage.RECEIVE_C1:
                state, got = self._reader.read(1, DLY_10S)
                if state is not YmodemState.PACKET_CPL:
                    return YmodemState.ON_GOING
                if got[0] != CRC_C:
                    return YmodemState.INCORRECT_CHAR
                count = self.ops.on_file_path(self.ops.buffer, DATA_SIZE)
                if count == 0:
                    self.ops.buffer[:DATA_SIZE] = bytes(DATA_SIZE)
                elif count != DATA_SIZE:
                    _report(YmodemState.INCORRECT_SIZE, "incorrect size")
                    self._restart()
                    return YmodemState.INCORRECT_SIZE
                self._stage = _Stage.SEND_PATH

            elif stage is _Stage.SEND_PATH:
                if self._send_block(0) is not YmodemState.PACKET_CPL:
                    return YmodemState.ON_GOING
                self._stage = _Stage.RECEIVE_ACK1

            elif stage is _Stage.RECEIVE_ACK1:
                state, got = self._reader.read(1, DLY_10S)
                if state is YmodemState.PACKET_CPL:
                    if got[0] != ACK:
                        return YmodemState.INCORRECT_CHAR
                    if self.ops.buffer[0] == 0:
                        self._restart()
                        _report(YmodemState.FINISH, "send finish")
                        return YmodemState.FINISH
                    self.packet_num = (self.packet_num + 1) & 0xFF
                    self._stage = _Stage.RECEIVE_C2
                elif state is YmodemState.TIMEOUT:
                    _report(YmodemState.TIMEOUT, "read timeout")
                    self._restart()
                    return YmodemState.TIMEOUT
                else:
                    return YmodemState.ON_GOING

            elif stage is _Stage.RECEIVE_C2:
                state, got = self._reader.read(1, DLY_10S)
                if state is YmodemState.PACKET_CPL:
                    if got[0] != CRC_C:
                        return YmodemState.INCORRECT_CHAR
                    count = self.ops.on_file_data(self.ops.buffer, DATA_1K_SIZE)
                    if not self._prepare_block(count):
                        return YmodemState.INCORRECT_SIZE
                    self._stage = _Stage.SEND_DATA
                elif state is YmodemState.TIMEOUT:
                    _report(YmodemState.TIMEOUT, "read timeout")
                    self._restart()
                    return YmodemState.TIMEOUT
                else:
                    return YmodemState.ON_GOING

            elif stage is _Stage.SEND_DATA:
                if self._send_block(self.packet_num) is not YmodemState.PACKET_CPL:
                    return YmodemState.ON_GOING
                self._stage = _Stage.RECEIVE_ANSWER

            elif stage is _Stage.RECEIVE_ANSWER:
                state, got = self._reader.read(1, DLY_10S)
                if state is YmodemState.PACKET_CPL:
                    answer = got[0]
                    if answer == ACK:
                        self.try_count = 0
                        self.packet_num = (self.packet_num + 1) & 0xFF
                        count = self.ops.on_file_data(self.ops.buffer, DATA_1K_SIZE)
                        if count == 0:
                            self._stage = _Stage.SEND_EOT1
                        elif self._prepare_block(count):
                            self._stage = _Stage.SEND_DATA
                        else:
                            return YmodemState.INCORRECT_SIZE
                    elif answer == NAK:
                        self.try_count += 1
                        if self.try_count > MAX_TRY_AGAIN:
                            _report(YmodemState.FAIL, "try count max")
                            self._restart()
                            return YmodemState.FAIL
                        self._stage = _Stage.SEND_DATA
                    elif answer == CAN:
                        _report(YmodemState.CAN, "received CAN")
                        self._restart()
                        return YmodemState.CAN
                    else:
                        return YmodemState.INCORRECT_CHAR
                elif state is YmodemState.TIMEOUT:
                    _report(YmodemState.TIMEOUT, "read timeout")
                    self._restart()
                    return YmodemState.TIMEOUT
                return YmodemState.ON_GOING

            elif stage is _Stage.SEND_EOT1:
                if self._put(EOT):
                    self._stage = _Stage.RECEIVE_NAK
                return YmodemState.ON_GOING

            elif stage is _Stage.RECEIVE_NAK:
                state, got = self._reader.read(1, DLY_10S)
                if state is YmodemState.PACKET_CPL:
                    if got[0] != NAK:
                        return YmodemState.INCORRECT_CHAR
                    self._stage = _Stage.SEND_EOT2
                elif state is YmodemState.TIMEOUT:
                    _report(YmodemState.TIMEOUT, "read timeout")
                    self._restart()
                    return YmodemState.TIMEOUT
                return YmodemState.ON_GOING

            elif stage is _Stage.SEND_EOT2:
                if self._put(EOT):
                    self._stage = _Stage.RECEIVE_ACK2
                return YmodemState.ON_GOING

            else:
                state, got = self._reader.read(1, DLY_10S)
                if state is YmodemState.PACKET_CPL:
                    if got[0] != ACK:
                        return YmodemState.INCORRECT_CHAR
                    self._restart()
                elif state is YmodemState.TIMEOUT:
                    _report(YmodemState.TIMEOUT, "read timeout")
                    self._restart()
                    return YmodemState.TIMEOUT
                return YmodemState.ON_GOING