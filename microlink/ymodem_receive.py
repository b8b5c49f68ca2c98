"""YMODEM receiver driven by repeated calls to :meth:`YmodemReceiver.step`.

The receiver asks for CRC mode with ``'C'``, takes the file-path block
(block 0), then the numbered data blocks, and closes a file with the
``EOT``/``NAK``/``EOT``/``ACK`` exchange. A file-path block whose first
byte is zero ends the whole session with ``YmodemState.FINISH``.
"""

from __future__ import annotations

import enum
import logging
from typing import Callable, Optional

from microlink.ymodem_packet import (
    ACK,
    CAN,
    CRC_C,
    DLY_3S,
    EOT,
    MAX_TRY_AGAIN,
    NAK,
    PacketReceiver,
    TimedReader,
    YmodemOps,
    YmodemState,
)

_log = logging.getLogger(__name__)


def _report(state: YmodemState, message: str) -> None:
    _log.info("ymodem: %s (%s)", message, state.name)


class _Stage(enum.Enum):
    START = enum.auto()
    SEND_C1 = enum.auto()
    RECEIVE_PATH = enum.auto()
    SEND_ACK = enum.auto()
    SEND_C2 = enum.auto()
    RECEIVE_DATA = enum.auto()
    SEND_ANSWER = enum.auto()
    ANSWER_NAK = enum.auto()
    RECEIVE_EOT = enum.auto()
    ANSWER_ACK = enum.auto()


class YmodemReceiver:
    """Receives files over YMODEM through the callbacks of a :class:`YmodemOps`.

    Each received block is copied into ``ops.buffer`` and ``ops.size`` is set
    to its length before the file-path or file-data callback is called. A
    callback that does not return the full block size rejects the block.
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
        self._packet = PacketReceiver(self._reader)
        self._stage = _Stage.START
        self._byte = CRC_C
        self.try_count = 0
        self.packet_num = 0

    def _restart(self) -> None:
        self._stage = _Stage.START

    def _put(self) -> bool:
        return bool(self.ops.write_data(bytes([self._byte & 0xFF])))

    def _load_block(self) -> None:
        size = self._packet.size
        self.ops.buffer[:size] = self._packet.data
        self.ops.size = size

    def _answer_for(self, state: YmodemState) -> Optional[int]:
        """Pick the reply to a data-block outcome; ``None`` leaves it unchanged."""
        if state is YmodemState.FAIL:
            return CAN
        if state is YmodemState.CAN:
            return ACK
        if state is YmodemState.PACKET_CPL:
            self._load_block()
            size = self.ops.size
            if self.ops.on_file_data(self.ops.buffer, size) == size:
                self.packet_num = (self.packet_num + 1) & 0xFF
                self.try_count = 0
                return ACK
            return CAN
        if state in (
            YmodemState.INCORRECT_PACKET_NUMBER,
            YmodemState.INCORRECT_CHECKOUT,
            YmodemState.TIMEOUT,
        ):
            self.try_count += 1
            return CAN if self.try_count >= MAX_TRY_AGAIN else NAK
        if state is YmodemState.DUPLICATE_PACKET_NUMBER:
            self.try_count += 1
            return CAN if self.try_count >= MAX_TRY_AGAIN else ACK
        return None

    def step(self) -> YmodemState:
        """Advance the transfer as far as the link allows and report the result."""
        stage = self._stage
        while True:
            if stage is _Stage.START:
                self.try_count = 0
                self.packet_num = 0
                self._byte = CRC_C
                self._stage = stage = _Stage.SEND_C1

            elif stage is _Stage.SEND_C1:
                if not self._put():
                    return YmodemState.ON_GOING
                self._stage = stage = _Stage.RECEIVE_PATH

            elif stage is _Stage.RECEIVE_PATH:
                state = self._packet.receive(0)
                if state is YmodemState.PACKET_CPL:
                    self._load_block()
                    size = self.ops.size
                    if self.ops.buffer[0] == 0 or size == self.ops.on_file_path(self.ops.buffer, size):
                        self._byte = ACK
                    else:
                        _report(YmodemState.INCORRECT_SIZE, "incorrect data size")
                        self._restart()
                        return YmodemState.INCORRECT_SIZE
                    self._stage = stage = _Stage.SEND_ACK
                elif state is YmodemState.TIMEOUT:
                    self._restart()
                    return YmodemState.TIMEOUT
                elif state in (
                    YmodemState.INCORRECT_CHAR,
                    YmodemState.INCORRECT_NBLK,
                    YmodemState.INCORRECT_CHECKOUT,
                ):
                    return state
                else:
                    return YmodemState.ON_GOING

            elif stage is _Stage.SEND_ACK:
                if not self._put():
                    return YmodemState.ON_GOING
                if self.ops.buffer[0] == 0:
                    self._restart()
                    _report(YmodemState.FINISH, "receive finish")
                    return YmodemState.FINISH
                self.packet_num = (self.packet_num + 1) & 0xFF
                self._byte = CRC_C
                self._stage = stage = _Stage.SEND_C2

            elif stage is _Stage.SEND_C2:
                if not self._put():
                    return YmodemState.ON_GOING
                self._stage = stage = _Stage.RECEIVE_DATA

            elif stage is _Stage.RECEIVE_DATA:
                state = self._packet.receive(self.packet_num)
                if state is YmodemState.ON_GOING:
                    return YmodemState.ON_GOING
                if state in (YmodemState.INCORRECT_CHAR, YmodemState.INCORRECT_NBLK):
                    return state
                if state is YmodemState.EOT:
                    self._byte = NAK
                    self._stage = _Stage.ANSWER_NAK
                    return YmodemState.ON_GOING
                answer = self._answer_for(state)
                if answer is not None:
                    self._byte = answer
                    self._stage = _Stage.SEND_ANSWER
                stage = _Stage.SEND_ANSWER

            elif stage is _Stage.SEND_ANSWER:
                if self._put():
                    if self._byte == CAN:
                        _report(YmodemState.CAN, "try count max")
                        self._restart()
                        return YmodemState.CAN
                    self._stage = _Stage.RECEIVE_DATA
                    return YmodemState.PACKET_CPL
                stage = _Stage.ANSWER_NAK

            elif stage is _Stage.ANSWER_NAK:
                if self._put():
                    self._stage = _Stage.RECEIVE_EOT
                return YmodemState.ON_GOING

            elif stage is _Stage.RECEIVE_EOT:
                state, got = self._reader.read(1, DLY_3S)
                if state is YmodemState.PACKET_CPL:
                    if got[0] != EOT:
                        return YmodemState.INCORRECT_CHAR
                    self._stage = stage = _Stage.ANSWER_ACK
                elif state is YmodemState.TIMEOUT:
                    _report(YmodemState.TIMEOUT, "read timeout")
                    self._restart()
                    return YmodemState.TIMEOUT
                else:
                    return YmodemState.ON_GOING

            else:
                self._byte = ACK
                if self._put():
                    self._restart()
                return YmodemState.ON_GOING