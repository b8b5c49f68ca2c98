"""Message-table dispatch over a peekable byte stream.

A :class:`MessageMap` scans a table of named messages against bytes peeked
from a source. When a message name matches and its arguments are complete,
the message handler is called with an ``argv`` list whose first item is the
message name.

The caller owns the byte queue and reacts to each result of
:meth:`MessageMap.step`:

* ``FsmResult.CPL``: a message was handled; discard everything peeked.
* ``FsmResult.USER_REQ_DROP``: nothing in the table can match; drop one byte.
* ``FsmResult.ON_GOING``: rewind the peek position and call again later.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Any, Callable, Iterable, List, Optional, Sequence, Union

MSG_ARG_LEN = 64
"""Size of the argument buffer; collection stops once it is nearly full."""

_SPACE = 0x20
_CR = 0x0D
_LF = 0x0A

ByteSource = Callable[[int], bytes]
"""Returns exactly the requested number of bytes, or ``b""`` if not available."""


class FsmResult(enum.Enum):
    """Outcome of one step of a state machine."""

    CPL = "cpl"
    ON_GOING = "on_going"
    USER_REQ_DROP = "user_req_drop"
    USER_REQ_TIMEOUT = "user_req_timeout"


class ByteQueue:
    """Bounded FIFO of bytes with a separate, rewindable peek position."""

    def __init__(self, capacity: int) -> None:
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        self.capacity = capacity
        self._buffer = bytearray()
        self._peeked = 0

    def enqueue(self, data: Union[bytes, bytearray, memoryview, int]) -> bool:
        """Append bytes (or one byte given as an int); all or nothing."""
        payload = bytes([data]) if isinstance(data, int) else bytes(data)
        if len(self._buffer) + len(payload) > self.capacity:
            return False
        self._buffer.extend(payload)
        return True

    def dequeue(self) -> Optional[int]:
        """Remove and return the oldest byte, or ``None`` if empty."""
        if not self._buffer:
            return None
        byte = self._buffer.pop(0)
        self._peeked = max(self._peeked - 1, 0)
        return byte

    def peek(self, size: int) -> bytes:
        """Return the next ``size`` unpeeked bytes, or ``b""`` if too few remain."""
        if size <= 0 or len(self._buffer) - self._peeked < size:
            return b""
        chunk = bytes(self._buffer[self._peeked:self._peeked + size])
        self._peeked += size
        return chunk

    def reset_peek(self) -> None:
        """Move the peek position back to the oldest byte."""
        self._peeked = 0

    def get_all_peeked(self) -> bytes:
        """Remove and return every byte that has been peeked."""
        taken = bytes(self._buffer[:self._peeked])
        del self._buffer[:self._peeked]
        self._peeked = 0
        return taken

    def __len__(self) -> int:
        return len(self._buffer)


@dataclass(frozen=True)
class Message:
    """One entry of a message table."""

    name: str
    handler: Callable[[List[Any]], Any]
    description: str = ""


def _check_source(source: ByteSource) -> None:
    if not callable(source):
        raise TypeError("source must be callable")


class StringMatcher:
    """Checks that the source yields exactly the bytes of ``text``."""

    def __init__(self, text: str, source: ByteSource) -> None:
        _check_source(source)
        self.text = text
        self._expected = text.encode("latin-1")
        self._source = source

    def step(self) -> FsmResult:
        for expected in self._expected:
            chunk = self._source(1)
            if not chunk:
                return FsmResult.ON_GOING
            if chunk[0] != expected:
                return FsmResult.USER_REQ_DROP
        return FsmResult.CPL


class ArgumentCollector:
    """Collects the arguments that follow a matched message name.

    In text mode arguments are space separated and ended by CR or LF; they
    are returned as ``str``. In binary mode a count byte is followed by
    records of a little-endian 16-bit length and that many bytes; they are
    returned as ``bytes``. After ``CPL`` the result is in :attr:`argv`.
    """

    def __init__(self, name: str, source: ByteSource, text_mode: bool) -> None:
        _check_source(source)
        self.name = name
        self.text_mode = text_mode
        self._source = source
        self.argv: List[Any] = []

    def step(self) -> FsmResult:
        self.argv = []
        collect = self._collect_text if self.text_mode else self._collect_binary
        return collect()

    def _finish(self, args: Sequence[Any]) -> FsmResult:
        self.argv = [self.name, *args]
        return FsmResult.CPL

    def _collect_text(self) -> FsmResult:
        chunk = self._source(1)
        if not chunk:
            return FsmResult.ON_GOING
        if chunk[0] in (_CR, _LF):
            return self._finish([])
        if chunk[0] != _SPACE:
            return FsmResult.USER_REQ_DROP

        args: List[str] = []
        current = bytearray()
        stored = 0
        while True:
            chunk = self._source(1)
            if not chunk:
                return FsmResult.ON_GOING
            byte = chunk[0]
            stored += 1
            if byte == _SPACE:
                args.append(current.decode("latin-1"))
                current = bytearray()
            else:
                current.append(byte)
            if byte in (_CR, _LF) or stored >= MSG_ARG_LEN - 1:
                if byte != _SPACE:
                    # The last stored byte is replaced by the terminator.
                    current.pop()
                args.append(current.decode("latin-1"))
                return self._finish(args)

    def _collect_binary(self) -> FsmResult:
        chunk = self._source(1)
        if not chunk:
            return FsmResult.ON_GOING
        count = chunk[0]
        if count == 0:
            return self._finish([])

        args: List[bytes] = []
        stored = 0
        while True:
            header = self._source(2)
            if not header:
                return FsmResult.ON_GOING
            length = int.from_bytes(header, "little")
            data = self._source(length)
            if not data:
                return FsmResult.ON_GOING
            args.append(bytes(data))
            stored += length
            if len(args) >= count or stored >= MSG_ARG_LEN - 1:
                return self._finish(args)


class _Stage(enum.Enum):
    START = enum.auto()
    NEXT_MESSAGE = enum.auto()
    MATCH = enum.auto()


class MessageMap:
    """Finds the table entry named by the incoming bytes and calls it.

    Each call to :meth:`step` tries at most one table entry; the caller
    rewinds the source between calls as described in the module docstring.
    After ``CPL``, :attr:`matched`, :attr:`argv` and :attr:`result` describe
    the handled message.
    """

    def __init__(self, table: Iterable[Message], source: ByteSource, text_mode: bool) -> None:
        _check_source(source)
        self.table = tuple(table)
        self.text_mode = text_mode
        self._source = source
        self._stage = _Stage.START
        self._index = 0
        self._request_drop = True
        self._matcher: Optional[StringMatcher] = None
        self.matched: Optional[Message] = None
        self.argv: List[Any] = []
        self.result: Any = None

    def step(self) -> FsmResult:
        if self._stage is _Stage.START:
            self._request_drop = True
            self._index = 0
            self._stage = _Stage.NEXT_MESSAGE

        while True:
            if self._stage is _Stage.NEXT_MESSAGE:
                if self._index == len(self.table):
                    self._stage = _Stage.START
                    if self._request_drop:
                        return FsmResult.USER_REQ_DROP
                    return FsmResult.ON_GOING
                name = self.table[self._index].name
                self._matcher = StringMatcher(name, self._source)
                self._stage = _Stage.MATCH
                return FsmResult.ON_GOING

            assert self._matcher is not None
            outcome = self._matcher.step()
            if outcome is FsmResult.CPL:
                message = self.table[self._index]
                collector = ArgumentCollector(message.name, self._source, self.text_mode)
                outcome = collector.step()
                if outcome is FsmResult.CPL:
                    self.matched = message
                    self.argv = collector.argv
                    self.result = message.handler(collector.argv)
                    self._stage = _Stage.START
                    return FsmResult.CPL
            if outcome is FsmResult.ON_GOING:
                self._request_drop = False
            self._index += 1
            self._stage = _Stage.NEXT_MESSAGE