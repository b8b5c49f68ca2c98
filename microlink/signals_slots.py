"""Signal/slot connections kept in insertion order.

A :class:`SignalSlot` object is the sender. Each connection binds a signal
name to a receiver object and a method; emitting the signal calls
``method(receiver, *args)`` for every matching connection, oldest first.
One signal may feed many slots, and one slot may be fed by many signals.
"""

from __future__ import annotations

from typing import Any, Callable, List, Tuple

SIG_NAME_MAX = 20
"""Storage size of a signal name; names keep at most ``SIG_NAME_MAX - 1`` characters."""

_SIGNAL_PREFIX = "sig_"

Connection = Tuple[str, Any, Callable[..., Any]]


def signal_name(name: str) -> str:
    """Return the canonical signal name for ``name``."""
    return f"{_SIGNAL_PREFIX}{name}"


def _stored_name(signal: str) -> str:
    return signal[: SIG_NAME_MAX - 1]


class SignalSlot:
    """Sender side of signal/slot connections.

    Signal names longer than ``SIG_NAME_MAX - 1`` characters are stored
    truncated; such a connection is then only reached by the truncated name.
    """

    def __init__(self) -> None:
        self._connections: List[Connection] = []

    def _matches(self, entry: Connection, signal: str, receiver: Any, method: Any) -> bool:
        stored, stored_receiver, stored_method = entry
        return stored == signal and stored_receiver is receiver and stored_method == method

    def connect(self, signal: str, receiver: Any, method: Callable[..., Any]) -> bool:
        """Connect ``signal`` to ``method`` on ``receiver``.

        Returns ``False`` if the same connection already exists, ``True``
        if a new one was added.
        """
        if signal is None or receiver is None or method is None:
            raise TypeError("signal, receiver and method must not be None")
        if not callable(method):
            raise TypeError("method must be callable")
        if any(self._matches(entry, signal, receiver, method) for entry in self._connections):
            return False
        self._connections.append((_stored_name(signal), receiver, method))
        return True

    def disconnect(self, signal: str, receiver: Any, method: Callable[..., Any]) -> bool:
        """Remove the first matching connection; return whether one was removed."""
        for position, entry in enumerate(self._connections):
            if self._matches(entry, signal, receiver, method):
                del self._connections[position]
                return True
        return False

    def emit(self, signal: str, *args: Any) -> int:
        """Call every slot connected to ``signal``; return how many were called."""
        called = 0
        for stored, receiver, method in list(self._connections):
            if stored == signal:
                method(receiver, *args)
                called += 1
        return called

    def connections(self) -> List[Connection]:
        """Return the current connections as ``(signal, receiver, method)`` tuples."""
        return list(self._connections)