"""Pollable state machines for byte-stream message dispatch, signals and slots, and YMODEM transfer."""

__version__ = "0.1.0"
__all__ = ["msg_map", "signals_slots", "ymodem_packet", "ymodem_receive", "ymodem_send"]