# microlink

Small, pollable building blocks for talking over a byte stream such as a
serial line. Every protocol engine is a state machine. You call it
repeatedly from your main loop, and each call does as much work as the
available data allows without blocking. All I/O goes through plain
callables that you supply.

## Contents

- `microlink.msg_map` provides the following:
  - `ByteQueue`: a bounded byte FIFO with a rewindable peek position
    (`enqueue`, `dequeue`, `peek`, `reset_peek`, `get_all_peeked`).
  - `Message`: one table entry, holding `name`, `handler` and
    `description`.
  - `MessageMap`: matches peeked bytes against a table of `Message`
    entries, collects the arguments, and calls the handler with an `argv`
    list whose first item is the message name.
  - `StringMatcher` and `ArgumentCollector`: the two stages that
    `MessageMap` uses.
  - `FsmResult`: the result of each step.
- `microlink.signals_slots` provides `SignalSlot`, a list of connections
  kept in insertion order. It offers `connect`, `disconnect`, `emit` and
  `connections`. `signal_name` builds the conventional `sig_<name>`
  signal names.
- `microlink.ymodem_packet` provides the YMODEM building blocks:
  - `crc16`: CRC-16/XMODEM.
  - `YmodemState`: the result of each step.
  - `YmodemOps`: the callbacks plus the shared 1024-byte buffer.
  - `TickClock`: the default clock.
  - `TimedReader`: exact-size reads that give up after a timeout.
  - `PacketReceiver` and `PacketSender`: move a single packet.
- `microlink.ymodem_receive` provides `YmodemReceiver`, and
  `microlink.ymodem_send` provides `YmodemSender`. Both are full YMODEM
  sessions driven by `step()`.

## Installation

```
pip install .
```

To run the tests:

```
pip install .[test]
pytest
```

## Message dispatch

A `MessageMap` reads through a source callable. The callable returns
exactly the number of bytes requested, or `b""` if that many are not yet
available. `ByteQueue.peek` is such a source. After each step the caller
does one of three things with the queue:

```python
from microlink.msg_map import ByteQueue, FsmResult, Message, MessageMap

queue = ByteQueue(64)
queue.enqueue(b"led on off\r")

def led(argv):
    print(argv)          # ['led', 'on', 'off']
    return 0

table = [Message("led", led, "switch the LED")]
dispatcher = MessageMap(table, queue.peek, text_mode=True)

for _ in range(10):
    result = dispatcher.step()
    if result is FsmResult.CPL:
        queue.get_all_peeked()      # message handled: discard its bytes
    elif result is FsmResult.USER_REQ_DROP:
        queue.dequeue()             # nothing can match: drop one byte
    else:
        queue.reset_peek()          # rewind and try again later
```

Text mode reads arguments that are separated by spaces and ended by CR
or LF, and returns them as `str`. In binary mode (`text_mode=False`), the
name is followed by a count byte. After it come records, each made of a
little-endian 16-bit length and then that many bytes. These arguments are
returned as `bytes`.

After `CPL`, `dispatcher.matched`, `dispatcher.argv` and
`dispatcher.result` describe the handled message.

## Signals and slots

```python
from microlink.signals_slots import SignalSlot, signal_name

bus = SignalSlot()
received = []
bus.connect(signal_name("data"), received, list.append)   # True
bus.connect(signal_name("data"), received, list.append)   # False: duplicate
bus.emit(signal_name("data"), b"payload")                  # calls list.append(received, b"payload")
```

Signal names are stored with at most 19 characters. `disconnect` removes
the first matching connection and reports whether it found one.

## YMODEM

The CRC check:

```python
from microlink.ymodem_packet import crc16

crc16(b"123456789")  # 0x31C3
```

A session needs a `YmodemOps` object:

- `read(size)` returns up to `size` bytes.
- `write(data)` returns the number of bytes written.
- `file_path(buffer, size)` and `file_data(buffer, size)` handle the
  blocks.

When receiving, a block is accepted only if its callback returns the full
`size`. A file-path block that starts with a zero byte ends the session
with `YmodemState.FINISH`.

When sending, the file-path callback fills the 128-byte block and returns
128, or returns 0 to send the empty block that ends the session. The
file-data callback fills up to 1024 bytes and returns the count. A return
of 0 ends the current file. Short blocks are padded with `0x1A`.

```python
import time

from microlink.ymodem_packet import YmodemOps, YmodemState
from microlink.ymodem_receive import YmodemReceiver

chunks = []

def on_path(buffer, size):
    print("file:", bytes(buffer[:size]).split(b"\0")[0])
    return size

def on_data(buffer, size):
    chunks.append(bytes(buffer[:size]))
    return size

ops = YmodemOps(read=port_read, write=port_write, file_path=on_path, file_data=on_data)
receiver = YmodemReceiver(ops, clock=lambda: int(time.monotonic() * 1000))

while receiver.step() is not YmodemState.FINISH:
    pass
```

Timeouts are given in clock units, treated as milliseconds: 1, 3 or 10
seconds, depending on the stage. If you pass no clock, a `TickClock` is
used. It advances by one on every reading, so timeouts count calls rather
than real time.

## What this package does not do

- It does not open serial ports or other devices. You supply every byte
  of I/O through callables.
- It has no interactive command shell, line editor or command history.
  `MessageMap` dispatches messages that are already in a queue. It does
  not echo input or manage a prompt.
- It installs no command-line program.