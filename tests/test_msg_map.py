import pytest

from microlink.msg_map import (
    MSG_ARG_LEN,
    ArgumentCollector,
    ByteQueue,
    FsmResult,
    Message,
    MessageMap,
    StringMatcher,
)


def make_queue(data, capacity=256):
    queue = ByteQueue(capacity)
    assert queue.enqueue(data)
    return queue


def pump(message_map, queue, steps=200):
    outcomes = []
    for _ in range(steps):
        result = message_map.step()
        outcomes.append(result)
        if result is FsmResult.CPL:
            queue.get_all_peeked()
        elif result is FsmResult.USER_REQ_DROP:
            queue.dequeue()
        else:
            queue.reset_peek()
    return outcomes


# ByteQueue

def test_queue_rejects_overflow_whole():
    queue = ByteQueue(4)
    assert queue.enqueue(b"abc")
    assert not queue.enqueue(b"de")
    assert len(queue) == 3


def test_queue_accepts_single_int():
    queue = ByteQueue(4)
    assert queue.enqueue(0x41)
    assert queue.peek(1) == b"A"


def test_queue_bad_capacity():
    with pytest.raises(ValueError):
        ByteQueue(0)


def test_queue_peek_all_or_nothing():
    queue = make_queue(b"ab")
    assert queue.peek(3) == b""
    assert queue.peek(2) == b"ab"
    assert queue.peek(1) == b""
    assert len(queue) == 2


def test_queue_reset_peek_rewinds():
    queue = make_queue(b"xyz")
    assert queue.peek(2) == b"xy"
    queue.reset_peek()
    assert queue.peek(3) == b"xyz"


def test_queue_get_all_peeked_removes_prefix():
    queue = make_queue(b"hello")
    queue.peek(3)
    assert queue.get_all_peeked() == b"hel"
    assert len(queue) == 2
    assert queue.peek(2) == b"lo"


def test_queue_dequeue_order_and_empty():
    queue = make_queue(b"ab")
    assert queue.dequeue() == ord("a")
    assert queue.dequeue() == ord("b")
    assert queue.dequeue() is None
    assert len(queue) == 0


# StringMatcher

def test_string_matcher_complete():
    queue = make_queue(b"help")
    assert StringMatcher("help", queue.peek).step() is FsmResult.CPL


def test_string_matcher_mismatch_drops():
    queue = make_queue(b"hex")
    assert StringMatcher("help", queue.peek).step() is FsmResult.USER_REQ_DROP


def test_string_matcher_incomplete_is_ongoing():
    queue = make_queue(b"he")
    assert StringMatcher("help", queue.peek).step() is FsmResult.ON_GOING


def test_string_matcher_empty_text_completes():
    queue = ByteQueue(4)
    assert StringMatcher("", queue.peek).step() is FsmResult.CPL


def test_string_matcher_requires_callable_source():
    with pytest.raises(TypeError):
        StringMatcher("help", None)


# ArgumentCollector, text mode

@pytest.mark.parametrize(
    "data, expected",
    [
        (b"\r", ["cmd"]),
        (b"\n", ["cmd"]),
        (b" a b\r", ["cmd", "a", "b"]),
        (b" a  b\r", ["cmd", "a", "", "b"]),
        (b" a \r", ["cmd", "a", ""]),
        (b" \r", ["cmd", ""]),
        (b" one\n", ["cmd", "one"]),
    ],
)
def test_text_arguments(data, expected):
    queue = make_queue(data)
    collector = ArgumentCollector("cmd", queue.peek, True)
    assert collector.step() is FsmResult.CPL
    assert collector.argv == expected


def test_text_arguments_other_char_drops():
    queue = make_queue(b"x a\r")
    collector = ArgumentCollector("cmd", queue.peek, True)
    assert collector.step() is FsmResult.USER_REQ_DROP


def test_text_arguments_incomplete():
    queue = make_queue(b" abc")
    collector = ArgumentCollector("cmd", queue.peek, True)
    assert collector.step() is FsmResult.ON_GOING
    assert collector.argv == []


def test_text_arguments_truncated_at_buffer_limit():
    queue = make_queue(b" " + b"x" * 100)
    collector = ArgumentCollector("cmd", queue.peek, True)
    assert collector.step() is FsmResult.CPL
    assert collector.argv[1] == "x" * (MSG_ARG_LEN - 2)
    assert len(collector.argv) == 2


# ArgumentCollector, binary mode

def test_binary_arguments():
    data = bytes([2]) + (3).to_bytes(2, "little") + b"abc" + (1).to_bytes(2, "little") + b"z"
    queue = make_queue(data)
    collector = ArgumentCollector("topic", queue.peek, False)
    assert collector.step() is FsmResult.CPL
    assert collector.argv == ["topic", b"abc", b"z"]


def test_binary_zero_count():
    queue = make_queue(bytes([0]))
    collector = ArgumentCollector("topic", queue.peek, False)
    assert collector.step() is FsmResult.CPL
    assert collector.argv == ["topic"]


def test_binary_missing_data_is_ongoing():
    queue = make_queue(bytes([1]) + (4).to_bytes(2, "little") + b"ab")
    collector = ArgumentCollector("topic", queue.peek, False)
    assert collector.step() is FsmResult.ON_GOING


def test_binary_extra_bytes_left_unread():
    queue = make_queue(bytes([1]) + (2).to_bytes(2, "little") + b"hiREST")
    collector = ArgumentCollector("topic", queue.peek, False)
    assert collector.step() is FsmResult.CPL
    assert collector.argv == ["topic", b"hi"]
    assert queue.get_all_peeked() == bytes([1]) + (2).to_bytes(2, "little") + b"hi"
    assert len(queue) == len(b"REST")


# MessageMap

def make_table(calls):
    def recorder(tag):
        def handler(argv):
            calls.append((tag, list(argv)))
            return tag
        return handler

    return [
        Message("help", recorder("help"), "shell help"),
        Message("hello", recorder("hello"), "greeting"),
    ]


def test_map_dispatches_second_entry_after_prefix_mismatch():
    calls = []
    queue = make_queue(b"hello world\r")
    message_map = MessageMap(make_table(calls), queue.peek, True)
    outcomes = pump(message_map, queue)
    assert calls == [("hello", ["hello", "world"])]
    assert outcomes.count(FsmResult.CPL) == 1
    assert message_map.result == "hello"
    assert message_map.matched.name == "hello"
    assert len(queue) == 0


def test_map_skips_leading_garbage():
    calls = []
    queue = make_queue(b"zzhelp\r")
    message_map = MessageMap(make_table(calls), queue.peek, True)
    outcomes = pump(message_map, queue)
    assert calls == [("help", ["help"])]
    assert outcomes.count(FsmResult.USER_REQ_DROP) == 2
    assert len(queue) == 0


def test_map_waits_for_incomplete_input():
    calls = []
    queue = make_queue(b"hel")
    message_map = MessageMap(make_table(calls), queue.peek, True)
    outcomes = pump(message_map, queue, steps=20)
    assert calls == []
    assert FsmResult.USER_REQ_DROP not in outcomes
    assert len(queue) == 3
    assert queue.enqueue(b"p\r")
    pump(message_map, queue)
    assert calls == [("help", ["help"])]


def test_map_unknown_suffix_is_dropped():
    calls = []
    queue = make_queue(b"helpx\r")
    message_map = MessageMap(make_table(calls), queue.peek, True)
    pump(message_map, queue)
    assert calls == []
    assert len(queue) == 0


def test_map_two_commands_in_sequence():
    calls = []
    queue = make_queue(b"help\rhello a\r")
    message_map = MessageMap(make_table(calls), queue.peek, True)
    pump(message_map, queue)
    assert calls == [("help", ["help"]), ("hello", ["hello", "a"])]


def test_map_empty_table_drops():
    queue = make_queue(b"x")
    message_map = MessageMap([], queue.peek, True)
    assert message_map.step() is FsmResult.USER_REQ_DROP


def test_map_binary_mode():
    calls = []
    table = [Message("temp", lambda argv: calls.append(argv))]
    queue = make_queue(b"temp" + bytes([1]) + (2).to_bytes(2, "little") + b"\x10\x20")
    message_map = MessageMap(table, queue.peek, False)
    pump(message_map, queue)
    assert calls == [["temp", b"\x10\x20"]]
    assert message_map.argv == ["temp", b"\x10\x20"]


def test_map_requires_callable_source():
    with pytest.raises(TypeError):
        MessageMap([], b"not callable", True)