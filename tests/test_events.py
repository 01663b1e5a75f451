import curses
import os
import threading

import pytest

from todoevents import TICK, CursesKeyBackend, ErrorEvent, EventSource, KeyEvent


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


class ScriptedBackend:
    """Each entry is (seconds spent waiting, key or None)."""

    def __init__(self, clock, script):
        self.clock = clock
        self.script = list(script)
        self.timeouts = []

    def poll(self, timeout):
        self.timeouts.append(timeout)
        if not self.script:
            self.clock.now += timeout + 1e-9
            return None
        spent, key = self.script.pop(0)
        self.clock.now += min(spent, timeout)
        return key


def drain(source):
    items = []
    while not source.events.empty():
        items.append(source.events.get_nowait())
    return items


def test_idle_poll_yields_one_tick_per_interval():
    clock = FakeClock()
    backend = ScriptedBackend(clock, [])
    source = EventSource(backend, tick_interval=0.2, clock=clock)
    for _ in range(3):
        source.step()
    assert drain(source) == [TICK, TICK, TICK]
    assert backend.timeouts == [pytest.approx(0.2)] * 3


def test_key_is_forwarded_before_the_tick_is_due():
    clock = FakeClock()
    backend = ScriptedBackend(clock, [(0.05, "x")])
    source = EventSource(backend, tick_interval=0.2, clock=clock)
    source.step()
    assert drain(source) == [KeyEvent("x")]
    # the next poll only waits for what is left of the interval
    source.step()
    assert backend.timeouts[1] == pytest.approx(0.15)
    assert drain(source) == [TICK]


def test_key_and_tick_in_detection_order():
    clock = FakeClock()
    backend = ScriptedBackend(clock, [(0.2, "q")])
    source = EventSource(backend, tick_interval=0.2, clock=clock)
    source.step()
    assert drain(source) == [KeyEvent("q"), TICK]


def test_overdue_tick_polls_with_zero_timeout():
    clock = FakeClock()
    backend = ScriptedBackend(clock, [])
    source = EventSource(backend, tick_interval=0.2, clock=clock)
    clock.now = 1.0
    source.step()
    assert backend.timeouts == [0.0]
    assert drain(source) == [TICK]


class QueueBackend:
    def __init__(self, keys):
        self.keys = list(keys)
        self.lock = threading.Lock()

    def poll(self, timeout):
        with self.lock:
            if self.keys:
                return self.keys.pop(0)
        threading.Event().wait(min(timeout, 0.01))
        return None


def test_thread_delivers_keys_in_order_and_stops():
    source = EventSource(QueueBackend(["a", "b", "c"]), tick_interval=0.05)
    source.start()
    keys = []
    while len(keys) < 3:
        event = source.get()
        if isinstance(event, KeyEvent):
            keys.append(event.key)
    source.stop()
    assert keys == ["a", "b", "c"]
    assert not source.running


def test_ticks_keep_coming_without_input():
    source = EventSource(QueueBackend([]), tick_interval=0.02)
    source.start()
    try:
        assert source.get() is TICK
        assert source.get() is TICK
    finally:
        source.stop()


class BrokenBackend:
    def poll(self, timeout):
        raise OSError("input gone")


def test_backend_failure_is_delivered_to_consumer():
    source = EventSource(BrokenBackend(), tick_interval=0.05)
    source.start()
    event = source.get()
    source.stop()
    assert isinstance(event, ErrorEvent)
    assert isinstance(event.error, OSError)


class LockCheckingPad:
    def __init__(self, lock, keys):
        self.lock = lock
        self.keys = list(keys)
        self.reads = 0
        self.nodelay_flag = None

    def nodelay(self, flag):
        self.nodelay_flag = flag

    def get_wch(self):
        assert self.lock.locked(), "curses read outside the screen lock"
        self.reads += 1
        if not self.keys:
            raise curses.error("no input")
        return self.keys.pop(0)


@pytest.fixture
def pipe_fds():
    read_fd, write_fd = os.pipe()
    yield read_fd, write_fd
    os.close(read_fd)
    os.close(write_fd)


def test_curses_backend_reads_under_screen_lock(pipe_fds):
    read_fd, write_fd = pipe_fds
    lock = threading.Lock()
    pad = LockCheckingPad(lock, ["x"])
    backend = CursesKeyBackend(lock, pad=pad, fd=read_fd)
    assert pad.nodelay_flag is True
    os.write(write_fd, b"x")
    assert backend.poll(0.5) == "x"
    assert not lock.locked()
    # a hit skips the fd wait next time, since curses may have buffered more keys
    assert backend.poll(0.0) is None
    assert pad.reads == 2


def test_curses_backend_reads_once_after_idle_wait(pipe_fds):
    read_fd, _ = pipe_fds
    lock = threading.Lock()
    pad = LockCheckingPad(lock, [])
    backend = CursesKeyBackend(lock, pad=pad, fd=read_fd)
    assert backend.poll(0.01) is None
    assert pad.reads == 1


def test_curses_backend_waits_for_drawing_to_finish(pipe_fds):
    read_fd, write_fd = pipe_fds
    lock = threading.Lock()
    backend = CursesKeyBackend(lock, pad=LockCheckingPad(lock, ["k"]), fd=read_fd)
    os.write(write_fd, b"k")
    results = []
    with lock:
        reader = threading.Thread(target=lambda: results.append(backend.poll(0.5)))
        reader.start()
        reader.join(timeout=0.1)
        assert results == []
    reader.join(timeout=1.0)
    assert results == ["k"]


def test_curses_backend_drops_mouse_events(pipe_fds):
    read_fd, write_fd = pipe_fds
    lock = threading.Lock()
    backend = CursesKeyBackend(lock, pad=LockCheckingPad(lock, [curses.KEY_MOUSE]), fd=read_fd)
    os.write(write_fd, b"\x1b")
    assert backend.poll(0.5) is None
