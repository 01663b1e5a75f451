from __future__ import annotations

import curses
import logging
import queue
import select
import sys
import threading
import time
from dataclasses import dataclass
from typing import Callable, Protocol

TICK_INTERVAL = 0.2

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class KeyEvent:
    key: object


class TickEvent:
    def __repr__(self) -> str:
        return "TICK"


TICK = TickEvent()


@dataclass(frozen=True)
class ErrorEvent:
    error: BaseException


Event = KeyEvent | TickEvent | ErrorEvent


class KeyBackend(Protocol):
    def poll(self, timeout: float) -> object | None:
        """Wait at most ``timeout`` seconds for one key; None when nothing arrived."""


class CursesKeyBackend:
    """Waits on the terminal fd outside curses, then reads one key under the screen lock.

    ncurses is not thread-safe: the only curses call made from the producer
    thread is a non-blocking get_wch, serialized with drawing through ``lock``.
    """

    def __init__(self, lock: threading.Lock, pad: curses.window | None = None, fd: int | None = None) -> None:
        self.lock = lock
        self.fd = sys.stdin.fileno() if fd is None else fd
        if pad is None:
            pad = curses.newpad(1, 1)
            pad.keypad(True)
        pad.nodelay(True)
        self.pad = pad
        self._pending = False

    def poll(self, timeout: float) -> object | None:
        # after a hit ncurses may already hold decoded keys that select cannot see
        if not self._pending:
            select.select([self.fd], [], [], max(0.0, timeout))
        with self.lock:
            try:
                key = self.pad.get_wch()
            except curses.error:
                self._pending = False
                return None
            if key == curses.KEY_MOUSE:
                try:
                    curses.getmouse()
                except curses.error:
                    pass
                key = None
        self._pending = True
        return key


class EventSource:
    """Merges key presses with a periodic tick into one ordered queue.

    A single background thread alternates between a bounded key poll and the
    tick check, so the consumer never waits longer than one tick interval.
    """

    def __init__(
        self,
        backend: KeyBackend,
        tick_interval: float = TICK_INTERVAL,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.backend = backend
        self.tick_interval = tick_interval
        self.clock = clock
        self.events: queue.Queue[Event] = queue.Queue()
        self.last_tick = clock()
        self._stop_event = threading.Event()
        self._thread = threading.Thread(target=self._run, daemon=True, name="todocli-events")

    def step(self) -> None:
        remaining = max(0.0, self.tick_interval - (self.clock() - self.last_tick))
        key = self.backend.poll(remaining)
        if key is not None:
            self.events.put(KeyEvent(key))
        if self.clock() - self.last_tick >= self.tick_interval:
            self.events.put(TICK)
            self.last_tick = self.clock()

    def _run(self) -> None:
        logger.debug("event source started, tick every %.3fs", self.tick_interval)
        try:
            while not self._stop_event.is_set():
                self.step()
        except Exception as exc:
            logger.exception("event source failed")
            self.events.put(ErrorEvent(exc))
            return
        logger.debug("event source stopped")

    def start(self) -> None:
        self.last_tick = self.clock()
        self._thread.start()

    def stop(self, timeout: float | None = 1.0) -> None:
        self._stop_event.set()
        if self._thread.is_alive():
            self._thread.join(timeout=timeout)

    @property
    def running(self) -> bool:
        return self._thread.is_alive()

    def get(self) -> Event:
        return self.events.get()
