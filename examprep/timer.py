"""
Exam countdowns.

The quiz session relies on start_countdown(duration, on_tick, on_expire) -> handle,
cancel(handle), pause(handle), resume(handle) and remaining(handle).
ThreadingCountdown ticks on a background thread; DeadlineCountdown
keeps a wall-clock deadline and delivers ticks when polled, which suits Streamlit reruns.
"""
import itertools
import math
import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, Optional

from engine import DEFAULT_EXAM_DURATIONS
from examprep.database import QuestionStore, QuestionStoreError
from examprep.quiz_config import QuizConfig

logger = logging.getLogger(__name__)

TickCallback = Callable[[int], None]
ExpireCallback = Callable[[], None]

_handle_ids = itertools.count(1)


@dataclass
class CountdownHandle:
    duration: int
    id: int = field(default_factory=lambda: next(_handle_ids))
    cancelled: bool = False
    expired: bool = False
    paused: bool = False

    @property
    def active(self) -> bool:
        return not (self.cancelled or self.expired)


class ThreadingCountdown:
    """Ticks once per second on a daemon thread until expiry or cancel. Paused seconds are not counted."""

    def __init__(self, interval: float = 1.0):
        self.interval = interval
        self._stops: Dict[int, threading.Event] = {}
        self._remaining: Dict[int, int] = {}

    def start_countdown(self, duration: int, on_tick: TickCallback, on_expire: ExpireCallback) -> CountdownHandle:
        handle = CountdownHandle(duration=duration)
        stop = threading.Event()
        self._stops[handle.id] = stop
        self._remaining[handle.id] = duration
        thread = threading.Thread(
            target=self._run,
            args=(handle, stop, on_tick, on_expire),
            name=f"countdown-{handle.id}",
            daemon=True,
        )
        thread.start()
        logger.debug(f"Countdown {handle.id} started ({duration}s)")
        return handle

    def _run(self, handle: CountdownHandle, stop: threading.Event, on_tick: TickCallback, on_expire: ExpireCallback):
        remaining = handle.duration
        try:
            while remaining > 0:
                if stop.wait(self.interval):
                    return
                if handle.paused:
                    continue
                remaining -= 1
                self._remaining[handle.id] = remaining
                on_tick(remaining)
            if not stop.is_set():
                handle.expired = True
                on_expire()
        except Exception as e:
            logger.error(f"Countdown {handle.id} callback failed: {e}")
            raise
        finally:
            self._stops.pop(handle.id, None)
            self._remaining.pop(handle.id, None)

    def remaining(self, handle: CountdownHandle) -> int:
        return self._remaining.get(handle.id, 0) if handle.active else 0

    def pause(self, handle: CountdownHandle) -> None:
        if handle.active:
            handle.paused = True

    def resume(self, handle: CountdownHandle) -> None:
        handle.paused = False

    def cancel(self, handle: CountdownHandle) -> None:
        handle.cancelled = True
        stop = self._stops.pop(handle.id, None)
        if stop is not None:
            stop.set()
        logger.debug(f"Countdown {handle.id} cancelled")


@dataclass
class _Deadline:
    end: float
    delivered: int
    on_tick: TickCallback
    on_expire: ExpireCallback
    paused_remaining: Optional[int] = None


class DeadlineCountdown:
    """
    Countdown driven by the caller: poll() delivers one on_tick per whole second
    elapsed since the last poll, then on_expire once the deadline passes.
    While paused, the remaining time is frozen and poll() delivers nothing.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self.clock = clock
        self._deadlines: Dict[int, _Deadline] = {}

    def start_countdown(self, duration: int, on_tick: TickCallback, on_expire: ExpireCallback) -> CountdownHandle:
        handle = CountdownHandle(duration=duration)
        self._deadlines[handle.id] = _Deadline(
            end=self.clock() + duration,
            delivered=duration,
            on_tick=on_tick,
            on_expire=on_expire,
        )
        return handle

    def remaining(self, handle: CountdownHandle) -> int:
        deadline = self._deadlines.get(handle.id)
        if deadline is None:
            return 0
        if deadline.paused_remaining is not None:
            return deadline.paused_remaining
        return max(0, math.ceil(deadline.end - self.clock()))

    def pause(self, handle: CountdownHandle) -> None:
        deadline = self._deadlines.get(handle.id)
        if deadline is None or handle.paused or not handle.active:
            return
        self.poll(handle)
        if not handle.active:
            return
        deadline.paused_remaining = self.remaining(handle)
        handle.paused = True

    def resume(self, handle: CountdownHandle) -> None:
        deadline = self._deadlines.get(handle.id)
        if deadline is None or not handle.paused:
            return
        deadline.end = self.clock() + deadline.paused_remaining
        deadline.paused_remaining = None
        handle.paused = False

    def poll(self, handle: CountdownHandle) -> None:
        deadline = self._deadlines.get(handle.id)
        if deadline is None or not handle.active or handle.paused:
            return
        remaining = self.remaining(handle)
        while deadline.delivered > remaining and handle.active:
            deadline.delivered -= 1
            deadline.on_tick(deadline.delivered)
        if remaining == 0 and handle.active:
            handle.expired = True
            self._deadlines.pop(handle.id, None)
            deadline.on_expire()

    def cancel(self, handle: CountdownHandle) -> None:
        handle.cancelled = True
        self._deadlines.pop(handle.id, None)


def resolve_duration(store: Optional[QuestionStore], config: QuizConfig) -> int:
    """Configured duration for the quiz, falling back to the exam type default."""
    default = DEFAULT_EXAM_DURATIONS.get(config.exam_type, DEFAULT_EXAM_DURATIONS["JAMB"])
    if store is None:
        return default
    try:
        duration = store.get_timer_duration(config.exam_type, config.subject_slug, config.year)
    except QuestionStoreError as e:
        logger.warning(f"Using default duration for {config.exam_type}: {e}")
        return default
    return duration if duration else default


def format_time(seconds: Optional[int]) -> str:
    """Seconds as MM:SS."""
    mins, secs = divmod(max(0, int(seconds or 0)), 60)
    return f"{mins:02d}:{secs:02d}"
