"""Recurring check of every tracked anime for new episodes."""

from __future__ import annotations

import logging
import threading
import time
from enum import Enum
from typing import Optional, Protocol

import requests

from .catalog import CatalogClient
from .detector import has_new_episode
from .errors import CorruptStateError, FetchError, PersistenceError
from .models import (
    ANNOUNCED,
    EMPTY,
    FAILED,
    UNCHANGED,
    ItemResult,
    PassResult,
    TrackedItem,
)
from .notifier import NotificationSink
from .registry import Registry
from .tracker import EpisodeTracker

LOGGER = logging.getLogger(__name__)

DEFAULT_INTERVAL = 60.0
DEFAULT_ITEM_DELAY = 5.0


class Clock(Protocol):
    def monotonic(self) -> float:
        ...

    def sleep(self, seconds: float) -> None:
        ...

    def wait(self, event: threading.Event, seconds: float) -> bool:
        ...


class SystemClock:
    def monotonic(self) -> float:
        return time.monotonic()

    def sleep(self, seconds: float) -> None:
        time.sleep(seconds)

    def wait(self, event: threading.Event, seconds: float) -> bool:
        """Sleep until ``event`` is set or ``seconds`` pass; True if it was set."""
        return event.wait(seconds)


class SchedulerState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"


class ReconciliationScheduler:
    """Runs one pass over the registry every ``interval`` seconds.

    Ticks are spaced from pass *starts*. A tick that comes due while a pass
    is still running is dropped rather than queued, so a slow pass delays the
    next one to the following tick boundary. Inside a pass, ``item_delay``
    seconds separate consecutive anime, failures included.
    """

    def __init__(
        self,
        registry: Registry,
        catalog: CatalogClient,
        tracker: EpisodeTracker,
        *,
        clock: Optional[Clock] = None,
        interval: float = DEFAULT_INTERVAL,
        item_delay: float = DEFAULT_ITEM_DELAY,
    ) -> None:
        if interval <= 0:
            raise ValueError("interval must be positive")
        if item_delay < 0:
            raise ValueError("item_delay must not be negative")
        self.registry = registry
        self.catalog = catalog
        self.tracker = tracker
        self.clock = clock or SystemClock()
        self.interval = interval
        self.item_delay = item_delay
        self.skipped_ticks = 0
        self.last_result: Optional[PassResult] = None
        self._pass_lock = threading.Lock()
        self._stop = threading.Event()
        self._state = SchedulerState.IDLE

    @property
    def state(self) -> SchedulerState:
        return self._state

    def tick(self) -> Optional[PassResult]:
        """Timer callback: run a pass unless one is already in progress."""
        if not self._pass_lock.acquire(blocking=False):
            self.skipped_ticks += 1
            LOGGER.warning("Previous pass still running, skipping this tick")
            return None
        try:
            self._state = SchedulerState.RUNNING
            result = self.run_pass()
            self.last_result = result
            return result
        finally:
            self._state = SchedulerState.IDLE
            self._pass_lock.release()

    def run_pass(self) -> PassResult:
        result = PassResult(started_at=self.clock.monotonic())
        try:
            self.registry.refresh()
        except CorruptStateError as exc:
            LOGGER.error("Could not re-read state, using the in-memory registry: %s", exc)
        item_ids = self.registry.keys()
        LOGGER.info("Checking %d tracked anime for new episodes", len(item_ids))

        # 알림 채널은 패스마다 한 번만 가져옴
        sink = self.tracker.sink_provider()

        for item_id in item_ids:
            result.items.append(self._reconcile(item_id, sink))
            # API 부담을 줄이기 위해 항목마다 대기 (오류가 나도 동일)
            self.clock.sleep(self.item_delay)

        result.finished_at = self.clock.monotonic()
        LOGGER.info(
            "Pass finished: %d checked, %d announced, %d failed",
            len(result.items),
            len(result.announced),
            len(result.failed),
        )
        return result

    def _reconcile(self, item_id: int, sink: NotificationSink) -> ItemResult:
        tracked = self.registry.get(item_id) or TrackedItem(id=item_id)

        try:
            episodes = self.catalog.fetch_episode_list(item_id)
        except FetchError as exc:
            LOGGER.error("Failed to check anime %s: %s", item_id, exc)
            return ItemResult(item_id, FAILED, error=exc)

        if not episodes:
            return ItemResult(item_id, EMPTY)

        changed, latest = has_new_episode(tracked, episodes)
        if not changed or latest is None:
            return ItemResult(item_id, UNCHANGED, episode_id=tracked.last_episode_id)

        LOGGER.info("New episode detected for anime %s: episode %s", item_id, latest.id)
        try:
            self.tracker.announce(item_id, latest.id, sink)
        except (FetchError, requests.RequestException) as exc:
            LOGGER.error("Failed to announce anime %s episode %s: %s", item_id, latest.id, exc)
            return ItemResult(item_id, FAILED, episode_id=latest.id, error=exc)

        updated = TrackedItem(
            id=item_id,
            last_episode_id=latest.id,
            last_episode_data=latest.to_dict(),
        )
        try:
            self.registry.store(updated)
        except PersistenceError as exc:
            # 메모리 상태는 이미 갱신됨, 다음 저장 때 파일에 반영
            LOGGER.error("Failed to save state after announcing anime %s: %s", item_id, exc)
            return ItemResult(item_id, ANNOUNCED, episode_id=latest.id, error=exc)

        return ItemResult(item_id, ANNOUNCED, episode_id=latest.id)

    def run(self, max_passes: Optional[int] = None) -> None:
        """Tick forever (or ``max_passes`` times) until ``stop()`` is called."""
        passes = 0
        next_tick = self.clock.monotonic()
        while not self._stop.is_set():
            if max_passes is not None and passes >= max_passes:
                return

            now = self.clock.monotonic()
            if now < next_tick:
                if self.clock.wait(self._stop, next_tick - now):
                    return
                continue

            try:
                self.tick()
            except Exception:  # noqa: BLE001
                LOGGER.exception("Pass aborted by an unexpected error")
            passes += 1

            next_tick += self.interval
            now = self.clock.monotonic()
            if now > next_tick:
                missed = int((now - next_tick) // self.interval) + 1
                self.skipped_ticks += missed
                next_tick += missed * self.interval
                LOGGER.warning(
                    "Pass overran the %.0fs interval, skipped %d tick(s)",
                    self.interval,
                    missed,
                )

    def stop(self) -> None:
        """Stop after the current pass, or right away when idle.

        An in-flight pass is not interrupted.
        """
        self._stop.set()
