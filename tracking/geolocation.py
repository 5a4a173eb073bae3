"""
TRACKING App - Geolocation provider

A provider hands out GPS samples to whoever watches it, the way a device
geolocation API does:

    watch_id = provider.watch_position(on_sample, on_error, options)
    provider.clear_watch(watch_id)

DevicePositionFeed is the provider for a courier device that streams its
samples to the server (courier WebSocket or HTTP fallback).
"""

import itertools
import logging
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, Optional

from django.utils import timezone

from core.exceptions import TransientIOFailure
from .geo import Coordinates, validate_coordinates

logger = logging.getLogger(__name__)


class PositionTimeout(TransientIOFailure):
    """No GPS sample arrived within the acquisition timeout."""

    code = 'position_timeout'
    default_message = 'Tiempo de espera agotado obteniendo la ubicación'


class PositionUnavailable(TransientIOFailure):
    """The device reported it cannot obtain a position."""

    code = 'position_unavailable'
    default_message = 'Ubicación no disponible'


@dataclass(frozen=True)
class WatchOptions:
    """Sampling options (high accuracy, 10 s timeout, no cached samples)."""
    enable_high_accuracy: bool = True
    timeout: float = 10.0        # seconds
    maximum_age: float = 0.0     # seconds


@dataclass(frozen=True)
class PositionSample:
    latitude: float
    longitude: float
    accuracy: Optional[float] = None
    timestamp: datetime = field(default_factory=timezone.now)

    @property
    def coordinates(self) -> Coordinates:
        return Coordinates(self.latitude, self.longitude)

    @classmethod
    def from_payload(cls, payload: dict) -> 'PositionSample':
        """
        Build a sample from a client message.

        Raises:
            ValueError: missing or out-of-range coordinates
        """
        coords = validate_coordinates(payload.get('latitude'), payload.get('longitude'))
        accuracy = payload.get('accuracy')
        return cls(
            latitude=coords.latitude,
            longitude=coords.longitude,
            accuracy=float(accuracy) if accuracy is not None else None,
        )


class GeolocationProvider:
    """Contract implemented by position sources."""

    def watch_position(
        self,
        on_sample: Callable[[PositionSample], None],
        on_error: Optional[Callable[[Exception], None]] = None,
        options: Optional[WatchOptions] = None,
    ) -> int:
        raise NotImplementedError

    def clear_watch(self, watch_id: int) -> None:
        raise NotImplementedError

    def get_current_position(self, options: Optional[WatchOptions] = None) -> PositionSample:
        raise NotImplementedError


@dataclass
class _Watch:
    on_sample: Callable
    on_error: Optional[Callable]
    options: WatchOptions
    last_seen: float


class DevicePositionFeed(GeolocationProvider):
    """
    Provider fed by a remote device.

    push() fans a sample out to every watcher, fail() fans out an error and
    check_timeout() reports a PositionTimeout to watchers that have been
    silent longer than their timeout. Watching continues after errors.
    """

    def __init__(self, default_options: Optional[WatchOptions] = None, clock=time.monotonic):
        self.default_options = default_options or WatchOptions()
        self._clock = clock
        self._watches: Dict[int, _Watch] = {}
        self._ids = itertools.count(1)
        self._lock = threading.Lock()
        self._latest: Optional[PositionSample] = None
        self._latest_at: Optional[float] = None
        self._arrived = threading.Condition(self._lock)

    # ==========================================
    # Provider contract
    # ==========================================

    def watch_position(self, on_sample, on_error=None, options=None) -> int:
        with self._lock:
            watch_id = next(self._ids)
            self._watches[watch_id] = _Watch(
                on_sample=on_sample,
                on_error=on_error,
                options=options or self.default_options,
                last_seen=self._clock(),
            )
        logger.debug(f"[GEO] Watch {watch_id} registered")
        return watch_id

    def clear_watch(self, watch_id: int) -> None:
        with self._lock:
            self._watches.pop(watch_id, None)

    def get_current_position(self, options=None) -> PositionSample:
        """
        Latest sample if younger than maximum_age, else wait for the next one.

        Raises:
            PositionTimeout: nothing arrived within options.timeout
        """
        options = options or self.default_options
        with self._arrived:
            if self._latest is not None and self._clock() - self._latest_at <= options.maximum_age:
                return self._latest
            previous = self._latest
            self._arrived.wait_for(lambda: self._latest is not previous, timeout=options.timeout)
            if self._latest is previous:
                raise PositionTimeout()
            return self._latest

    # ==========================================
    # Device side
    # ==========================================

    @property
    def watch_count(self) -> int:
        with self._lock:
            return len(self._watches)

    def push(self, sample: PositionSample) -> int:
        """Deliver a sample to every watcher. Returns the number of watchers."""
        with self._arrived:
            now = self._clock()
            self._latest = sample
            self._latest_at = now
            watches = list(self._watches.values())
            for watch in watches:
                watch.last_seen = now
            self._arrived.notify_all()

        for watch in watches:
            self._call(watch.on_sample, sample)
        return len(watches)

    def fail(self, error: Exception) -> int:
        """Deliver a device error to every watcher."""
        with self._lock:
            watches = list(self._watches.values())
        for watch in watches:
            if watch.on_error:
                self._call(watch.on_error, error)
        return len(watches)

    def check_timeout(self) -> int:
        """Report PositionTimeout to silent watchers. Returns how many timed out."""
        now = self._clock()
        expired = []
        with self._lock:
            for watch in self._watches.values():
                if now - watch.last_seen >= watch.options.timeout:
                    # restart the window so each silence is reported once per timeout
                    watch.last_seen = now
                    expired.append(watch)

        for watch in expired:
            logger.warning(f"[GEO] No GPS sample for {watch.options.timeout:.0f}s")
            if watch.on_error:
                self._call(watch.on_error, PositionTimeout())
        return len(expired)

    @staticmethod
    def _call(callback, arg):
        try:
            callback(arg)
        except Exception:
            logger.exception("[GEO] Watcher callback failed")
