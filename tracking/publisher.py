"""
TRACKING App - Location Publisher

One LocationPublisher is one tracking session: a courier delivering an
order while their device streams GPS samples. Every sample produces two
writes (courier record, order's embedded location). A failed write is
logged and reported through on_error; the other write is still attempted
and the session keeps running.

TrackingRegistry owns the sessions, one per courier.
"""

import logging
import threading
from typing import Callable, Dict, List, Optional

from core.exceptions import DomainError, TransientIOFailure
from .geolocation import GeolocationProvider, PositionSample, WatchOptions
from . import services

logger = logging.getLogger(__name__)


class LocationPublisher:
    """
    Usage:
        publisher = LocationPublisher(courier.id, order.id, feed, on_error=report)
        publisher.start()
        ...
        publisher.stop()
    """

    def __init__(
        self,
        courier_id,
        order_id=None,
        provider: Optional[GeolocationProvider] = None,
        on_error: Optional[Callable[[Exception], None]] = None,
        options: Optional[WatchOptions] = None,
    ):
        self.courier_id = courier_id
        self.order_id = order_id
        self.provider = provider
        self.on_error = on_error
        self.options = options
        self._watch_id = None
        self._lock = threading.Lock()

    def __repr__(self):
        return f"<LocationPublisher courier={self.courier_id} order={self.order_id} active={self.is_active}>"

    @property
    def is_active(self) -> bool:
        return self._watch_id is not None

    def start(self) -> 'LocationPublisher':
        with self._lock:
            if self._watch_id is not None:
                return self
            if self.provider is None:
                raise ValueError("LocationPublisher.start() requires a provider")
            self._watch_id = self.provider.watch_position(
                self.publish, self._report, self.options
            )
        logger.info(
            f"[TRACKING] Session started: courier {str(self.courier_id)[:8]}, "
            f"order {str(self.order_id)[:8] if self.order_id else '-'}"
        )
        return self

    def stop(self) -> None:
        """Clear the watch. Safe to call more than once."""
        with self._lock:
            watch_id, self._watch_id = self._watch_id, None
        if watch_id is None:
            return
        self.provider.clear_watch(watch_id)
        logger.info(f"[TRACKING] Session stopped: courier {str(self.courier_id)[:8]}")

    def publish(self, sample: PositionSample) -> List[Exception]:
        """
        Write one sample to the courier record and the order.

        Returns:
            The errors raised by the writes (empty when both succeeded)
        """
        coords = sample.coordinates
        errors = []

        try:
            services.record_courier_location(
                self.courier_id, coords, sample.timestamp,
                order_id=self.order_id, accuracy=sample.accuracy,
            )
        except Exception as e:
            errors.append(self._write_failed('courier location', e))

        if self.order_id is not None:
            try:
                services.record_order_location(
                    self.order_id, self.courier_id, coords, sample.timestamp
                )
            except Exception as e:
                errors.append(self._write_failed('order location', e))

        return errors

    def _write_failed(self, what: str, error: Exception) -> Exception:
        logger.error(f"[TRACKING] Failed to write {what} for courier {str(self.courier_id)[:8]}: {error}")
        if not isinstance(error, DomainError):
            wrapped = TransientIOFailure(f"No se pudo guardar la ubicación ({what})")
            wrapped.__cause__ = error
            error = wrapped
        self._report(error)
        return error

    def _report(self, error: Exception) -> None:
        if not isinstance(error, DomainError):
            logger.warning(f"[TRACKING] Provider error for courier {str(self.courier_id)[:8]}: {error}")
        if self.on_error is None:
            return
        try:
            self.on_error(error)
        except Exception:
            logger.exception("[TRACKING] on_error callback failed")


class TrackingRegistry:
    """
    Active tracking sessions keyed by courier id.

    Starting a session for a courier stops the previous one first.
    """

    def __init__(self):
        self._sessions: Dict[str, LocationPublisher] = {}
        self._lock = threading.Lock()

    def __len__(self):
        with self._lock:
            return len(self._sessions)

    def get(self, courier_id) -> Optional[LocationPublisher]:
        with self._lock:
            return self._sessions.get(str(courier_id))

    def start(self, courier_id, order_id, provider, on_error=None, options=None) -> LocationPublisher:
        publisher = LocationPublisher(courier_id, order_id, provider, on_error, options)
        with self._lock:
            previous = self._sessions.get(str(courier_id))
            self._sessions[str(courier_id)] = publisher
        if previous is not None:
            previous.stop()
        return publisher.start()

    def stop(self, courier_id, session: Optional[LocationPublisher] = None) -> bool:
        """
        Stop the courier's session and mark them idle.

        If `session` is given, only that session is stopped (a newer one for
        the same courier is left alone).
        """
        with self._lock:
            current = self._sessions.get(str(courier_id))
            if session is not None and current is not session:
                current = None
            elif current is not None:
                del self._sessions[str(courier_id)]

        if session is not None:
            session.stop()
        if current is not None:
            current.stop()
        if current is None and session is not None:
            return False

        try:
            services.mark_courier_idle(courier_id)
        except Exception as e:
            logger.error(f"[TRACKING] Could not mark courier {str(courier_id)[:8]} idle: {e}")
        return current is not None

    def stop_for_order(self, order_id) -> int:
        """Stop every session delivering `order_id`. Returns how many stopped."""
        with self._lock:
            matching = [
                (courier_id, publisher)
                for courier_id, publisher in self._sessions.items()
                if publisher.order_id is not None and str(publisher.order_id) == str(order_id)
            ]
        stopped = 0
        for courier_id, publisher in matching:
            if self.stop(courier_id, session=publisher):
                stopped += 1
        return stopped

    def stop_all(self) -> None:
        with self._lock:
            courier_ids = list(self._sessions)
        for courier_id in courier_ids:
            self.stop(courier_id)
