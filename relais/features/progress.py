#!/usr/bin/env python3

# standards
from dataclasses import dataclass, field
import time
from typing import Callable, List, Optional

# relais
from ..config import ConfigView
from ..logs import LoggerFacade


@dataclass
class ProgressEvent:
    phase: str
    percent_progress: int
    loaded_bytes: int
    total_bytes: Optional[int]
    request_config: ConfigView = field(repr=False)
    passed_on: bool = field(default=False, repr=False)

    def fall_through(self) -> None:
        """
        Pass this event on to the next registered handler. Handlers that don't call this stop the event there.
        """
        self.passed_on = True


class ProgressEmitter:
    """
    Dispatches progress events for one phase of one request to the handlers registered for that phase, in registration order.

    Per-chunk events are throttled: there's at least `throttle_ms` between two of them, `throttle_ms` being the smallest interval
    requested by any handler. The initial and the final events are never throttled.
    """

    def __init__(
        self,
        phase: str,
        handlers: List[Callable],
        throttle_ms: float,
        view: ConfigView,
        total_bytes: Optional[int] = None,
        logger: Optional[LoggerFacade] = None,
    ) -> None:
        self.phase = phase
        self.handlers = handlers
        self.throttle_ms = throttle_ms
        self.view = view
        self.total_bytes = total_bytes
        self.logger = logger
        self._last_emit: Optional[float] = None
        self.finished = False

    @classmethod
    def for_phase(
        cls,
        phase: str,
        view: ConfigView,
        total_bytes: Optional[int] = None,
        logger: Optional[LoggerFacade] = None,
    ) -> Optional['ProgressEmitter']:
        """
        Returns None when no handler is registered for `phase` ('upload' or 'download').
        """
        attr = f'on_{phase}_progress'
        entries = [entry for entry in view.progress_handlers if getattr(entry, attr) is not None]
        if not entries:
            return None
        return cls(
            phase=phase,
            handlers=[getattr(entry, attr) for entry in entries],
            throttle_ms=min(entry.throttle_ms or 0 for entry in entries),
            view=view,
            total_bytes=total_bytes,
            logger=logger,
        )

    def start(self) -> None:
        self._dispatch(0, done=False)

    def tick(self, loaded_bytes: int) -> None:
        if self.finished:
            return
        now = time.monotonic() * 1000
        if self._last_emit is not None and now - self._last_emit < self.throttle_ms:
            return
        self._last_emit = now
        self._dispatch(loaded_bytes, done=False)

    def finish(self, loaded_bytes: int) -> None:
        if self.finished:
            return
        self.finished = True
        self._dispatch(loaded_bytes, done=True)

    def compute_percent(self, loaded_bytes: int, done: bool) -> int:
        if done:
            return 100
        if not self.total_bytes:
            return 0
        return max(0, min(100, (loaded_bytes * 100) // self.total_bytes))

    def _dispatch(self, loaded_bytes: int, done: bool) -> None:
        percent = self.compute_percent(loaded_bytes, done)
        for handler in self.handlers:
            event = ProgressEvent(
                phase=self.phase,
                percent_progress=percent,
                loaded_bytes=loaded_bytes,
                total_bytes=self.total_bytes,
                request_config=self.view,
            )
            if self.logger is None:
                handler(event)
            else:
                try:
                    handler(event)
                except Exception as error:  # pylint: disable=broad-except
                    # called back from the transport, there is no caller to raise to
                    self.logger.warn('%s progress handler failed: %r', self.phase, error)
                    break
            if not event.passed_on:
                break
