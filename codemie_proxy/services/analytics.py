"""Local analytics sink for proxy telemetry."""

import asyncio
import json
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import structlog

from codemie_proxy.core.session import get_session_id


class Analytics:
    """Buffers telemetry events and writes them as JSON lines.

    Events are held in memory and appended to ``path`` once ``batch_size``
    events are buffered, or on :meth:`flush`.
    """

    def __init__(
        self,
        path: Path,
        enabled: bool = True,
        batch_size: int = 100,
        session_id: str | None = None,
    ) -> None:
        """Initialize the sink.

        Args:
            path: JSON lines file receiving flushed events
            enabled: When False, ``track`` is a no-op
            batch_size: Number of buffered events that triggers a flush
            session_id: Session id stamped on events; process session by default
        """
        self.path = path
        self._enabled = enabled
        self._batch_size = batch_size
        self._session_id = session_id
        self._buffer: list[dict[str, Any]] = []
        self._lock = asyncio.Lock()
        self._logger = structlog.get_logger(__name__)

    @property
    def is_enabled(self) -> bool:
        return self._enabled

    @property
    def pending(self) -> int:
        """Number of buffered, unflushed events."""
        return len(self._buffer)

    async def track(
        self,
        event_name: str,
        attributes: dict[str, Any],
        extra: dict[str, Any] | None = None,
    ) -> None:
        """Record an event.

        Args:
            event_name: Event identifier, e.g. 'api_request'
            attributes: Event attributes
            extra: Optional measurements (e.g. latency) kept apart from attributes
        """
        if not self._enabled:
            return

        event = {
            "event": event_name,
            "timestamp": datetime.now(UTC).isoformat(),
            "session_id": self._session_id or get_session_id(),
            "attributes": attributes,
        }
        if extra:
            event["metrics"] = extra

        async with self._lock:
            self._buffer.append(event)
            should_flush = len(self._buffer) >= self._batch_size

        if should_flush:
            await self.flush()

    async def flush(self) -> int:
        """Write buffered events to disk.

        Returns:
            Number of events written
        """
        async with self._lock:
            if not self._buffer:
                return 0
            events, self._buffer = self._buffer, []

        lines = "".join(json.dumps(event, default=str) + "\n" for event in events)

        def append() -> None:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with self.path.open("a", encoding="utf-8") as f:
                f.write(lines)

        try:
            await asyncio.to_thread(append)
        except OSError as e:
            self._logger.warning(
                "analytics_flush_failed",
                path=str(self.path),
                events=len(events),
                error=str(e),
            )
            async with self._lock:
                self._buffer[:0] = events
            return 0

        self._logger.debug("analytics_flushed", path=str(self.path), events=len(events))
        return len(events)
