"""Fire-and-forget event sink.  Nothing here ever raises into the caller."""

from __future__ import annotations

import asyncio
import json
import logging
import uuid
from collections import deque
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Deque, Dict, List, Optional, Set

import httpx

from .config import TELEMETRY_BUFFER_MAX, TELEMETRY_TIMEOUT_SEC
from .errors import AssessmentError


log = logging.getLogger(__name__)


class TelemetrySink:
    def __init__(
        self,
        session_id: Optional[str] = None,
        endpoint: Optional[str] = None,
        log_path: Optional[str | Path] = None,
        client: Optional[httpx.AsyncClient] = None,
        max_events: int = TELEMETRY_BUFFER_MAX,
    ):
        self.session_id = session_id or f"session-{uuid.uuid4().hex[:12]}"
        self.endpoint = endpoint
        self.log_path = Path(log_path) if log_path else None
        self.client = client
        self._events: Deque[Dict[str, Any]] = deque(maxlen=max_events)
        self._pending: Set[asyncio.Task] = set()

    @property
    def events(self) -> List[Dict[str, Any]]:
        return list(self._events)

    def emit(self, event: str, data: Optional[Dict[str, Any]] = None) -> None:
        record = {
            "event": event,
            "data": dict(data or {}),
            "sessionId": self.session_id,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        self._events.append(record)
        if self.log_path is not None:
            try:
                self.log_path.parent.mkdir(parents=True, exist_ok=True)
                with open(self.log_path, "a", encoding="utf-8") as f:
                    f.write(json.dumps(record, ensure_ascii=False, default=str) + "\n")
            except OSError as e:
                log.debug("telemetry log write failed: %s", e)
        if self.endpoint:
            self._schedule_post(record)

    def record_error(self, err: BaseException, **context: Any) -> None:
        if isinstance(err, AssessmentError):
            data = err.to_dict()
        else:
            data = {"message": str(err), "name": type(err).__name__, "category": "unknown", "details": {}}
        data.update(context)
        self.emit("error", data)

    def _schedule_post(self, record: Dict[str, Any]) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            log.debug("telemetry post skipped: no running loop")
            return
        task = loop.create_task(self._post(record))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _post(self, record: Dict[str, Any]) -> None:
        try:
            if self.client is not None:
                await self.client.post(self.endpoint, json=record, timeout=TELEMETRY_TIMEOUT_SEC)  # type: ignore[arg-type]
            else:
                async with httpx.AsyncClient(timeout=TELEMETRY_TIMEOUT_SEC) as c:
                    await c.post(self.endpoint, json=record)  # type: ignore[arg-type]
        except httpx.HTTPError as e:
            log.debug("telemetry post failed: %s", type(e).__name__)

    async def drain(self) -> None:
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
