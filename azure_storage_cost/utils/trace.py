"""Lightweight JSONL tracing helper for deterministic runs."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

from .clock import Clock, utc_now


@dataclass
class TraceLogger:
    """Append-only JSONL trace writer with structured phases."""

    path: Path
    enabled: bool = True
    clock: Clock = utc_now
    _initialized: bool = field(default=False, init=False, repr=False)

    def _ensure_parent(self) -> None:
        if self._initialized:
            return
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._initialized = True

    def log(
        self,
        phase: str,
        payload: Dict[str, Any],
        *,
        region: Optional[str] = None,
        resource_id: Optional[str] = None,
    ) -> None:
        if not self.enabled:
            return

        self._ensure_parent()
        event: Dict[str, Any] = {
            "timestamp": self.clock().isoformat(),
            "phase": phase,
            "payload": payload,
        }
        if region:
            event["region"] = region
        if resource_id:
            event["resource_id"] = resource_id

        with self.path.open("a", encoding="utf-8") as handle:
            handle.write(json.dumps(event, ensure_ascii=False, default=str) + "\n")


def build_trace_logger(path: Path | str | None, enabled: bool = True, clock: Clock = utc_now) -> Optional[TraceLogger]:
    """TraceLogger for ``path``, or None when no path is configured."""
    if not path:
        return None
    return TraceLogger(Path(path), enabled=enabled, clock=clock)


__all__ = ["TraceLogger", "build_trace_logger"]
