"""Lightweight structured logging helpers."""

from __future__ import annotations

import json
import logging
import time
from pathlib import Path
from typing import Callable

from .config import PanelFlashConfig

LOG_FORMAT = "[%(asctime)s] %(levelname)s:%(name)s: %(message)s"


def configure_logging(cfg: PanelFlashConfig) -> None:
    logging.basicConfig(
        level=logging.DEBUG if cfg.debug else logging.INFO,
        format=LOG_FORMAT,
    )


def ensure_log_dir(path: str) -> None:
    Path(path).expanduser().resolve().parent.mkdir(parents=True, exist_ok=True)


def append_event(path: str, event: dict, *, max_bytes: int) -> None:
    ensure_log_dir(path)
    target = Path(path)
    if target.exists() and target.stat().st_size > max_bytes:
        rotated = target.with_name(f"{target.stem}-{int(time.time())}{target.suffix}")
        target.rename(rotated)
    with target.open("a", encoding="utf-8") as fh:
        fh.write(json.dumps(event, ensure_ascii=False) + "\n")


def build_log_event(
    *,
    cfg: PanelFlashConfig,
    request_id: str | None,
    kind: str,
    status: str,
    latency_ms: int | None,
    error: str | None,
    prompt_preview: str = "",
) -> dict:
    return {
        "ts": time.time(),
        "request_id": request_id,
        "kind": kind,
        "status": status,
        "latency_ms": latency_ms,
        "error": error,
        "prompt_preview": prompt_preview[:80],
        "model": cfg.model_name,
    }


def event_log_sink(cfg: PanelFlashConfig) -> Callable[[dict], None] | None:
    """Return a dispatcher event sink that appends settled requests to
    ``cfg.event_log_path``, or None when the event log is disabled."""

    if not cfg.event_log_path:
        return None
    path = cfg.event_log_path

    def _sink(event: dict) -> None:
        if event.get("event") != "settle":
            return
        record = build_log_event(
            cfg=cfg,
            request_id=event.get("request_id"),
            kind=str(event.get("kind", "request")),
            status=str(event.get("status", "unknown")),
            latency_ms=event.get("latency_ms"),
            error=event.get("error"),
            prompt_preview=str(event.get("label", "")),
        )
        try:
            append_event(path, record, max_bytes=cfg.event_log_max_bytes)
        except OSError as exc:
            logging.getLogger(__name__).warning("Event log write failed: %s", exc)

    return _sink


__all__ = [
    "LOG_FORMAT",
    "append_event",
    "build_log_event",
    "configure_logging",
    "ensure_log_dir",
    "event_log_sink",
]
