from __future__ import annotations

import json
import logging
from typing import Any

from chatbridge.providers.types import TelemetryCallback

logger = logging.getLogger(__name__)


def logging_telemetry(target: logging.Logger | None = None, level: int = logging.DEBUG) -> TelemetryCallback:
    """Adapt the telemetry hook to stdlib logging.

    Payloads reaching the hook are already redacted by the client.
    """
    log = target or logger

    async def on_telemetry(event_type: str, payload: dict[str, Any]) -> None:
        if log.isEnabledFor(level):
            log.log(level, "%s %s", event_type, json.dumps(payload, ensure_ascii=False, default=str))

    return on_telemetry


async def emit(callback: TelemetryCallback | None, event_type: str, payload: dict[str, Any]) -> None:
    if callback is None:
        return
    await callback(event_type, payload)
