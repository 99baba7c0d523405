"""Metric helpers recorded as short-lived Opik traces."""
from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from aide.observability.tracing import trace

logger = logging.getLogger(__name__)


def log_metric(name: str, value: float | int, metadata: Optional[Dict[str, Any]] = None) -> None:
    """Record a metric value; silently a no-op when tracing is disabled."""
    payload: Dict[str, Any] = {"value": value}
    if metadata:
        payload.update(metadata)

    try:
        with trace(f"metric:{name}", metadata=payload):
            pass
    except Exception as exc:  # pragma: no cover - metrics must never break a request
        logger.debug("Unable to record metric %s: %s", name, exc)
