"""Opik client bootstrap for the scheduling service."""
from __future__ import annotations

import logging
from threading import Lock
from typing import Optional

from aide.core.config import Settings, get_settings

try:
    from opik import Opik
except ImportError:  # pragma: no cover
    Opik = None  # type: ignore[assignment]

logger = logging.getLogger(__name__)

_client: Optional["Opik"] = None
_client_lock = Lock()
_init_attempted = False


def init_opik(settings: Settings | None = None) -> Optional["Opik"]:
    """Create the Opik client once per process.

    Tracing stays off unless ``OPIK_ENABLED`` and ``OPIK_API_KEY`` are both set;
    the first call decides and later calls return the cached outcome.
    """
    global _client, _init_attempted

    if Opik is None:
        return None

    with _client_lock:
        if _client is not None or _init_attempted:
            return _client
        _init_attempted = True

    settings = settings or get_settings()
    if not settings.opik_enabled:
        return None

    if not settings.opik_api_key:
        logger.warning("OPIK_ENABLED is set without OPIK_API_KEY; schedule tracing stays off.")
        return None

    try:
        client = Opik(project_name=settings.opik_project, api_key=settings.opik_api_key)
    except Exception as exc:  # pragma: no cover - third-party init failure
        logger.warning("Opik initialization failed, tracing disabled: %s", exc)
        return None

    logger.info("Opik tracing enabled for project %s.", settings.opik_project)
    _client = client
    return _client


def get_opik_client() -> Optional["Opik"]:
    if _client is not None:
        return _client
    return init_opik()
