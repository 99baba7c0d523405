"""Request id carried through logging and tracing."""
from __future__ import annotations

import re
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Iterator
from uuid import uuid4

request_id_ctx_var: ContextVar[str | None] = ContextVar("aide_request_id", default=None)

# Client-supplied ids end up in log lines and trace metadata.
_REQUEST_ID_RE = re.compile(r"^[A-Za-z0-9._:-]{1,64}$")


def get_request_id() -> str | None:
    return request_id_ctx_var.get()


def coerce_request_id(candidate: str | None) -> str:
    """Keep a well-formed incoming id, otherwise mint a new one."""
    if candidate and _REQUEST_ID_RE.match(candidate):
        return candidate
    return uuid4().hex


@contextmanager
def bind_request_id(request_id: str) -> Iterator[str]:
    token = request_id_ctx_var.set(request_id)
    try:
        yield request_id
    finally:
        request_id_ctx_var.reset(token)
