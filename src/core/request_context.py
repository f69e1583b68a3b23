"""Request context management using contextvars.

Holds the request_id that ties together every log line emitted while serving
one HTTP request, including the stats engine's aggregate updates.
"""

import uuid
from contextvars import ContextVar
from typing import Optional

REQUEST_ID_HEADER = "X-Request-ID"

request_id_var: ContextVar[Optional[str]] = ContextVar("request_id", default=None)


def get_request_id() -> Optional[str]:
    """Get the current request ID from context.

    Returns
    -------
    Optional[str]
        The current request ID, or None outside a request
    """
    return request_id_var.get()


def set_request_id(request_id: str) -> None:
    request_id_var.set(request_id)


def resolve_request_id(incoming: Optional[str]) -> str:
    """Reuse a caller-supplied request ID or mint a new one.

    Parameters
    ----------
    incoming : Optional[str]
        Value of the X-Request-ID header sent by the client (or a proxy)

    Returns
    -------
    str
        ``incoming`` when it is a usable token, otherwise a new UUID v4
    """
    if incoming and len(incoming) <= 128 and incoming.isprintable():
        return incoming
    return str(uuid.uuid4())
