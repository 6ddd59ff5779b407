"""Request-scoped context shared by logging and outgoing HTTP calls.

The HTTP/SOAP layer in front of the service assigns each incoming request an
identifier and binds it here for the duration of the call. Code running
downstream (log filters, HTTP adapters) reads it without having it passed
explicitly.
"""

import uuid
import contextvars
from contextlib import contextmanager

REQUEST_ID_CTX = contextvars.ContextVar("request_id", default="-")


@contextmanager
def bind_request_id(request_id: str | None = None):
    """Bind a request id for the enclosed block.

    A new UUIDv4 is generated when ``request_id`` is not provided. The
    previous value is restored on exit.

    Yields:
        str: The request id in effect inside the block.
    """
    rid = request_id or str(uuid.uuid4())
    token = REQUEST_ID_CTX.set(rid)
    try:
        yield rid
    finally:
        REQUEST_ID_CTX.reset(token)
