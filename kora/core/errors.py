"""
Exception types raised by the middleware core.

This module provides:
- A common base class for framework errors
- The contract violation raised when a pipeline is driven incorrectly
- HttpError, the error type middleware raise to produce a client response
"""

from typing import Any, Dict, Optional

from . import statuses


class KoraError(Exception):
    """Base class for framework errors."""
    pass


class MiddlewareContractError(KoraError, RuntimeError):
    """Raised when a middleware breaks the pipeline contract.

    The common case is a continuation being awaited more than once from
    the same middleware.
    """
    pass


class HttpError(KoraError):
    """An error that carries the HTTP status to answer the client with.

    Args:
        status: HTTP status code, 4xx or 5xx. Anything else becomes 500.
        message: Message for the response body when the error is exposed.
            Defaults to the status reason phrase.
        expose: Whether the message may be shown to the client.
            Defaults to True for client errors (status < 500).
        headers: Extra response headers written with the error response.
        **props: Additional attributes set on the error instance.
    """

    def __init__(self,
                 status: int = 500,
                 message: Optional[str] = None,
                 *,
                 expose: Optional[bool] = None,
                 headers: Optional[Dict[str, Any]] = None,
                 **props: Any):
        if (not isinstance(status, int) or isinstance(status, bool)
                or status < 400 or status >= 600):
            status = 500

        self.status = status
        self.message = message or statuses.message(status) or str(status)
        self.expose = status < 500 if expose is None else expose
        self.headers = dict(headers) if headers else None
        for key, value in props.items():
            setattr(self, key, value)
        super().__init__(self.message)

    @property
    def status_code(self) -> int:
        return self.status

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.status}, {self.message!r})"
