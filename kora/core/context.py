"""
Per-request context combining the request and response facades.

A Context is created for every request. It holds both facades, the raw
transport objects, a free-form ``state`` dict for middleware to share data,
and a flat attribute surface delegated to the facades through the static
forwarding table DELEGATED_PROPERTIES.
"""

from typing import Any, Dict, Optional

from . import statuses
from .delegation import Delegates, forwarding_table, install
from .errors import HttpError, KoraError

RESPONSE_DELEGATES = Delegates(
    'response',
    access=('status', 'message', 'body', 'length', 'type', 'last_modified', 'etag'),
    getters=('header_sent', 'writable'),
    methods=('attachment', 'redirect', 'remove', 'vary', 'has', 'set', 'append',
             'flush_headers'),
)

REQUEST_DELEGATES = Delegates(
    'request',
    access=('querystring', 'search', 'method', 'query', 'path', 'url'),
    getters=('origin', 'href', 'subdomains', 'protocol', 'host', 'hostname', 'URL',
             'header', 'headers', 'secure', 'ips', 'ip', 'idempotent', 'socket'),
    methods=('get', 'is_'),
)

DELEGATED_PROPERTIES = forwarding_table(RESPONSE_DELEGATES, REQUEST_DELEGATES)

# Headers that survive the reset before a fallback error response
KEPT_ON_ERROR = frozenset({'x-request-id'})


@install(DELEGATED_PROPERTIES)
class Context:
    """The per-request aggregate handed to every middleware.

    Attributes:
        app: The owning Application
        request: Request facade
        response: Response facade
        req: Raw transport request
        res: Raw transport response
        state: Dict for passing data between middleware
        original_url: Request URL as received, before any rewriting
        respond: Set to False to bypass the built-in response writing
    """

    def __init__(self, app, request, response):
        self.app = app
        self.request = request
        self.response = response
        self.req = request.req
        self.res = response.res
        request.ctx = response.ctx = self
        request.response = response
        response.request = request
        self.original_url = request.original_url
        self.state: Dict[str, Any] = {}
        self.respond = True

    def throw(self, status: int = 500, message: Optional[str] = None, **props: Any):
        """Raise an HttpError; ``ctx.throw('msg')`` means a 500 with a message.

        Raises:
            HttpError: Always
        """
        if isinstance(status, str):
            status, message = 500, status
        raise HttpError(status, message, **props)

    def assert_(self, value: Any, status: int = 500, message: Optional[str] = None,
                **props: Any) -> None:
        """Raise an HttpError unless value is truthy."""
        if not value:
            self.throw(status, message, **props)

    async def onerror(self, err: Optional[BaseException]) -> None:
        """Report an unrecovered error and write the fallback response.

        When headers were already sent (or the connection can no longer be
        written) the connection is terminated instead.
        """
        if err is None:
            return
        if not isinstance(err, Exception):
            err = KoraError(f'non-error thrown: {err!r}')

        header_sent = self.header_sent or not self.writable
        self.app.report_error(err, self)

        if header_sent:
            self.res.destroy()
            return

        res = self.res
        for name in res.get_header_names():
            if name not in KEPT_ON_ERROR:
                res.remove_header(name)

        headers = getattr(err, 'headers', None)
        if headers:
            self.set(headers)

        self.type = 'text'

        status = getattr(err, 'status', None) or getattr(err, 'status_code', None)
        if isinstance(err, FileNotFoundError):
            status = 404
        if not statuses.is_known(status):
            status = 500

        phrase = statuses.message(status)
        body = str(err) if getattr(err, 'expose', False) else phrase
        self.status = status
        payload = body.encode('utf-8')
        self.length = len(payload)
        try:
            await res.end(payload)
        except ConnectionError as exc:
            self.app.report_error(exc, self)

    def to_json(self) -> Dict[str, Any]:
        return {
            'request': self.request.to_json(),
            'response': self.response.to_json(),
            'app': self.app.to_json(),
            'original_url': self.original_url,
            'req': '<original req>',
            'res': '<original res>',
            'socket': '<original socket>',
        }

    inspect = to_json

    def __repr__(self) -> str:
        return f'<Context {self.method} {self.url} -> {self.status}>'
