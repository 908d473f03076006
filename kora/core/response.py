"""
Response facade wrapping the raw outbound transport response.

The facade keeps the response state consistent as middleware mutate it:
- status assignment is validated and clears the body for empty-body codes
- body assignment derives Content-Type and Content-Length from the body
  variant (text, binary, stream, structured data or None)
- header helpers refuse to modify headers once they were sent
"""

import html
import json
import os
import re
from datetime import datetime, timezone
from email.utils import format_datetime, parsedate_to_datetime
from inspect import isawaitable
from typing import Any, Dict, List, Mapping, Optional, Union
from urllib.parse import quote

from . import mime, statuses
from .transport import INVALID_HEADER_CHAR

_HTML_BODY = re.compile(r'^\s*<')
_ETAG = re.compile(r'^(W/)?"')
_CONTROL_CHARS = re.compile(r'[\x00-\x1f\x7f]')

# Characters left unescaped in a Location header
_URL_SAFE = ":/?#[]@!$&'()*+,;=%~"


def is_stream(body: Any) -> bool:
    """Whether a body value is streamed rather than written in one piece."""
    return hasattr(body, '__aiter__') or callable(getattr(body, 'read', None))


def dump_json(value: Any) -> str:
    return json.dumps(value, separators=(',', ':'))


async def close_stream(stream: Any) -> None:
    """Release a stream body: awaits ``aclose()`` or calls ``close()``."""
    aclose = getattr(stream, 'aclose', None)
    if callable(aclose):
        await aclose()
        return
    close = getattr(stream, 'close', None)
    if callable(close):
        result = close()
        if isawaitable(result):
            await result


def content_disposition(filename: Optional[str] = None,
                        disposition: str = 'attachment') -> str:
    """Build a Content-Disposition header value for a file name.

    Non-ASCII names get an ASCII fallback plus an RFC 5987 ``filename*``.
    """
    if not filename:
        return disposition

    name = os.path.basename(filename)
    fallback = name.encode('ascii', 'replace').decode('ascii')
    fallback = _CONTROL_CHARS.sub('?', fallback)
    escaped = fallback.replace('\\', '\\\\').replace('"', '\\"')
    value = f'{disposition}; filename="{escaped}"'
    if fallback != name:
        value += f"; filename*=UTF-8''{quote(name, safe='')}"
    return value


class Response:
    """Normalized, validated view of one outbound response.

    ``ctx`` and ``request`` are wired by the Context that owns this facade.
    """

    def __init__(self, app, req, res):
        self.app = app
        self.req = req
        self.res = res
        self.ctx = None
        self.request = None
        self._body = None
        self._explicit_status = False
        self._explicit_null_body = False
        self._discarded: List[Any] = []

    @property
    def socket(self):
        return self.res.socket

    @property
    def header(self) -> Dict[str, Any]:
        """Copy of the response headers keyed by lower-cased name."""
        return self.res.get_headers()

    headers = header

    # Status

    @property
    def status(self) -> int:
        return self.res.status_code

    @status.setter
    def status(self, code: int) -> None:
        if not isinstance(code, int) or isinstance(code, bool):
            raise TypeError(f'status code must be an integer, got {code!r}')
        if code < 100 or code > 999:
            raise ValueError(f'invalid status code: {code}')
        if self.header_sent:
            return

        self._explicit_status = True
        self.res.status_code = code
        if self.req.http_version_major < 2:
            self.res.status_message = statuses.message(code) or ''
        if self._body is not None and code in statuses.EMPTY:
            self.body = None

    @property
    def message(self) -> str:
        return self.res.status_message or statuses.message(self.status) or ''

    @message.setter
    def message(self, value: str) -> None:
        if INVALID_HEADER_CHAR.search(value):
            raise ValueError(f'Invalid character in status message: {value!r}')
        self.res.status_message = value

    @property
    def explicit_status(self) -> bool:
        return self._explicit_status

    @property
    def explicit_null_body(self) -> bool:
        return self._explicit_null_body

    # Body

    @property
    def body(self) -> Any:
        return self._body

    @body.setter
    def body(self, value: Any) -> None:
        original = self._body
        self._body = value
        if is_stream(original) and original is not value:
            self._discarded.append(original)

        if value is None:
            if self.status not in statuses.EMPTY:
                if self.type == 'application/json':
                    self._body = 'null'
                    return
                self.status = 204
            self._explicit_null_body = True
            self.remove('Content-Type')
            self.remove('Content-Length')
            self.remove('Transfer-Encoding')
            return

        if not self._explicit_status:
            self.status = 200

        set_type = not self.has('Content-Type')

        if isinstance(value, str):
            if set_type:
                self.type = 'html' if _HTML_BODY.match(value) else 'text'
            self.length = len(value.encode('utf-8'))
            return

        if isinstance(value, (bytes, bytearray, memoryview)):
            if set_type:
                self.type = 'bin'
            self.length = memoryview(value).nbytes
            return

        if is_stream(value):
            if original is not None and original is not value:
                self.remove('Content-Length')
            if set_type:
                self.type = 'bin'
            return

        # Structured data, serialized as JSON when written
        self.remove('Content-Length')
        self.type = 'json'

    @property
    def length(self) -> Optional[int]:
        if self.has('Content-Length'):
            try:
                return int(self.get('Content-Length'))
            except ValueError:
                return 0

        body = self._body
        if body is None or is_stream(body):
            return None
        if isinstance(body, str):
            return len(body.encode('utf-8'))
        if isinstance(body, (bytes, bytearray, memoryview)):
            return memoryview(body).nbytes
        return len(dump_json(body).encode('utf-8'))

    @length.setter
    def length(self, value: int) -> None:
        if not self.has('Transfer-Encoding'):
            self.set('Content-Length', value)

    @property
    def type(self) -> str:
        """Media type of the response without parameters, or ''."""
        return mime.media_type(self.get('Content-Type'))

    @type.setter
    def type(self, value: Optional[str]) -> None:
        resolved = mime.content_type(value)
        if resolved:
            self.set('Content-Type', resolved)
        else:
            self.remove('Content-Type')

    def is_(self, *types: Union[str, List[str]]) -> Union[str, bool]:
        if len(types) == 1 and isinstance(types[0], (list, tuple)):
            types = tuple(types[0])
        return mime.type_is(self.get('Content-Type'), types)

    # Caching headers

    @property
    def last_modified(self) -> Optional[datetime]:
        value = self.get('Last-Modified')
        if not value:
            return None
        try:
            return parsedate_to_datetime(value)
        except (TypeError, ValueError):
            return None

    @last_modified.setter
    def last_modified(self, value: Union[datetime, str]) -> None:
        if isinstance(value, str):
            value = parsedate_to_datetime(value)
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        self.set('Last-Modified', format_datetime(value.astimezone(timezone.utc), usegmt=True))

    @property
    def etag(self) -> str:
        return self.get('ETag')

    @etag.setter
    def etag(self, value: str) -> None:
        if not _ETAG.match(value):
            value = f'"{value}"'
        self.set('ETag', value)

    # Header helpers

    @property
    def header_sent(self) -> bool:
        return self.res.headers_sent

    @property
    def writable(self) -> bool:
        return self.res.writable

    def get(self, field: str) -> Any:
        value = self.res.get_header(field)
        return '' if value is None else value

    def has(self, field: str) -> bool:
        return self.res.has_header(field)

    def set(self, field: Union[str, Mapping[str, Any]], value: Any = None) -> None:
        """Set one header, or several from a mapping."""
        if self.header_sent:
            return

        if isinstance(field, Mapping):
            for key, item in field.items():
                self.set(key, item)
            return

        if isinstance(value, (list, tuple)):
            value = [str(item) for item in value]
        else:
            value = str(value)
        self.res.set_header(field, value)

    def append(self, field: str, value: Any) -> None:
        """Append a value to a header, keeping existing values."""
        previous = self.get(field)
        if previous:
            previous = previous if isinstance(previous, list) else [previous]
            value = previous + (list(value) if isinstance(value, (list, tuple)) else [value])
        self.set(field, value)

    def remove(self, field: str) -> None:
        if self.header_sent:
            return
        self.res.remove_header(field)

    def vary(self, field: Union[str, List[str]]) -> None:
        if self.header_sent:
            return

        existing = self.get('Vary')
        if existing == '*':
            return
        fields = field.split(',') if isinstance(field, str) else list(field)
        fields = [item.strip() for item in fields if item.strip()]
        if '*' in fields:
            self.set('Vary', '*')
            return

        values = [item.strip() for item in existing.split(',') if item.strip()] if existing else []
        seen = {item.lower() for item in values}
        for item in fields:
            if item.lower() not in seen:
                values.append(item)
                seen.add(item.lower())
        self.set('Vary', ', '.join(values))

    def redirect(self, url: str, alt: str = '/') -> None:
        """Redirect to url; 'back' means the Referrer (or alt)."""
        if url == 'back':
            url = self.ctx.get('Referrer') or alt
        self.set('Location', quote(url, safe=_URL_SAFE))

        if self.status not in statuses.REDIRECT:
            self.status = 302

        accept = self.ctx.get('Accept')
        if not accept or 'html' in accept or '*/*' in accept:
            self.type = 'html'
            escaped = html.escape(url)
            self.body = f'Redirecting to <a href="{escaped}">{escaped}</a>.'
            return
        self.type = 'text'
        self.body = f'Redirecting to {url}.'

    def attachment(self, filename: Optional[str] = None) -> None:
        if filename:
            self.type = os.path.splitext(filename)[1]
        self.set('Content-Disposition', content_disposition(filename))

    def flush_headers(self) -> None:
        self.res.flush_headers()

    async def close_streams(self, include_body: bool = True) -> None:
        """Close stream bodies that were replaced, and the current one.

        Called once the response has finished; closing a stream that was
        already drained and closed is a no-op.
        """
        streams, self._discarded = self._discarded, []
        if include_body and is_stream(self._body):
            streams.append(self._body)
        for stream in streams:
            await close_stream(stream)

    def to_json(self) -> Dict[str, Any]:
        return {
            'status': self.status,
            'message': self.message,
            'header': self.header,
        }

    def inspect(self) -> Dict[str, Any]:
        summary = self.to_json()
        summary['body'] = self.body
        return summary

    def __repr__(self) -> str:
        return f'<Response {self.status} {self.message}>'
