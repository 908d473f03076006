"""
Request facade wrapping the raw inbound transport request.

Exposes normalized accessors over the transport object: header lookup,
method and URL parts, query parsing, host/protocol/ip resolution (with proxy
trust from the application config) and Content-Type inspection.
"""

import ipaddress
import re
from typing import Any, Dict, List, Mapping, Optional, Union
from urllib.parse import SplitResult, parse_qs, urlencode, urlsplit, urlunsplit

from . import mime

IDEMPOTENT_METHODS = frozenset({'GET', 'HEAD', 'PUT', 'DELETE', 'OPTIONS', 'TRACE'})

_ABSOLUTE_URL = re.compile(r'^https?://', re.IGNORECASE)

# Marks a URL that failed to parse, distinct from "not parsed yet"
_UNPARSABLE = object()


def _is_ip(value: str) -> bool:
    try:
        ipaddress.ip_address(value)
    except ValueError:
        return False
    return True


class Request:
    """Normalized view of one inbound request.

    ``ctx`` and ``response`` are wired by the Context that owns this facade.
    """

    def __init__(self, app, req, res):
        self.app = app
        self.req = req
        self.res = res
        self.ctx = None
        self.response = None
        self.original_url = req.url
        self._ip: Optional[str] = None
        self._url = None
        self._query_cache: Dict[str, Dict[str, Any]] = {}

    # Headers

    @property
    def header(self) -> Dict[str, str]:
        """The transport request's header mapping, unmodified."""
        return self.req.headers

    @header.setter
    def header(self, value: Mapping[str, str]) -> None:
        self.req.headers = value

    headers = header

    def get(self, field: str) -> str:
        """Return a request header value by case-insensitive name, or ''.

        'Referer' and 'Referrer' are interchangeable.
        """
        name = field.lower()
        if name in ('referer', 'referrer'):
            return self._lookup('referrer') or self._lookup('referer') or ''
        return self._lookup(name) or ''

    def _lookup(self, name: str) -> Optional[str]:
        headers = self.req.headers
        if name in headers:
            return headers[name]
        for key, value in headers.items():
            if key.lower() == name:
                return value
        return None

    # Method and URL

    @property
    def method(self) -> str:
        return self.req.method

    @method.setter
    def method(self, value: str) -> None:
        self.req.method = value

    @property
    def url(self) -> str:
        return self.req.url

    @url.setter
    def url(self, value: str) -> None:
        self.req.url = value

    @property
    def origin(self) -> str:
        return f'{self.protocol}://{self.host}'

    @property
    def href(self) -> str:
        if _ABSOLUTE_URL.match(self.original_url or ''):
            return self.original_url
        return self.origin + (self.original_url or '')

    @property
    def path(self) -> str:
        return urlsplit(self.url).path

    @path.setter
    def path(self, value: str) -> None:
        parts = urlsplit(self.url)
        if parts.path == value:
            return
        self.url = urlunsplit(parts._replace(path=value))

    @property
    def querystring(self) -> str:
        return urlsplit(self.url).query

    @querystring.setter
    def querystring(self, value: str) -> None:
        parts = urlsplit(self.url)
        if parts.query == value:
            return
        self.url = urlunsplit(parts._replace(query=value))

    @property
    def search(self) -> str:
        querystring = self.querystring
        return f'?{querystring}' if querystring else ''

    @search.setter
    def search(self, value: str) -> None:
        self.querystring = value[1:] if value.startswith('?') else value

    @property
    def query(self) -> Dict[str, Any]:
        """Parsed query string; repeated keys map to lists.

        The parsed mapping is cached per query string.
        """
        querystring = self.querystring
        if querystring not in self._query_cache:
            parsed = parse_qs(querystring, keep_blank_values=True)
            self._query_cache[querystring] = {
                key: values[0] if len(values) == 1 else values
                for key, values in parsed.items()
            }
        return self._query_cache[querystring]

    @query.setter
    def query(self, value: Mapping[str, Any]) -> None:
        self.querystring = urlencode(value, doseq=True)

    @property
    def URL(self) -> Optional[SplitResult]:
        """The full request URL parsed; None when it cannot be parsed."""
        if self._url is None:
            try:
                self._url = urlsplit(f'{self.origin}{self.original_url or ""}')
            except ValueError:
                self._url = _UNPARSABLE
        return None if self._url is _UNPARSABLE else self._url

    # Host and connection

    @property
    def host(self) -> str:
        """Host header (X-Forwarded-Host when the app trusts proxies)."""
        host = self.app.config.proxy and self.get('X-Forwarded-Host')
        if not host:
            if self.req.http_version_major >= 2:
                host = self.get(':authority')
            if not host:
                host = self.get('Host')
        if not host:
            return ''
        return host.split(',')[0].strip()

    @property
    def hostname(self) -> str:
        host = self.host
        if not host:
            return ''
        if host.startswith('['):
            url = self.URL
            return (url.hostname or '') if url else ''
        return host.split(':')[0]

    @property
    def protocol(self) -> str:
        if self.socket.encrypted:
            return 'https'
        if not self.app.config.proxy:
            return 'http'
        proto = self.get('X-Forwarded-Proto')
        return proto.split(',')[0].strip() if proto else 'http'

    @property
    def secure(self) -> bool:
        return self.protocol == 'https'

    @property
    def ips(self) -> List[str]:
        """Client addresses from the proxy header, when proxies are trusted."""
        config = self.app.config
        value = self.get(config.proxy_ip_header) if config.proxy else ''
        ips = [ip.strip() for ip in value.split(',')] if value else []
        if config.max_ips_count > 0:
            ips = ips[-config.max_ips_count:]
        return ips

    @property
    def ip(self) -> str:
        if self._ip is None:
            ips = self.ips
            self._ip = ips[0] if ips else (self.socket.remote_address or '')
        return self._ip

    @ip.setter
    def ip(self, value: str) -> None:
        self._ip = value

    @property
    def subdomains(self) -> List[str]:
        hostname = self.hostname
        if not hostname or _is_ip(hostname):
            return []
        return hostname.split('.')[::-1][self.app.config.subdomain_offset:]

    @property
    def idempotent(self) -> bool:
        return self.method in IDEMPOTENT_METHODS

    @property
    def socket(self):
        return self.req.socket

    @property
    def stream(self):
        """Readable request body stream of the transport."""
        return self.req.stream

    # Body metadata

    @property
    def type(self) -> str:
        """Media type of the request body without parameters, or ''."""
        return mime.media_type(self.get('Content-Type'))

    @property
    def charset(self) -> str:
        _, params = mime.parse_content_type(self.get('Content-Type'))
        return params.get('charset', '').lower()

    @property
    def length(self) -> Optional[int]:
        value = self.get('Content-Length')
        if not value:
            return None
        try:
            return int(value)
        except ValueError:
            return None

    def has_body(self) -> bool:
        return bool(self.get('Transfer-Encoding')) or self.length is not None

    def is_(self, *types: Union[str, List[str]]) -> Union[str, bool, None]:
        """Check the request Content-Type against the given types.

        Returns None when the request has no body, otherwise the matching
        type (see mime.type_is) or False.
        """
        if len(types) == 1 and isinstance(types[0], (list, tuple)):
            types = tuple(types[0])
        if not self.has_body():
            return None
        return mime.type_is(self.get('Content-Type'), types)

    def to_json(self) -> Dict[str, Any]:
        return {
            'method': self.method,
            'url': self.url,
            'header': self.header,
        }

    inspect = to_json

    def __repr__(self) -> str:
        return f'<Request {self.method} {self.url}>'
