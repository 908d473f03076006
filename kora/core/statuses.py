"""
HTTP status code tables used by the response facade and the dispatcher.
"""

from http import HTTPStatus
from typing import Optional

# Status codes that must not carry a response body
EMPTY = frozenset({204, 205, 304})

# Status codes that redirect the client
REDIRECT = frozenset({300, 301, 302, 303, 305, 307, 308})


def message(code: int) -> Optional[str]:
    """Return the reason phrase for a known status code, else None."""
    try:
        return HTTPStatus(code).phrase
    except ValueError:
        return None


def is_known(code) -> bool:
    return (isinstance(code, int) and not isinstance(code, bool)
            and message(code) is not None)
