"""
Media type helpers for Content-Type handling.

Resolves shorthand names and file extensions to full media types, builds
Content-Type values with a default charset, and matches media types against
wildcard patterns the way request/response ``is_`` checks need.
"""

import mimetypes
from typing import Dict, Iterable, Optional, Tuple, Union

SHORTHANDS: Dict[str, str] = {
    'bin': 'application/octet-stream',
    'css': 'text/css',
    'form': 'application/x-www-form-urlencoded',
    'html': 'text/html',
    'js': 'application/javascript',
    'json': 'application/json',
    'multipart': 'multipart/*',
    'text': 'text/plain',
    'txt': 'text/plain',
    'urlencoded': 'application/x-www-form-urlencoded',
}

# Non-text types that are still served as UTF-8 text
UTF8_TYPES = frozenset({
    'application/javascript',
    'application/json',
    'application/xml',
})


def parse_content_type(value: Optional[str]) -> Tuple[str, Dict[str, str]]:
    """Split a Content-Type header into its media type and parameters.

    The media type is lower-cased and stripped; a missing or empty header
    yields an empty media type.
    """
    if not value:
        return '', {}

    parts = value.split(';')
    params: Dict[str, str] = {}
    for param in parts[1:]:
        key, _, val = param.partition('=')
        key = key.strip().lower()
        if key:
            params[key] = val.strip().strip('"')
    return parts[0].strip().lower(), params


def media_type(value: Optional[str]) -> str:
    return parse_content_type(value)[0]


def lookup(name: str) -> Optional[str]:
    """Resolve a shorthand name or file extension to a media type."""
    if not name:
        return None
    ext = name.rsplit('.', 1)[-1].lower()
    if ext in SHORTHANDS:
        return SHORTHANDS[ext]
    guessed, _ = mimetypes.guess_type(f'file.{ext}', strict=False)
    return guessed


def content_type(value: Optional[str]) -> Optional[str]:
    """Build a full Content-Type value, adding a UTF-8 charset to text types."""
    if not value:
        return None

    mime = value if '/' in value else lookup(value)
    if not mime:
        return None

    if 'charset' not in mime.lower():
        base = media_type(mime)
        if base.startswith('text/') or base in UTF8_TYPES:
            mime = f'{mime}; charset=utf-8'
    return mime


def _normalize(pattern) -> Optional[str]:
    if not isinstance(pattern, str):
        return None
    if pattern == 'urlencoded':
        return 'application/x-www-form-urlencoded'
    if pattern == 'multipart':
        return 'multipart/*'
    if pattern.startswith('+'):
        return f'*/*{pattern}'
    return pattern if '/' in pattern else lookup(pattern)


def _mime_match(expected: str, actual: str) -> bool:
    expected_parts = expected.split('/')
    actual_parts = actual.split('/')
    if len(expected_parts) != 2 or len(actual_parts) != 2:
        return False

    if expected_parts[0] != '*' and expected_parts[0] != actual_parts[0]:
        return False

    if expected_parts[1].startswith('*+'):
        suffix = expected_parts[1][1:]
        return (len(actual_parts[1]) > len(suffix)
                and actual_parts[1].endswith(suffix))

    return expected_parts[1] == '*' or expected_parts[1] == actual_parts[1]


def type_is(value: Optional[str], types: Iterable[str]) -> Union[str, bool]:
    """Match a Content-Type value against candidate types.

    Returns the first matching candidate as given (or the actual media type
    when the candidate is a wildcard or suffix pattern), the actual media
    type when no candidates are given, and False otherwise.
    """
    actual = media_type(value)
    if not actual or '/' not in actual:
        return False

    types = list(types)
    if not types:
        return actual

    for candidate in types:
        expected = _normalize(candidate)
        if expected and _mime_match(expected, actual):
            if candidate.startswith('+') or '*' in candidate:
                return actual
            return candidate
    return False
