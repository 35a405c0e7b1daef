"""Opaque ``url`` tokens carried in the router's own query string.

A token is plain base64 of the UTF-8 bytes of an absolute URL, with every
'%' written as '%25'.
"""

import base64
import binascii
import re
from urllib.parse import unquote, urlparse

from .errors import InvalidTargetURL, InvalidTokenFormat, MissingTargetURL

ROUTER_PATH = '/api/router'

# decodeURIComponent rejects a '%' that does not start an escape.
_BAD_ESCAPE = re.compile(r'%(?![0-9A-Fa-f]{2})')


def encode(url):
    # Only '%' is escaped, so the single unquote in decode() restores the
    # URL exactly, escapes included.
    text = url.replace('%', '%25')
    return base64.b64encode(text.encode('utf-8')).decode('ascii')


def decode(token):
    """Turn a token back into a URL string.

    The decoded text goes through one percent-decoding pass; text without
    escapes comes back unchanged.
    """
    # '+' arrives as a space once the query string has been parsed.
    token = token.replace(' ', '+')
    token += '=' * (-len(token) % 4)
    try:
        raw = base64.b64decode(token, validate=True)
        text = raw.decode('utf-8')
    except (binascii.Error, UnicodeDecodeError) as e:
        raise InvalidTokenFormat(str(e)) from e

    if _BAD_ESCAPE.search(text):
        raise InvalidTokenFormat("malformed percent escape")
    try:
        return unquote(text, errors='strict')
    except UnicodeDecodeError as e:
        raise InvalidTokenFormat(str(e)) from e


def router_url(url, origin=''):
    return f"{origin}{ROUTER_PATH}?url={encode(url)}"


def is_absolute_http_url(url):
    try:
        parsed = urlparse(url)
    except ValueError:
        return False
    return parsed.scheme in ('http', 'https') and bool(parsed.netloc)


def target_from_token(token):
    """Decode and validate the ``url`` query parameter of a router request."""
    if not token:
        raise MissingTargetURL()
    target = decode(token)
    if not target:
        raise MissingTargetURL()
    if not is_absolute_http_url(target):
        raise InvalidTargetURL(target)
    return target
