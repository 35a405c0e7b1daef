"""Outbound requests to the target site."""

import logging
import time
from dataclasses import dataclass, field

import requests

from .errors import (
    FetchError,
    StreamReadError,
    UpstreamConnectionError,
    UpstreamRedirectError,
    UpstreamTimeout,
    UpstreamTLSError,
)

logger = logging.getLogger(__name__)

EXCLUDED_REQUEST_HEADERS = {'host', 'connection', 'content-length', 'transfer-encoding'}
BODY_METHODS = {'POST', 'PUT', 'PATCH'}

# requests can only undo these encodings on its own.
ACCEPT_ENCODING = 'gzip, deflate'


@dataclass(frozen=True)
class ProxyRequest:
    method: str
    target_url: str
    headers: tuple = field(default_factory=tuple)
    body: bytes = b''

    @classmethod
    def from_flask(cls, flask_request, target_url):
        return cls(
            method=flask_request.method.upper(),
            target_url=target_url,
            headers=tuple(flask_request.headers.items()),
            body=flask_request.get_data(cache=True) or b'',
        )


def upstream_headers(inbound, user_agent):
    """Copy inbound headers minus the hop-by-hop ones, with a fixed User-Agent."""
    headers = {}
    for name, value in inbound:
        lowered = name.lower()
        if lowered in EXCLUDED_REQUEST_HEADERS or lowered == 'user-agent':
            continue
        if name in headers:
            separator = '; ' if lowered == 'cookie' else ', '
            headers[name] = headers[name] + separator + value
        else:
            headers[name] = value
    for name in list(headers):
        if name.lower() == 'accept-encoding':
            del headers[name]
    headers['Accept-Encoding'] = ACCEPT_ENCODING
    headers['User-Agent'] = user_agent
    return headers


class UpstreamResponse:
    """A fetched response whose body is read exactly once.

    Callers either stream it with :meth:`iter_chunks` or collect it with
    :meth:`read_all`; nothing is read from the network until one of them
    is called.
    """

    def __init__(self, response, session=None, deadline=None):
        self._response = response
        self._session = session
        self._deadline = deadline
        self._consumed = False

    @property
    def status_code(self):
        return self._response.status_code

    @property
    def headers(self):
        return self._response.headers

    @property
    def url(self):
        return self._response.url

    @property
    def content_decoded(self):
        """True when the body we hand out carries no Content-Encoding any more."""
        decoders = getattr(self._response.raw, 'CONTENT_DECODERS', ('gzip', 'deflate'))
        encoding = self._response.headers.get('Content-Encoding', '')
        codings = [token.strip().lower() for token in encoding.split(',') if token.strip()]
        return all(coding == 'identity' or coding in decoders for coding in codings)

    def header_items(self):
        """(name, value) pairs with repeated Set-Cookie headers kept apart."""
        raw_headers = getattr(self._response.raw, 'headers', None)
        cookies = []
        if raw_headers is not None and hasattr(raw_headers, 'getlist'):
            cookies = raw_headers.getlist('Set-Cookie')
        for name, value in self._response.headers.items():
            if cookies and name.lower() == 'set-cookie':
                continue
            yield name, value
        for cookie in cookies:
            yield 'Set-Cookie', cookie

    def _claim(self):
        if self._consumed:
            raise RuntimeError("upstream body already consumed")
        self._consumed = True

    def iter_chunks(self, chunk_size=8192):
        self._claim()
        try:
            for chunk in self._response.iter_content(chunk_size=chunk_size):
                if chunk:
                    yield chunk
        except requests.exceptions.RequestException as e:
            raise StreamReadError(str(e)) from e

    def read_all(self, chunk_size=65536):
        buffer = bytearray()
        for chunk in self.iter_chunks(chunk_size):
            buffer.extend(chunk)
            if self._deadline is not None and time.monotonic() > self._deadline:
                raise StreamReadError("timed out reading target response")
        return bytes(buffer)

    def close(self):
        self._response.close()
        if self._session is not None:
            self._session.close()
            self._session = None


class UpstreamFetcher:

    def __init__(self, timeout=30, max_redirects=10, user_agent=None):
        self.timeout = timeout
        self.max_redirects = max_redirects
        self.user_agent = user_agent

    @classmethod
    def from_config(cls, config):
        return cls(
            timeout=config['UPSTREAM_TIMEOUT'],
            max_redirects=config['MAX_REDIRECTS'],
            user_agent=config['UPSTREAM_USER_AGENT'],
        )

    def fetch(self, proxy_request):
        """Send ``proxy_request`` upstream and return an unread response.

        Any status code counts as a successful fetch; only network failures
        raise :class:`FetchError`.
        """
        session = requests.Session()
        session.max_redirects = self.max_redirects

        data = None
        if proxy_request.method in BODY_METHODS and proxy_request.body:
            data = proxy_request.body

        try:
            response = session.request(
                proxy_request.method,
                proxy_request.target_url,
                headers=upstream_headers(proxy_request.headers, self.user_agent),
                data=data,
                timeout=self.timeout,
                allow_redirects=True,
                stream=True,
            )
        except requests.exceptions.Timeout as e:
            session.close()
            raise UpstreamTimeout(str(e)) from e
        except requests.exceptions.SSLError as e:
            session.close()
            raise UpstreamTLSError(str(e)) from e
        except requests.exceptions.ConnectionError as e:
            session.close()
            raise UpstreamConnectionError(str(e)) from e
        except requests.exceptions.TooManyRedirects as e:
            session.close()
            raise UpstreamRedirectError(str(e)) from e
        except requests.exceptions.RequestException as e:
            session.close()
            raise FetchError(str(e)) from e

        logger.debug("%s %s -> %s", proxy_request.method, response.url, response.status_code)
        return UpstreamResponse(response, session, deadline=time.monotonic() + self.timeout)
