import io

import pytest
import requests
from requests.structures import CaseInsensitiveDict
from requests.utils import get_encoding_from_headers
from urllib3 import HTTPResponse

from frameproxy import create_app


class CountingBody(io.RawIOBase):
    """Synthetic upstream body that never holds more than one read in memory."""

    def __init__(self, size, fail_after=None):
        self.remaining = size
        self.bytes_read = 0
        self.fail_after = fail_after

    def readable(self):
        return True

    def readinto(self, buffer):
        if self.fail_after is not None and self.bytes_read >= self.fail_after:
            raise OSError("connection reset by peer")
        n = min(len(buffer), self.remaining)
        buffer[:n] = b'\x00' * n
        self.remaining -= n
        self.bytes_read += n
        return n


def build_response(url, body=b'', status=200, headers=None):
    """A real requests.Response whose body streams from ``body``."""
    if isinstance(body, (bytes, str)):
        body = io.BytesIO(body.encode('utf-8') if isinstance(body, str) else body)
    raw = HTTPResponse(
        body=body,
        headers=list((headers or {}).items()) if isinstance(headers, dict) else (headers or []),
        status=status,
        preload_content=False,
    )
    response = requests.Response()
    response.status_code = status
    response.headers = CaseInsensitiveDict(raw.headers)
    response.raw = raw
    response.url = url
    response.encoding = get_encoding_from_headers(response.headers)
    return response


class FakeUpstream:

    def __init__(self):
        self.routes = {}
        self.calls = []

    def add(self, url, body=b'', status=200, headers=None, final_url=None, error=None):
        self.routes[url] = {
            'body': body,
            'status': status,
            'headers': headers,
            'final_url': final_url or url,
            'error': error,
        }

    def __call__(self, session, method, url, **kwargs):
        self.calls.append({'method': method, 'url': url, 'max_redirects': session.max_redirects, **kwargs})
        route = self.routes[url]
        if route['error'] is not None:
            raise route['error']
        return build_response(route['final_url'], route['body'], route['status'], route['headers'])

    @property
    def last_call(self):
        return self.calls[-1]


@pytest.fixture
def upstream(monkeypatch):
    fake = FakeUpstream()

    def request(session, method, url, **kwargs):
        return fake(session, method, url, **kwargs)

    monkeypatch.setattr(requests.Session, 'request', request)
    return fake


@pytest.fixture
def app():
    app = create_app({
        'TESTING': True,
        'PROXY_ORIGIN': 'http://router.test',
        'UPSTREAM_USER_AGENT': 'FrameRouterTest/1.0',
    })
    return app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def storage(app):
    return app.extensions['frameproxy']['storage']
