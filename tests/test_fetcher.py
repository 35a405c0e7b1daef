import pytest
import requests

from frameproxy.errors import (
    FetchError,
    StreamReadError,
    UpstreamConnectionError,
    UpstreamRedirectError,
    UpstreamTimeout,
    UpstreamTLSError,
)
from frameproxy.fetcher import ProxyRequest, UpstreamFetcher, UpstreamResponse, upstream_headers

from .conftest import CountingBody, build_response

TARGET = 'https://example.com/api'


@pytest.fixture
def fetcher():
    return UpstreamFetcher(timeout=30, max_redirects=10, user_agent='FixedAgent/1.0')


def test_upstream_headers_drop_hop_by_hop_and_pin_user_agent():
    headers = upstream_headers([
        ('Host', 'router.test'),
        ('Connection', 'keep-alive'),
        ('Content-Length', '12'),
        ('Transfer-Encoding', 'chunked'),
        ('User-Agent', 'Browser/1.0'),
        ('Accept', 'text/html'),
        ('Accept-Encoding', 'gzip, deflate, br'),
        ('X-Custom', 'a'),
        ('X-Custom', 'b'),
    ], 'FixedAgent/1.0')
    assert headers == {
        'Accept': 'text/html',
        'X-Custom': 'a, b',
        'Accept-Encoding': 'gzip, deflate',
        'User-Agent': 'FixedAgent/1.0',
    }


def test_fetch_forwards_method_headers_and_options(upstream, fetcher):
    upstream.add(TARGET, body=b'ok')
    request = ProxyRequest('GET', TARGET, (('Accept', 'application/json'), ('Host', 'router.test')))
    response = fetcher.fetch(request)

    call = upstream.last_call
    assert call['method'] == 'GET'
    assert call['url'] == TARGET
    assert call['headers']['Accept'] == 'application/json'
    assert 'Host' not in call['headers']
    assert call['headers']['User-Agent'] == 'FixedAgent/1.0'
    assert call['timeout'] == 30
    assert call['allow_redirects'] is True
    assert call['stream'] is True
    assert call['max_redirects'] == 10
    assert call['data'] is None
    assert response.read_all() == b'ok'


@pytest.mark.parametrize('method, body, sent', [
    ('POST', b'a=1', b'a=1'),
    ('PUT', b'{"x": 1}', b'{"x": 1}'),
    ('PATCH', b'x', b'x'),
    ('POST', b'', None),
    ('GET', b'ignored', None),
    ('DELETE', b'ignored', None),
])
def test_body_only_sent_for_write_methods(upstream, fetcher, method, body, sent):
    upstream.add(TARGET)
    fetcher.fetch(ProxyRequest(method, TARGET, (), body))
    assert upstream.last_call['data'] == sent


@pytest.mark.parametrize('status', [200, 204, 301, 404, 418, 500, 503])
def test_every_status_is_a_successful_fetch(upstream, fetcher, status):
    upstream.add(TARGET, status=status)
    assert fetcher.fetch(ProxyRequest('GET', TARGET)).status_code == status


@pytest.mark.parametrize('error, expected, status', [
    (requests.exceptions.ConnectTimeout('connect timed out'), UpstreamTimeout, 504),
    (requests.exceptions.ReadTimeout('read timed out'), UpstreamTimeout, 504),
    (requests.exceptions.SSLError('bad certificate'), UpstreamTLSError, 502),
    (requests.exceptions.ConnectionError('Name or service not known'), UpstreamConnectionError, 502),
    (requests.exceptions.TooManyRedirects('Exceeded 10 redirects.'), UpstreamRedirectError, 502),
    (requests.exceptions.InvalidURL('bad url'), FetchError, 500),
])
def test_network_failures_become_fetch_errors(upstream, fetcher, error, expected, status):
    upstream.add(TARGET, error=error)
    with pytest.raises(expected) as excinfo:
        fetcher.fetch(ProxyRequest('GET', TARGET))
    assert excinfo.value.status == status
    assert excinfo.value.to_dict()['message'] == 'Error fetching target URL'


def test_from_config_reads_settings():
    fetcher = UpstreamFetcher.from_config({
        'UPSTREAM_TIMEOUT': 5,
        'MAX_REDIRECTS': 12,
        'UPSTREAM_USER_AGENT': 'Agent',
    })
    assert (fetcher.timeout, fetcher.max_redirects, fetcher.user_agent) == (5, 12, 'Agent')


def test_proxy_request_from_flask(app):
    with app.test_request_context(
        '/api/router?url=x', method='POST', data=b'payload', headers={'X-Test': '1'}
    ):
        from flask import request
        proxy_request = ProxyRequest.from_flask(request, TARGET)
    assert proxy_request.method == 'POST'
    assert proxy_request.body == b'payload'
    assert ('X-Test', '1') in proxy_request.headers


def test_body_can_only_be_consumed_once():
    upstream = UpstreamResponse(build_response(TARGET, b'data'))
    assert upstream.read_all() == b'data'
    with pytest.raises(RuntimeError):
        list(upstream.iter_chunks())


def test_read_errors_become_stream_read_errors():
    upstream = UpstreamResponse(build_response(TARGET, CountingBody(100_000, fail_after=1024)))
    with pytest.raises(StreamReadError):
        upstream.read_all(chunk_size=1024)


def test_set_cookie_headers_stay_separate():
    response = build_response(TARGET, headers=[
        ('Content-Type', 'text/plain'),
        ('Set-Cookie', 'a=1; Path=/'),
        ('Set-Cookie', 'b=2; Path=/'),
    ])
    items = list(UpstreamResponse(response).header_items())
    assert ('Set-Cookie', 'a=1; Path=/') in items
    assert ('Set-Cookie', 'b=2; Path=/') in items
    assert ('Content-Type', 'text/plain') in items


@pytest.mark.parametrize('encoding, decoded', [
    (None, True),
    ('gzip', True),
    ('deflate', True),
    ('identity', True),
    ('GZIP', True),
    ('compress', False),
    ('gzip, compress', False),
])
def test_content_decoded_reflects_what_requests_undoes(encoding, decoded):
    headers = {'Content-Encoding': encoding} if encoding else {}
    assert UpstreamResponse(build_response(TARGET, b'', headers=headers)).content_decoded is decoded
