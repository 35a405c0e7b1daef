"""Streaming non-HTML upstream bodies back to the client."""

import logging
import time

from flask import Response

from .errors import StreamReadError

logger = logging.getLogger(__name__)

CORS_HEADERS = {
    'Access-Control-Allow-Origin': '*',
    'Access-Control-Allow-Methods': 'GET, POST, PUT, DELETE, OPTIONS',
    'Access-Control-Allow-Headers': 'Content-Type, Authorization, X-Requested-With',
}

# Headers that would stop the page rendering inside our iframe.
FRAMING_HEADERS = {
    'x-frame-options',
    'content-security-policy',
    'content-security-policy-report-only',
    'x-webkit-csp',
}

# Recomputed by the WSGI server or only meaningful for one hop.
TRANSPORT_HEADERS = {
    'content-length',
    'transfer-encoding',
    'connection',
    'keep-alive',
    'proxy-authenticate',
    'proxy-authorization',
    'te',
    'trailer',
    'trailers',
    'upgrade',
}


def forwarded_headers(upstream, target_url):
    """Upstream headers that may reach the client, as a list of pairs."""
    headers = []
    for name, value in upstream.header_items():
        lowered = name.lower()
        if lowered in FRAMING_HEADERS:
            if lowered == 'x-frame-options' and value.strip().upper() == 'DENY':
                logger.info("Dropped X-Frame-Options: DENY from %s", target_url)
            continue
        if lowered in TRANSPORT_HEADERS:
            continue
        # No longer true once requests has decoded the body.
        if lowered == 'content-encoding' and upstream.content_decoded:
            continue
        headers.append((name, value))
    return headers


def with_cors(headers):
    cors = {name.lower() for name in CORS_HEADERS}
    kept = [(name, value) for name, value in headers if name.lower() not in cors]
    kept.extend(CORS_HEADERS.items())
    return kept


def set_content_type(headers, content_type):
    headers = [(name, value) for name, value in headers if name.lower() != 'content-type']
    if content_type:
        headers.append(('Content-Type', content_type))
    return headers


class StreamRelay:
    """Pipe an upstream body to the client chunk by chunk.

    The WSGI server pulls one chunk at a time, so a slow client holds back
    the upstream read instead of the body piling up in memory. Accounting
    runs once, when the server closes the response.
    """

    def __init__(self, upstream, storage, method, target_url, chunk_size=8192, started=None):
        self.upstream = upstream
        self.storage = storage
        self.method = method
        self.target_url = target_url
        self.chunk_size = chunk_size
        self.started = started if started is not None else time.monotonic()
        self.sent = 0
        self.failed = False
        self.finished = False

    def generate(self):
        try:
            for chunk in self.upstream.iter_chunks(self.chunk_size):
                self.sent += len(chunk)
                yield chunk
        except StreamReadError:
            self.failed = True
            logger.error("Stream from %s broke after %d bytes", self.target_url, self.sent)
            raise

    def finish(self):
        if self.finished:
            return
        self.finished = True
        self.upstream.close()

        status = StreamReadError.status if self.failed else self.upstream.status_code
        duration = int((time.monotonic() - self.started) * 1000)
        if self.failed:
            self.storage.increment_error_count()
        self.storage.add_data_transferred(self.sent)
        self.storage.record_request(self.method, self.target_url, status, self.sent, duration)
        self.storage.adjust_active_connections(-1)

    def response(self, content_type):
        headers = forwarded_headers(self.upstream, self.target_url)
        headers = set_content_type(with_cors(headers), content_type or 'application/octet-stream')
        response = Response(
            self.generate(),
            status=self.upstream.status_code,
            headers=headers,
        )
        response.call_on_close(self.finish)
        return response
