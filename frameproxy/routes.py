import socket
import time

from flask import Blueprint, Response, current_app, g, jsonify, render_template_string, request

from .classifier import ContentKind, classify
from .codec import router_url, target_from_token
from .errors import FetchError, RouterError, StreamReadError
from .fetcher import ProxyRequest
from .relay import CORS_HEADERS, StreamRelay, forwarded_headers, set_content_type, with_cors
from .rewriter import decode_markup, rewrite_or_passthrough

bp = Blueprint('router', __name__)

ROUTER_METHODS = ['GET', 'POST', 'PUT', 'PATCH', 'DELETE', 'HEAD', 'OPTIONS']
HTML_CONTENT_TYPE = 'text/html; charset=utf-8'

INDEX_HTML = """<!DOCTYPE html>
<html>
<head>
  <title>Frame Router</title>
  <style>
    body { font-family: Arial, sans-serif; margin: 20px; }
    iframe { width: 100%; height: 80vh; border: 1px solid #ccc; }
    input[type=text] { width: 60%; padding: 6px; }
  </style>
</head>
<body>
  <form action="/browse" method="get">
    <input type="text" name="url" placeholder="example.com" value="{{ target_url or '' }}">
    <button type="submit">Go</button>
  </form>
  {% if frame_src %}
  <p>Target URL: <strong>{{ target_url }}</strong></p>
  <iframe src="{{ frame_src }}"></iframe>
  {% endif %}
</body>
</html>
"""


def _state():
    return current_app.extensions['frameproxy']


def get_storage():
    return _state()['storage']


def get_fetcher():
    return _state()['fetcher']


def proxy_origin():
    return current_app.config.get('PROXY_ORIGIN') or request.host_url.rstrip('/')


def _elapsed_ms(started):
    return int((time.monotonic() - started) * 1000)


@bp.before_app_request
def mark_request_start():
    g.request_started = time.perf_counter()


@bp.errorhandler(RouterError)
def handle_router_error(error):
    response = jsonify(error.to_dict())
    response.status_code = error.status
    response.headers.extend(CORS_HEADERS)
    return response


@bp.route('/')
def index():
    """Landing page with the address bar."""
    return render_template_string(INDEX_HTML)


@bp.route('/browse')
def browse():
    """Show ``?url=`` in an iframe served through the router.

    A bare host such as ``example.com`` is treated as https.
    """
    target_url = (request.args.get('url') or '').strip()
    if not target_url:
        return jsonify({'message': 'Missing url query parameter'}), 400
    if not target_url.startswith(('http://', 'https://')):
        target_url = 'https://' + target_url
    return render_template_string(INDEX_HTML, target_url=target_url, frame_src=router_url(target_url))


def preflight():
    response = Response(status=200)
    response.headers.extend(CORS_HEADERS)
    response.headers['Access-Control-Max-Age'] = '86400'
    return response


@bp.route('/api/router', methods=ROUTER_METHODS)
def router():
    """Fetch the URL carried in ``?url=`` and hand it back to the iframe.

    HTML is rewritten so links, assets and runtime requests come back here;
    everything else is streamed through untouched.
    """
    if request.method == 'OPTIONS':
        return preflight()

    storage = get_storage()
    try:
        target_url = target_from_token(request.args.get('url'))
    except RouterError as e:
        storage.increment_error_count()
        current_app.logger.info("Rejected router request: %s", e)
        raise

    proxy_request = ProxyRequest.from_flask(request, target_url)
    current_app.logger.info("%s %s", proxy_request.method, target_url)

    started = time.monotonic()
    storage.increment_request_count()
    storage.adjust_active_connections(1)
    try:
        upstream = get_fetcher().fetch(proxy_request)
    except FetchError as e:
        current_app.logger.error("Fetching %s failed: %s", target_url, e)
        _record_failure(proxy_request, e.status, started)
        raise

    try:
        kind, content_type = classify(upstream.headers, target_url)
        if kind is ContentKind.HTML and not upstream.content_decoded:
            current_app.logger.warning(
                "Relaying %s unmodified, cannot decode Content-Encoding %r",
                target_url, upstream.headers.get('Content-Encoding'),
            )
        elif kind is ContentKind.HTML:
            return _serve_html(upstream, proxy_request, started)
        current_app.logger.debug("Streaming %s as %s (%s)", target_url, kind.value, content_type)
        relay = StreamRelay(
            upstream,
            storage,
            proxy_request.method,
            target_url,
            chunk_size=current_app.config['RELAY_CHUNK_SIZE'],
            started=started,
        )
        return relay.response(content_type)
    except StreamReadError as e:
        current_app.logger.error("Reading %s failed: %s", target_url, e)
        upstream.close()
        _record_failure(proxy_request, e.status, started)
        raise
    except Exception:
        current_app.logger.exception("Serving %s failed", target_url)
        upstream.close()
        _record_failure(proxy_request, 500, started)
        raise


def _record_failure(proxy_request, status, started):
    storage = get_storage()
    storage.increment_error_count()
    storage.record_request(proxy_request.method, proxy_request.target_url, status, 0, _elapsed_ms(started))
    storage.adjust_active_connections(-1)


def _serve_html(upstream, proxy_request, started):
    storage = get_storage()
    try:
        data = upstream.read_all()
    finally:
        upstream.close()

    markup = decode_markup(data, upstream.headers.get('Content-Type', ''))
    body = rewrite_or_passthrough(markup, upstream.url, proxy_origin()).encode('utf-8')

    headers = with_cors(forwarded_headers(upstream, proxy_request.target_url))
    headers = set_content_type(headers, HTML_CONTENT_TYPE)
    headers = [(name, value) for name, value in headers if name.lower() != 'x-content-type-options']
    headers.append(('X-Content-Type-Options', 'nosniff'))

    response = Response(body, status=upstream.status_code, headers=headers)

    storage.add_data_transferred(len(body))
    storage.record_request(
        proxy_request.method, proxy_request.target_url, upstream.status_code, len(body), _elapsed_ms(started)
    )
    storage.adjust_active_connections(-1)
    return response


# --- dashboard data ---

@bp.route('/api/request-logs', methods=['GET'])
def request_logs():
    limit = request.args.get('limit')
    if limit is None:
        limit = current_app.config['REQUEST_LOG_LIMIT']
    else:
        try:
            limit = int(limit)
        except ValueError:
            return jsonify({'message': 'Invalid limit', 'limit': limit}), 400
    return jsonify(get_storage().get_request_logs(limit))


@bp.route('/api/request-logs', methods=['DELETE'])
def clear_request_logs():
    get_storage().clear_request_logs()
    return jsonify({'message': 'Request logs cleared successfully'})


@bp.route('/api/server-stats')
def server_stats():
    return jsonify(get_storage().get_server_stats())


def format_uptime(seconds):
    if seconds < 0:
        return '00H:00M:00S'
    seconds = int(seconds)
    days, seconds = divmod(seconds, 86400)
    hours, seconds = divmod(seconds, 3600)
    minutes, seconds = divmod(seconds, 60)
    prefix = f'{days} Days & ' if days > 0 else ''
    return f'{prefix}{hours:02d}H:{minutes:02d}M:{seconds:02d}S'


@bp.route('/api/uptime')
def uptime():
    return jsonify({'uptime': format_uptime(time.time() - _state()['started_at'])})

@bp.route('/api/ping')
def ping():
    started = g.get('request_started', time.perf_counter())
    latency = (time.perf_counter() - started) * 1000
    return jsonify({'message': 'pong', 'latency': f'{latency:.2f} ms'})


def local_ip():
    """Address of the interface used for outbound traffic.

    Connecting a UDP socket sends nothing; it only picks a route.
    """
    try:
        with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as sock:
            sock.connect(('10.255.255.255', 1))
            return sock.getsockname()[0]
    except OSError as e:
        current_app.logger.warning("No routable interface found: %s", e)
    try:
        return socket.gethostbyname(socket.gethostname())
    except OSError as e:
        current_app.logger.error("Could not resolve local hostname: %s", e)
    return 'Unable to determine local IP, check logs'


@bp.route('/api/server-ip')
def server_ip():
    return jsonify({'ip': local_ip()})
