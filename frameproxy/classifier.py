from enum import Enum
from urllib.parse import urlparse


class ContentKind(Enum):
    HTML = 'html'
    BINARY = 'binary'
    TEXT = 'text'


BINARY_PREFIXES = (
    'image/',
    'video/',
    'audio/',
    'application/pdf',
    'application/zip',
    'application/x-zip-compressed',
    'application/octet-stream',
    'application/x-rar-compressed',
    'application/x-tar',
    'application/gzip',
    'font/',
    'application/font-',
    'application/x-font-',
)

TEXT_MARKERS = ('text/', 'application/json', 'application/xml')

VIDEO_EXTENSIONS = ('.mp4', '.webm', '.ogg', '.m3u8', '.mpd', '.mov')

# Static assets some servers wrongly label as text/html.
EXTENSION_OVERRIDES = {
    '.js': 'application/javascript; charset=utf-8',
    '.mjs': 'application/javascript; charset=utf-8',
    '.wasm': 'application/wasm',
}


def path_extension(url):
    path = urlparse(url).path.lower()
    name = path.rsplit('/', 1)[-1]
    if '.' not in name:
        return ''
    return '.' + name.rsplit('.', 1)[-1]


def is_video_url(url):
    return path_extension(url) in VIDEO_EXTENSIONS


def effective_content_type(content_type, url):
    """Content type to serve, correcting script/wasm assets mislabelled as HTML."""
    content_type = content_type or ''
    if 'text/html' in content_type.lower():
        override = EXTENSION_OVERRIDES.get(path_extension(url))
        if override:
            return override
    return content_type


def classify_content_type(content_type):
    content_type = (content_type or '').lower()
    if 'text/html' in content_type:
        return ContentKind.HTML
    if any(prefix in content_type for prefix in BINARY_PREFIXES):
        return ContentKind.BINARY
    if any(marker in content_type for marker in TEXT_MARKERS):
        return ContentKind.TEXT
    return ContentKind.BINARY


def classify(headers, url):
    """Pick the handling path for an upstream response.

    Returns ``(kind, content_type)`` where ``content_type`` is the value that
    should be sent to the client.
    """
    content_type = effective_content_type(headers.get('Content-Type', ''), url)
    return classify_content_type(content_type), content_type
