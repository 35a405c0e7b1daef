"""Rewriting of HTML pages so their links keep going through the router."""

import logging
import re
from dataclasses import dataclass
from urllib.parse import urljoin

from bs4 import BeautifulSoup, UnicodeDammit

from .classifier import is_video_url
from .codec import is_absolute_http_url, router_url
from .interceptor import build_interceptor_script

logger = logging.getLogger(__name__)

SKIPPED_PREFIXES = ('javascript:', '#', 'data:', 'mailto:', 'blob:')
SRCSET_SKIPPED_PREFIXES = ('javascript:', '#', 'data:')
MEDIA_TAGS = ('video', 'source')

_TARGET_BLANK = re.compile(r'target="_blank"', re.IGNORECASE)
_CHARSET = re.compile(r'charset=["\']?([\w.:-]+)', re.IGNORECASE)

# Textual frame-busting neutralisation. Order matters: conditionals and
# assignments go before the bare property accesses they contain.
_FRAME_BUSTERS = (
    (re.compile(r'if\s*\(\s*(?:window\.)?self\s*!==?\s*(?:window\.)?top\s*\)'), 'if(false)'),
    (re.compile(r'if\s*\(\s*(?:window\.)?top\s*!==?\s*(?:window\.)?self\s*\)'), 'if(false)'),
    (re.compile(r'(?<![\w$.])(?:window\.)?(?:top|parent)\.location(?:\.href)?\s*=(?!=)[^;\n}]*;?'),
     '/* frame navigation removed */'),
    (re.compile(r'(?<![\w$.])(?:window\.)?(?:top|parent)\.location\b'),
     '/* frame access removed */ self.location'),
    (re.compile(r'\bwindow\.top\b'), 'window.self'),
    (re.compile(r'\bwindow\.frameElement\b'), 'null'),
    (re.compile(r'(?<![\w.$])frameElement\b'), 'null'),
)


@dataclass(frozen=True)
class RewriteContext:
    target_url: str
    proxy_origin: str

    def resolve(self, value):
        try:
            return urljoin(self.target_url, value)
        except ValueError:
            return None


def decode_markup(data, content_type=''):
    """Decode upstream bytes, trusting a declared charset before sniffing."""
    match = _CHARSET.search(content_type or '')
    declared = [match.group(1)] if match else []
    dammit = UnicodeDammit(data, known_definite_encodings=declared, user_encodings=['utf-8'], is_html=True)
    if dammit.unicode_markup is None:
        return data.decode('utf-8', errors='replace')
    return dammit.unicode_markup


def prefilter(markup):
    return _TARGET_BLANK.sub('target="_self"', markup)


def neutralize_frame_busting(script):
    for pattern, replacement in _FRAME_BUSTERS:
        script = pattern.sub(replacement, script)
    return script


def rewrite_url(value, context, bypass=False):
    """Route one attribute value through the router.

    ``bypass`` returns the resolved absolute URL without the router wrapper.
    Values with a skipped scheme or that do not resolve to http(s) come back
    untouched.
    """
    stripped = value.strip()
    if not stripped or stripped.lower().startswith(SKIPPED_PREFIXES):
        return value
    absolute = context.resolve(stripped)
    if absolute is None or not is_absolute_http_url(absolute):
        return value
    if bypass or is_video_url(absolute):
        return absolute
    return router_url(absolute, context.proxy_origin)


def rewrite_srcset(value, context):
    entries = []
    for entry in value.split(','):
        entry = entry.strip()
        if not entry:
            continue
        parts = entry.split(None, 1)
        url = parts[0]
        if url.lower().startswith(SRCSET_SKIPPED_PREFIXES):
            entries.append(entry)
            continue
        absolute = context.resolve(url)
        if absolute is None or not is_absolute_http_url(absolute):
            entries.append(entry)
            continue
        rewritten = router_url(absolute, context.proxy_origin)
        entries.append(rewritten + (' ' + parts[1] if len(parts) > 1 else ''))
    return ', '.join(entries)


def _is_frame_options_meta(tag):
    return tag.name == 'meta' and tag.get('http-equiv', '').strip().lower() == 'x-frame-options'


def _is_preload_link(tag):
    rel = tag.get('rel') or []
    if isinstance(rel, str):
        rel = rel.split()
    return tag.name == 'link' and 'preload' in (r.lower() for r in rel)


def rewrite_html(markup, target_url, proxy_origin):
    """Return ``markup`` rewritten to run inside the router's iframe."""
    context = RewriteContext(target_url, proxy_origin)
    soup = BeautifulSoup(prefilter(markup), 'html.parser')

    for meta in soup.find_all(_is_frame_options_meta):
        logger.debug("Removed X-Frame-Options meta tag from %s", target_url)
        meta.decompose()

    for link in soup.find_all(_is_preload_link):
        link.decompose()

    for script in soup.find_all('script'):
        if script.has_attr('src') or script.string is None:
            continue
        script.string = neutralize_frame_busting(str(script.string))

    for tag_name, attr in (('a', 'href'), ('link', 'href'), ('form', 'action')):
        for tag in soup.find_all(tag_name, attrs={attr: True}):
            tag[attr] = rewrite_url(tag[attr], context)

    for tag in soup.find_all(src=True):
        tag['src'] = rewrite_url(tag['src'], context, bypass=tag.name in MEDIA_TAGS)

    for tag in soup.find_all(srcset=True):
        tag['srcset'] = rewrite_srcset(tag['srcset'], context)

    interceptor = soup.new_tag('script')
    interceptor.string = build_interceptor_script(target_url)
    if soup.head is not None:
        soup.head.insert(0, interceptor)
    elif soup.body is not None:
        soup.body.append(interceptor)
    else:
        soup.insert(0, interceptor)

    return str(soup)


def rewrite_or_passthrough(markup, target_url, proxy_origin):
    """Rewrite ``markup``; on a parser failure serve it as fetched."""
    try:
        return rewrite_html(markup, target_url, proxy_origin)
    except Exception:
        logger.exception("Rewriting %s failed, serving it unmodified", target_url)
        return prefilter(markup)
