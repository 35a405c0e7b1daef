"""Client-side script injected into every rewritten page.

The script keeps runtime navigation and network calls inside the router:
anything the page asks for is turned into ``<origin>/api/router?url=...``
using the origin the page is actually served from.
"""

import json

SCRIPT_TEMPLATE = r"""
(function () {
  if (window.__frameproxyInstalled) { return; }
  window.__frameproxyInstalled = true;

  var BASE_URL = %(base_url)s;
  var ROUTER_PATH = '/api/router';

  function pinToSelf(name, value) {
    try {
      Object.defineProperty(window, name, {
        get: function () { return value; },
        configurable: true
      });
    } catch (e) {}
  }
  pinToSelf('top', window);
  pinToSelf('parent', window);
  pinToSelf('frameElement', null);
  if (window.self !== window) {
    try { window.self = window; } catch (e) {}
  }

  function encodeTarget(url) {
    return btoa(unescape(encodeURIComponent(String(url).replace(/%%/g, '%%25'))));
  }

  function decodeTarget(token) {
    return decodeURIComponent(decodeURIComponent(escape(atob(token.replace(/ /g, '+')))));
  }

  function isRouted(url) {
    try {
      var parsed = new URL(url, window.location.origin);
      return parsed.origin === window.location.origin &&
        parsed.pathname === ROUTER_PATH && parsed.searchParams.has('url');
    } catch (e) {
      return false;
    }
  }

  function unwrapUrl(url) {
    if (!isRouted(url)) { return url; }
    try {
      return decodeTarget(new URL(url, window.location.origin).searchParams.get('url'));
    } catch (e) {
      return url;
    }
  }

  function rewriteUrl(url) {
    if (url === undefined || url === null) { return url; }
    var value = String(url instanceof URL ? url.href : url).trim();
    if (!value || isRouted(value) || /^(data|blob|javascript):/i.test(value)) {
      return url;
    }
    try {
      var absolute = new URL(value, BASE_URL).href;
      return window.location.origin + ROUTER_PATH + '?url=' + encodeTarget(absolute);
    } catch (e) {
      return url;
    }
  }
  window.__frameproxyRewriteUrl = rewriteUrl;

  var originalFetch = window.fetch;
  if (originalFetch) {
    window.fetch = function (input, init) {
      if (typeof Request !== 'undefined' && input instanceof Request) {
        input = new Request(rewriteUrl(input.url), input);
      } else {
        input = rewriteUrl(input);
      }
      return originalFetch.call(this, input, init);
    };
  }

  var originalXhrOpen = XMLHttpRequest.prototype.open;
  XMLHttpRequest.prototype.open = function (method, url) {
    var args = Array.prototype.slice.call(arguments);
    args[1] = rewriteUrl(url);
    return originalXhrOpen.apply(this, args);
  };

  var originalWindowOpen = window.open;
  window.open = function (url) {
    var args = Array.prototype.slice.call(arguments);
    if (url) { args[0] = rewriteUrl(url); }
    return originalWindowOpen.apply(window, args);
  };

  try {
    var originalAssign = window.location.assign;
    window.location.assign = function (url) {
      return originalAssign.call(window.location, rewriteUrl(url));
    };
    var originalReplace = window.location.replace;
    window.location.replace = function (url) {
      return originalReplace.call(window.location, rewriteUrl(url));
    };
  } catch (e) {}

  var originalPushState = history.pushState;
  history.pushState = function (state, title, url) {
    return originalPushState.call(history, state, title, url ? rewriteUrl(url) : url);
  };
  var originalReplaceState = history.replaceState;
  history.replaceState = function (state, title, url) {
    return originalReplaceState.call(history, state, title, url ? rewriteUrl(url) : url);
  };

  document.addEventListener('click', function (event) {
    var anchor = event.target && event.target.closest ? event.target.closest('a[href]') : null;
    if (!anchor) { return; }
    var href = anchor.getAttribute('href');
    if (!href || href.charAt(0) === '#' || /^(javascript|mailto|data|blob):/i.test(href)) {
      return;
    }
    event.preventDefault();
    window.location.href = rewriteUrl(href);
  }, true);

  document.addEventListener('submit', function (event) {
    var form = event.target;
    if (!form || form.tagName !== 'FORM') { return; }
    var method = (form.getAttribute('method') || 'get').toLowerCase();
    var action = unwrapUrl(form.getAttribute('action') || BASE_URL);
    if (method === 'get') {
      event.preventDefault();
      var target = new URL(action, BASE_URL);
      target.search = new URLSearchParams(new FormData(form)).toString();
      window.location.href = rewriteUrl(target.href);
    } else if (!isRouted(form.getAttribute('action') || '')) {
      form.action = rewriteUrl(action);
    }
  }, true);

  function isFrameOptionsMeta(node) {
    return node.tagName === 'META' &&
      (node.getAttribute('http-equiv') || '').toLowerCase() === 'x-frame-options';
  }

  function stripFrameOptions(root) {
    if (isFrameOptionsMeta(root)) {
      root.parentNode && root.parentNode.removeChild(root);
      return;
    }
    if (!root.querySelectorAll) { return; }
    var metas = root.querySelectorAll('meta[http-equiv]');
    for (var i = 0; i < metas.length; i++) {
      if (isFrameOptionsMeta(metas[i])) {
        metas[i].parentNode.removeChild(metas[i]);
      }
    }
  }

  if (typeof MutationObserver !== 'undefined') {
    new MutationObserver(function (mutations) {
      for (var i = 0; i < mutations.length; i++) {
        var added = mutations[i].addedNodes;
        for (var j = 0; j < added.length; j++) {
          if (added[j].nodeType === 1) { stripFrameOptions(added[j]); }
        }
      }
    }).observe(document.documentElement, { childList: true, subtree: true });
  }
})();
"""


def build_interceptor_script(base_url):
    """Return the script body with ``base_url`` embedded as a JS string."""
    literal = json.dumps(base_url).replace('</', '<\\/')
    return SCRIPT_TEMPLATE % {'base_url': literal}
