"""Frame router: a rewriting HTTP(S) proxy for browsing inside an iframe."""

import time

from flask import Flask

from .config import Config
from .fetcher import UpstreamFetcher
from .logs import configure_logging
from .storage import MemoryStorage

__version__ = '1.0.0'


def create_app(config=None):
    app = Flask(__name__)
    app.config.from_object(Config)
    app.config.from_prefixed_env('FRAMEPROXY')
    if config:
        app.config.update(config)

    configure_logging(app)

    app.extensions['frameproxy'] = {
        'storage': MemoryStorage(capacity=app.config['REQUEST_LOG_CAPACITY']),
        'fetcher': UpstreamFetcher.from_config(app.config),
        'started_at': time.time(),
    }

    from .routes import bp
    app.register_blueprint(bp)

    return app
