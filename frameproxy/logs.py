import logging
import os
from logging.handlers import RotatingFileHandler

LOG_FORMAT = '%(asctime)s - %(levelname)s - %(message)s'


def configure_logging(app):
    """Attach level and optional rotating file handlers to ``app.logger``.

    The app logger is named after the package, so ``frameproxy.*`` module
    loggers end up in the same handlers.
    """
    app.logger.setLevel(app.config.get('LOG_LEVEL', 'INFO'))

    log_file = app.config.get('LOG_FILE')
    if not log_file:
        return

    directory = os.path.dirname(log_file)
    if directory and not os.path.exists(directory):
        os.makedirs(directory)

    formatter = logging.Formatter(LOG_FORMAT)

    handler = RotatingFileHandler(log_file, maxBytes=1_000_000, backupCount=3)
    handler.setLevel(logging.INFO)
    handler.setFormatter(formatter)
    app.logger.addHandler(handler)

    stem, _ = os.path.splitext(log_file)
    error_handler = RotatingFileHandler(stem + '.error.log', maxBytes=1_000_000, backupCount=1)
    error_handler.setLevel(logging.ERROR)
    error_handler.setFormatter(formatter)
    app.logger.addHandler(error_handler)
