"""
lenstrack/utils/logging.py
──────────────────────────
Configures structured logging for production.

app.logger is the `lenstrack` logger, so engine modules logging through
logging.getLogger(__name__) land in the same handlers.
"""
import os
import logging
from logging.handlers import RotatingFileHandler
from flask import has_request_context, request


class RequestFormatter(logging.Formatter):
    """
    Adds the request URL and client IP to each record when one is being
    handled; CLI and engine-only log lines get None.
    """
    def format(self, record):
        if has_request_context():
            record.url = request.url
            record.remote_addr = request.remote_addr
        else:
            record.url = None
            record.remote_addr = None
        return super().format(record)


def setup_logging(app):
    """
    Configure rotating file logging: <LOG_DIR>/app.log
    Max size: 5MB
    Backup count: 5 files
    Format: timestamp | level | module | ip | url | message
    """
    level = logging.DEBUG if app.debug else logging.INFO

    # create_app() runs once per test; don't stack handlers on the shared logger
    for handler in list(app.logger.handlers):
        app.logger.removeHandler(handler)
        handler.close()

    # 1. File Logger (Try/Except for permissions)
    try:
        log_dir = app.config.get('LOG_DIR') or os.path.join(app.root_path, '..', 'logs')
        os.makedirs(log_dir, exist_ok=True)

        file_handler = RotatingFileHandler(
            os.path.join(log_dir, 'app.log'),
            maxBytes=5 * 1024 * 1024,
            backupCount=5
        )
        file_handler.setFormatter(RequestFormatter(
            '%(asctime)s | %(levelname)s | %(name)s | %(remote_addr)s | %(url)s | %(message)s'
        ))
        file_handler.setLevel(logging.INFO)
        app.logger.addHandler(file_handler)
    except OSError:
        pass  # read-only filesystem: stdout only

    # 2. Stdout Logger (container / platform logs)
    stream_handler = logging.StreamHandler()
    stream_handler.setFormatter(logging.Formatter(
        '%(asctime)s | %(levelname)s | %(name)s | %(message)s'
    ))
    stream_handler.setLevel(level)
    app.logger.addHandler(stream_handler)

    app.logger.setLevel(level)
    app.logger.info("LensTrack offer service startup")
