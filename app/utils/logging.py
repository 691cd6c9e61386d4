"""
app/utils/logging.py
───────────────────
Configures structured logging for the counter terminal.
"""
import os
import logging
from logging.handlers import RotatingFileHandler
from flask import has_request_context, request, session


class RequestFormatter(logging.Formatter):
    """
    Injects request info (IP, URL, terminal id) into log records
    when a request context is available.
    """
    def format(self, record):
        if has_request_context():
            record.url = request.url
            record.remote_addr = request.remote_addr
            record.terminal = session.get('terminal_id', '-')
        else:
            record.url = None
            record.remote_addr = None
            record.terminal = '-'
        return super().format(record)


def setup_logging(app):
    """
    Configure rotating file logging: logs/app.log
    Max size: 5MB
    Backup count: 5 files
    Format: timestamp | level | module | ip | terminal | url | message
    """
    handlers = []

    # 1. File Logger (skipped when testing or when the disk is read-only)
    if not app.testing:
        try:
            log_dir = os.path.join(app.root_path, '..', 'logs')
            os.makedirs(log_dir, exist_ok=True)

            file_handler = RotatingFileHandler(
                os.path.join(log_dir, 'app.log'),
                maxBytes=5 * 1024 * 1024,
                backupCount=5
            )
            file_handler.setFormatter(RequestFormatter(
                '%(asctime)s | %(levelname)s | %(name)s | %(remote_addr)s | '
                '%(terminal)s | %(url)s | %(message)s'
            ))
            file_handler.setLevel(logging.INFO)
            handlers.append(file_handler)
        except OSError:
            pass  # Fallback to stdout if filesystem is read-only

    # 2. Stdout Logger (picked up by gunicorn / container logs)
    stream_handler = logging.StreamHandler()
    stream_handler.setFormatter(logging.Formatter(
        '%(asctime)s | %(levelname)s | %(name)s | %(message)s'
    ))
    stream_handler.setLevel(logging.INFO)
    handlers.append(stream_handler)

    # app.logger is the 'app' logger, so records from core modules
    # (logging.getLogger(__name__) under app.*) reach these handlers too.
    for old in [h for h in app.logger.handlers if getattr(h, '_pos_handler', False)]:
        app.logger.removeHandler(old)   # create_app() may run more than once per process
    for handler in handlers:
        handler._pos_handler = True
        app.logger.addHandler(handler)

    app.logger.setLevel(logging.INFO)
    app.logger.info("Counter POS startup")
