"""Logging setup: YAML dictConfig, colour on a TTY, the acting uid on each record.

Werkzeug logs a request after the app context has gone, so the uid is kept
on a Werkzeug ``Local`` rather than on ``flask.g``.
"""

import logging
import logging.config
import os
from pathlib import Path

import yaml
from werkzeug.local import Local, LocalManager

local = Local()
local_manager = LocalManager([local])

_COLORS = {
    'DEBUG': '\x1b[34m',
    'WARNING': '\x1b[33m',
    'ERROR': '\x1b[31m',
    'CRITICAL': '\x1b[31;1m',
}
_RESET = '\x1b[0m'


class ColorizingStreamHandler(logging.StreamHandler):

    def __init__(self, stream=None):
        super().__init__(stream)
        self.should_colorize = self.is_tty or os.getenv('COLORIZE_LOGS') == 'always'

    @property
    def is_tty(self):
        isatty = getattr(self.stream, 'isatty', None)
        return bool(isatty and isatty())

    def format(self, record):
        message = super().format(record)
        color = _COLORS.get(record.levelname)
        if self.should_colorize and color:
            message = '\n'.join(color + line + _RESET for line in message.splitlines())
        return message


class ContextFormatter(logging.Formatter):
    """Adds ``record.uid``, the user acting in the current request."""

    def format(self, record):
        record.uid = getattr(local, 'uid', None) or '-'
        return super().format(record)


def set_uid(uid):
    local.uid = uid


def configure_logging(app):
    """Apply ``LOG_CONFIG`` unless the root logger is already configured."""
    config_path = app.config.get('LOG_CONFIG')
    if config_path and not logging.root.handlers:
        path = Path(config_path)
        if not path.is_absolute():
            path = Path(app.root_path).parent / path
        if path.is_file():
            with open(path) as f:
                logging.config.dictConfig(yaml.safe_load(f))
            app.wsgi_app = local_manager.make_middleware(app.wsgi_app)

    level = app.config.get('LOG_LEVEL')
    if level:
        logging.getLogger('skillbridge').setLevel(level)
