"""Process-wide logging setup.

``init`` installs a single stdout handler on the root logger so library
modules that use ``logging.getLogger(__name__)`` share the same output.
Development gets a coloured human format, staging/production get JSON.
"""

import json
import logging
import os
import sys
from datetime import datetime
from typing import Optional


class ColoredFormatter(logging.Formatter):
    COLORS = {
        'DEBUG': '\033[36m',      # Cyan
        'INFO': '\033[32m',       # Green
        'WARNING': '\033[33m',    # Yellow
        'ERROR': '\033[31m',      # Red
        'CRITICAL': '\033[35m',   # Magenta
        'ENDC': '\033[0m',
    }

    def format(self, record):
        level_color = self.COLORS.get(record.levelname, '')
        end_color = self.COLORS['ENDC']
        timestamp = datetime.fromtimestamp(record.created).strftime('%H:%M:%S')
        module_name = record.name if record.name != '__main__' else 'main'
        line = f"[{timestamp}] {level_color}{record.levelname:8s}{end_color} [{module_name}] {record.getMessage()}"
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


class JsonFormatter(logging.Formatter):
    def format(self, record):
        log_entry = {
            'timestamp': datetime.fromtimestamp(record.created).isoformat(),
            'level': record.levelname,
            'module': record.name,
            'message': record.getMessage(),
            'environment': os.getenv('ENVIRONMENT', 'unknown'),
        }
        if record.exc_info:
            log_entry['exception'] = self.formatException(record.exc_info)
        return json.dumps(log_entry)


def _environment() -> str:
    return os.getenv('ENVIRONMENT', 'development').lower()


def init(level: str = "INFO", environment: Optional[str] = None) -> None:
    """Configure the root logger. Safe to call more than once."""
    level_value = getattr(logging, str(level).upper(), logging.INFO)
    environment = (environment or _environment()).lower()

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level_value)
    if environment in ('production', 'prod', 'staging'):
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(ColoredFormatter())

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level_value)

    # Couchbase and APScheduler are chatty at INFO.
    logging.getLogger("apscheduler").setLevel(max(level_value, logging.WARNING))
    logging.getLogger("couchbase").setLevel(max(level_value, logging.WARNING))


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
