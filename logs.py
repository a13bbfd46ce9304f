"""
Structured JSON logging.

One JSON object per line on stdout so the platform log collector can index
fields directly. Never pass secrets or raw storage paths destined for clients
through here without thinking about who reads the logs.
"""
import json
import os
import sys
import traceback
from datetime import datetime, timezone


def _base_entry(level: str, message: str) -> dict:
    return {
        '@timestamp': datetime.now(timezone.utc).strftime('%Y-%m-%dT%H:%M:%S.%fZ'),
        'message': message,
        'log': {'level': level},
        'service': {
            'name': os.getenv('SERVICE_NAME', 'digital-store'),
            'environment': os.getenv('ENVIRONMENT', 'production'),
        },
    }


def log_json(level: str, message: str, **context):
    log_entry = _base_entry(level, message)
    log_entry.update(context)
    print(json.dumps(log_entry, default=str), file=sys.stdout, flush=True)


def log_exception(level: str, message: str, exc: Exception = None, **context):
    """Log with the exception type, message and full stack trace attached."""
    log_entry = _base_entry(level, message)

    if exc is not None:
        if exc.__traceback__ is not None:
            tb_str = ''.join(traceback.format_exception(type(exc), exc, exc.__traceback__))
        else:
            tb_str = f"{type(exc).__name__}: {exc}"
        log_entry['exception'] = {
            'type': type(exc).__name__,
            'message': str(exc),
            'stacktrace': tb_str,
        }

    log_entry.update(context)
    print(json.dumps(log_entry, default=str), file=sys.stdout, flush=True)
