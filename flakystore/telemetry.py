"""
Optional Logfire tracing for flakystore.

Without the ``logfire`` package every call here is a no-op. Errors raised
by Logfire itself are swallowed so tracing never turns into a storage
failure.
"""
from __future__ import annotations

import os
import sys
from contextlib import contextmanager
from typing import Any, Iterator

ENV_LOGFIRE = "FLAKYSTORE_LOGFIRE"
ENV_STDERR = "FLAKYSTORE_TELEMETRY_STDERR"

_TRUTHY = {"1", "true", "yes", "on"}

_logfire = None
_configured = False


def _flag(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in _TRUTHY


def _backend():
    """The logfire module, or None when it is not installed."""
    global _logfire
    if _logfire is None:
        try:
            import logfire
        except ImportError:
            _logfire = False
        else:
            _logfire = logfire
    return _logfire or None


def enabled() -> bool:
    return _backend() is not None and _flag(ENV_LOGFIRE, True)


def configure() -> bool:
    """Configure Logfire once. Returns False when tracing is off."""
    global _configured
    if not enabled():
        return False
    if not _configured:
        # Logfire's console exporter follows the stderr switch.
        console = None if _flag(ENV_STDERR, False) else False
        try:
            _backend().configure(console=console)
        except Exception:
            return False
        _configured = True
    return True


@contextmanager
def span(name: str, **attrs: Any) -> Iterator[None]:
    ctx = None
    if configure():
        try:
            ctx = _backend().span(name, **attrs)
            ctx.__enter__()
        except Exception:
            ctx = None
    if ctx is None:
        yield
        return
    exc_info = (None, None, None)
    try:
        yield
    except Exception as exc:
        exc_info = (type(exc), exc, exc.__traceback__)
        raise
    finally:
        try:
            ctx.__exit__(*exc_info)
        except Exception:
            pass


def log(level: str, message: str, **attrs: Any) -> None:
    if _flag(ENV_STDERR, False):
        print(f"[telemetry] {message} {attrs}", file=sys.stderr)
    if not configure():
        return
    backend = _backend()
    emit = getattr(backend, level, None) or backend.info
    try:
        emit(message, **attrs)
    except Exception:
        pass


def reset() -> None:
    """Forget the cached logfire module and configuration. For testing only."""
    global _logfire, _configured
    _logfire = None
    _configured = False
