from contextvars import ContextVar
import logging
import time
import uuid

from . import config

LOG_FORMAT = '%(asctime)s [%(levelname)s] %(name)s [%(correlation_id)s]: %(message)s'

_correlation_id: ContextVar[str] = ContextVar("correlation_id", default="-")


def new_correlation_id() -> str:
    return f"local-{int(time.time() * 1000)}-{uuid.uuid4().hex[:8]}"


def set_correlation_id(value: str):
    """Binds the id to the current task; returns a token for reset_correlation_id."""
    return _correlation_id.set(value)


def reset_correlation_id(token) -> None:
    _correlation_id.reset(token)


def get_correlation_id() -> str:
    return _correlation_id.get()


class CorrelationIdFilter(logging.Filter):
    """Stamps every record with the id of the request being handled."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.correlation_id = _correlation_id.get()
        return True


def setup_logging(level: str = config.LOG_LEVEL) -> None:
    logging.basicConfig(level=level, format=LOG_FORMAT)
    for handler in logging.getLogger().handlers:
        if not any(isinstance(f, CorrelationIdFilter) for f in handler.filters):
            handler.addFilter(CorrelationIdFilter())
