"""Structured JSON logging with request/payment context fields."""

import logging
import sys
from contextvars import ContextVar

from pythonjsonlogger.json import JsonFormatter

from paydash.common.config import settings


trace_id_ctx: ContextVar[str] = ContextVar("trace_id", default="")
owner_id_ctx: ContextVar[str] = ContextVar("owner_id", default="")
payment_id_ctx: ContextVar[str] = ContextVar("payment_id", default="")


class ContextFilter(logging.Filter):
    """Stamp service, correlation, owner and payment ids on every record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.service_name = settings.service_name
        record.trace_id = trace_id_ctx.get()
        record.owner_id = owner_id_ctx.get()
        record.payment_id = payment_id_ctx.get()
        return True


def configure_logging() -> None:
    """Configure the root logger once per process."""

    handler = logging.StreamHandler(sys.stdout)
    context_filter = ContextFilter()
    handler.addFilter(context_filter)
    formatter = JsonFormatter(
        "%(asctime)s %(levelname)s %(service_name)s %(trace_id)s %(owner_id)s %(payment_id)s %(message)s"
    )
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(settings.log_level)
    root.addFilter(context_filter)
    # httpx logs every request line at INFO, bearer-authenticated gateway calls included.
    logging.getLogger("httpx").setLevel(logging.WARNING)


logger = logging.getLogger("paydash")
