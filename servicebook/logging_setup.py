import logging
import sys
from contextvars import ContextVar

from pythonjsonlogger import jsonlogger

# trace id of the request currently being served
TRACE_ID_CTX: ContextVar[str] = ContextVar("trace_id", default=None)


class TraceIdFilter(logging.Filter):
    def filter(self, record):
        record.trace_id = TRACE_ID_CTX.get(None)
        return True


def setup_logging(level="INFO", json_format=True):
    root = logging.getLogger()
    handler = logging.StreamHandler(sys.stdout)
    if json_format:
        fmt = jsonlogger.JsonFormatter("%(asctime)s %(levelname)s %(name)s %(message)s %(trace_id)s")
    else:
        fmt = logging.Formatter("%(asctime)s %(levelname)s [%(name)s] [%(trace_id)s] %(message)s")
    handler.setFormatter(fmt)
    handler.addFilter(TraceIdFilter())
    root.setLevel(level)
    root.handlers = []
    root.addHandler(handler)
