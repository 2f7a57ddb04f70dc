import logging
import sys
import json
from typing import Dict, Any
from datetime import datetime, timezone

from mock_endpoint.config import settings


class JsonFormatter(logging.Formatter):
    """
    Formats log records as single-line JSON objects.

    Test runners capture stdout per test, so one JSON object per line keeps
    the endpoint's lifecycle messages easy to grep out of a failing run. The
    thread name is included because requests are recorded on the endpoint's
    server thread while the test itself logs from the main thread.
    """

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "thread": record.threadName,
            "msg": record.getMessage(),
            "where": f"{record.module}:{record.lineno}",
        }
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry)


def setup_logging(level: str = settings.log_level) -> logging.Logger:
    """
    Configures the `mock_endpoint` logger at `level` (from settings by default).

    Existing handlers are replaced so that importing the package from both a
    pytest plugin and a test module does not print every line twice.
    """
    logger = logging.getLogger("mock_endpoint")
    logger.setLevel(level)

    logger.handlers.clear()
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JsonFormatter())
    logger.addHandler(handler)
    logger.propagate = False  # the JSON handler already owns the output

    return logger


logger = setup_logging()
