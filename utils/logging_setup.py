import logging
import sys

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

_HANDLER_NAME = "evaluator-stream"


def setup_logging(level: str = "INFO") -> None:
    """Attach a single stdout handler to the root logger. Safe to call twice."""
    level_value = getattr(logging, str(level).upper(), logging.INFO)

    root = logging.getLogger()
    root.setLevel(level_value)

    for handler in root.handlers:
        if handler.get_name() == _HANDLER_NAME:
            handler.setLevel(level_value)
            return

    handler = logging.StreamHandler(sys.stdout)
    handler.set_name(_HANDLER_NAME)
    handler.setLevel(level_value)
    handler.setFormatter(logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT))
    root.addHandler(handler)

    # openai/httpx log every request at INFO
    logging.getLogger("httpx").setLevel(max(level_value, logging.WARNING))
