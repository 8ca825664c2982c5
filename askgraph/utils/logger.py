"""
Logging configuration using Loguru.

Every record carries a `request_id` (``-`` outside a request). The engine
opens `request_context()` around each request, so records from the planner,
the tools and the expander of one request share its id, including records
emitted from concurrently running plan steps.
"""

import sys
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

from loguru import logger

NO_REQUEST = "-"

CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<magenta>{extra[request_id]}</magenta> | "
    "<cyan>{extra[module]}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>"
)
FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {extra[request_id]} | {extra[module]}:{line} - {message}"


def setup_logging(
    level: str = "INFO",
    log_to_file: bool = True,
    log_dir: str = "logs",
    file_rotation: str = "10 MB",
    file_retention: str = "7 days",
    compression: str = "zip",
    serialize: bool = True,
) -> None:
    """Install the stderr sink and, optionally, a rotating (JSON) file sink."""
    logger.remove()
    logger.configure(extra={"request_id": NO_REQUEST, "module": "askgraph"})

    logger.add(sys.stderr, level=level, format=CONSOLE_FORMAT, colorize=True)

    if log_to_file:
        log_path = Path(log_dir)
        log_path.mkdir(parents=True, exist_ok=True)
        logger.add(
            log_path / "askgraph_{time:YYYY-MM-DD}.log",
            level=level,
            format=FILE_FORMAT,
            rotation=file_rotation,
            retention=file_retention,
            compression=compression,
            serialize=serialize,
            enqueue=True,
        )


def get_logger(name: str):
    """Logger bound to a module name."""
    return logger.bind(module=name)


@contextmanager
def request_context(request_id: str) -> Iterator[str]:
    """Tag every record logged inside the block (and its tasks) with `request_id`."""
    with logger.contextualize(request_id=request_id):
        yield request_id
