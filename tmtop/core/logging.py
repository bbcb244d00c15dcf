import logging

from rich.console import Console
from rich.logging import RichHandler

package_logger = logging.getLogger("tmtop")


def setup_logging(
    log_level: str,
    console: Console | None = None,
    log_file: str | None = None,
) -> None:
    """Set up logging with the specified level.

    Records go to a file when one is given, otherwise through rich onto the
    dashboard console so they do not tear the live display.
    """
    numeric_level = getattr(logging, log_level.upper(), None)
    if not isinstance(numeric_level, int):
        raise ValueError(f"Invalid log level: {log_level}")

    if log_file:
        handler: logging.Handler = logging.FileHandler(log_file, encoding="utf-8")
        handler.setFormatter(
            logging.Formatter(
                "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            )
        )
    else:
        handler = RichHandler(console=console, show_path=False, rich_tracebacks=True)
        handler.setFormatter(logging.Formatter("%(message)s", datefmt="[%X]"))

    package_logger.handlers.clear()
    package_logger.addHandler(handler)
    package_logger.setLevel(numeric_level)
    package_logger.propagate = False

    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(max(numeric_level, logging.WARNING))

    package_logger.debug(f"Logging initialized at level {log_level.upper()}")
