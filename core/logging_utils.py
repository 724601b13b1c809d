"""Logging configuration for the command line and web entry points."""

import logging
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler

DEFAULT_LOG_PATH = "var/log/modinstall.log"


def configure_logging(
    log_path: str | None = DEFAULT_LOG_PATH,
    level: int = logging.INFO,
    console: Console | None = None,
) -> str | None:
    """Configure the root logger.

    A file handler records every installation decision; the console
    handler only shows warnings, since progress is already displayed by
    the reporter. Calling it again keeps the first configuration.

    Returns the path of the log file, or None when file logging is off
    or the file cannot be created.
    """
    root = logging.getLogger()
    if getattr(root, "_modinstall_configured", False):
        return getattr(root, "_modinstall_log_path", None)

    root.setLevel(level)

    chosen_path = None
    if log_path:
        try:
            Path(log_path).parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(log_path, encoding="utf-8")
        except OSError:
            file_handler = None
        if file_handler is not None:
            file_handler.setFormatter(
                logging.Formatter(
                    fmt="%(asctime)s %(levelname)s %(name)s: %(message)s",
                    datefmt="%Y-%m-%dT%H:%M:%S%z",
                )
            )
            root.addHandler(file_handler)
            chosen_path = log_path

    console_handler = RichHandler(console=console or Console(stderr=True), show_path=False)
    console_handler.setLevel(logging.WARNING)
    # reporter messages are already on the console
    console_handler.addFilter(lambda record: record.name != "core.reporter")
    root.addHandler(console_handler)

    setattr(root, "_modinstall_configured", True)
    setattr(root, "_modinstall_log_path", chosen_path)

    logging.getLogger(__name__).info("Logging initialized (file=%s)", chosen_path)
    return chosen_path
