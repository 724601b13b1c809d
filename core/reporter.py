"""Sinks receiving the progress messages of an installation."""

import logging

from rich.console import Console

logger = logging.getLogger(__name__)

SEVERITIES = ("error", "warning", "notice", "")

# a console level shows its own severity and every lower rank
_RANK = {"error": 0, "warning": 1, "": 2, "notice": 3}

_LOG_LEVELS = {
    "error": logging.ERROR,
    "warning": logging.WARNING,
    "notice": logging.INFO,
    "": logging.INFO,
}


class Reporter:
    """Base reporter: counts messages by severity and logs them."""

    def __init__(self):
        self.message_counts = {severity: 0 for severity in SEVERITIES}

    def start(self) -> None:
        pass

    def message(self, text: str, severity: str = "") -> None:
        if severity not in self.message_counts:
            severity = ""
        self.message_counts[severity] += 1
        logger.log(_LOG_LEVELS[severity], text)
        self._output(text, severity)

    def end(self) -> None:
        pass

    def _output(self, text: str, severity: str) -> None:
        pass

    def get_message_counter(self, severity: str) -> int:
        return self.message_counts.get(severity, 0)


class GhostReporter(Reporter):
    """Reporter which only counts messages."""


class MemoryReporter(Reporter):
    """Reporter keeping every message, for APIs and tests."""

    def __init__(self):
        super().__init__()
        self.messages: list[tuple[str, str]] = []
        self.started = False
        self.ended = False

    def start(self) -> None:
        self.started = True

    def end(self) -> None:
        self.ended = True

    def _output(self, text: str, severity: str) -> None:
        self.messages.append((severity, text))

    def texts(self, severity: str | None = None) -> list[str]:
        return [text for sev, text in self.messages if severity is None or sev == severity]


class ConsoleReporter(Reporter):
    """Print messages on a rich console.

    Messages above `level` are not displayed, but still counted. The
    "" level shows errors, warnings and success messages; "notice" shows
    everything.
    """

    _STYLES = {"error": "red", "warning": "yellow", "notice": "cyan", "": "green"}

    def __init__(self, console: Console | None = None, level: str = "notice", title: str = "Installation"):
        super().__init__()
        self.console = console or Console()
        self.level = level if level in SEVERITIES else "notice"
        self.title = title

    def start(self) -> None:
        self.console.print(f"{self.title} start..")

    def _output(self, text: str, severity: str) -> None:
        if _RANK[severity] > _RANK[self.level]:
            return
        prefix = f"{severity.capitalize()}: " if severity in ("error", "warning") else ""
        self.console.print(f"{prefix}{text}", style=self._STYLES[severity], markup=False, highlight=False)

    def end(self) -> None:
        errors = self.get_message_counter("error")
        warnings = self.get_message_counter("warning")
        if errors or warnings:
            self.console.print(f"{self.title} ended with {errors} errors and {warnings} warnings")
        else:
            self.console.print(f"{self.title} ended.")
