"""
Debug logging that prefixes every line with the code location that logged it.
"""

import logging
import os

_SITE_COLOR = "\x1b[33m"
_RESET = "\x1b[0m"


class CallSiteFormatter(logging.Formatter):
    """Formatter that renders ``path:line function`` relative to the cwd."""

    def __init__(self, color: bool = True) -> None:
        super().__init__("%(site)s  %(levelname)s %(name)s: %(message)s")
        self.color = color
        self._cwd = os.getcwd() + os.sep

    def format(self, record: logging.LogRecord) -> str:
        pathname = record.pathname
        if pathname.startswith(self._cwd):
            pathname = pathname[len(self._cwd):]
        site = f"{pathname}:{record.lineno} {record.funcName}"
        record.site = f"{_SITE_COLOR}{site}{_RESET}" if self.color else site
        return super().format(record)


def init_debug_logging(level: int = logging.DEBUG, color: bool = True) -> logging.Handler:
    """Attach a call-site stream handler to the root logger (once)."""
    root = logging.getLogger()
    for handler in root.handlers:
        if isinstance(handler.formatter, CallSiteFormatter):
            return handler

    handler = logging.StreamHandler()
    handler.setFormatter(CallSiteFormatter(color=color))
    root.addHandler(handler)
    root.setLevel(level)
    return handler
