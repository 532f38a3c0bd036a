"""
Diagnostic log collaborators.

The signing machinery reports failures to an object with a single
``record(message)`` method. The default implementation appends
timestamped lines to a flat text file, opening and closing the file on every
call. Other implementations can forward to the :mod:`logging` module, or
collect messages in memory.
"""

import logging
from datetime import datetime
from typing import List, Optional, Protocol

__all__ = [
    'DiagnosticLog',
    'FileDiagnosticLog',
    'LoggerDiagnosticLog',
    'MemoryDiagnosticLog',
    'DEFAULT_DIAGNOSTIC_LOG',
    'TIMESTAMP_FORMAT',
]

logger = logging.getLogger(__name__)

DEFAULT_DIAGNOSTIC_LOG = 'log.txt'

TIMESTAMP_FORMAT = '%d.%m.%Y %H:%M:%S'
"""
Format of the timestamp that prefixes every diagnostic log line.
"""


class DiagnosticLog(Protocol):
    """
    Anything that can record a diagnostic message.
    """

    def record(self, message: str):
        ...


class FileDiagnosticLog:
    """
    Append-only text log. Every entry is written as
    ``<dd.mm.yyyy HH:MM:SS> <message>`` followed by a newline, in local time.

    The file is opened and closed for each message, so several instances
    can point at the same file without holding it open.

    :param path:
        Path to the log file. Defaults to ``log.txt`` in the working
        directory.
    """

    def __init__(self, path: str = DEFAULT_DIAGNOSTIC_LOG):
        self.path = path

    def record(self, message: str):
        ts = datetime.now()
        with open(self.path, 'a', encoding='utf-8') as f:
            f.write(f'{ts.strftime(TIMESTAMP_FORMAT)} {message}\n')

    def __repr__(self):
        return f'{type(self).__name__}({self.path!r})'


class LoggerDiagnosticLog:
    """
    Forward diagnostic messages to a standard library logger.

    :param target:
        Logger to forward to. Defaults to the logger of this module.
    :param level:
        Level at which messages are emitted.
    """

    def __init__(
        self, target: Optional[logging.Logger] = None, level=logging.ERROR
    ):
        self.target = target or logger
        self.level = level

    def record(self, message: str):
        self.target.log(self.level, message)


class MemoryDiagnosticLog:
    """Keep diagnostic messages in a list."""

    def __init__(self):
        self.messages: List[str] = []

    def record(self, message: str):
        self.messages.append(message)

    def __contains__(self, item):
        return any(item in msg for msg in self.messages)
