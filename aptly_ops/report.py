"""Log files and mail buffer of a sync run"""
import logging
import os
import os.path
from datetime import datetime
from typing import Callable, Iterable, List
from aptly_ops.snapshots import PLAIN_TS_FORMAT

# pass as extra= to a logging call to include the message into the summary mail
MAIL = {"mail": True}

LOG_FILE = "aptlysync.log"
UPDATES_LOG_FILE = "aptlysync-updates-{}.log"


class MailBuffer(logging.Handler):
    """Collects messages logged with extra=MAIL"""

    def __init__(self) -> None:
        super().__init__()
        self.lines = []  # type: List[str]
        self.setFormatter(logging.Formatter("%(message)s"))

    def emit(self, record: logging.LogRecord) -> None:
        if getattr(record, "mail", False):
            self.lines.append(self.format(record))

    @property
    def body(self) -> str:
        return "\n".join(self.lines) + "\n" if self.lines else ""


class StampedFormatter(logging.Formatter):
    """Prefixes every line of a multi-line message with the record time"""

    def __init__(self) -> None:
        super().__init__(datefmt=PLAIN_TS_FORMAT)

    def format(self, record: logging.LogRecord) -> str:
        stamp = self.formatTime(record, self.datefmt)
        text = record.getMessage()
        if record.exc_info:
            text += "\n" + self.formatException(record.exc_info)
        return "\n".join(f"{stamp} {line}" for line in text.splitlines() or [""])


def file_handler(log_dir: str) -> logging.Handler:
    """Handler appending timestamped messages to the run log in log_dir"""
    os.makedirs(log_dir, exist_ok=True)
    handler = logging.FileHandler(os.path.join(log_dir, LOG_FILE))
    handler.setFormatter(StampedFormatter())
    return handler


class UpdatesLog:
    """Per repository log of downloaded packages and failed aptly commands"""

    def __init__(
        self, log_dir: str, clock: Callable[[], datetime] = datetime.now
    ) -> None:
        self.log_dir = log_dir
        self.clock = clock

    def path(self, repository: str) -> str:
        return os.path.join(self.log_dir, UPDATES_LOG_FILE.format(repository))

    def append(self, repository: str, lines: Iterable[str]) -> None:
        stamp = self.clock().strftime(PLAIN_TS_FORMAT)
        os.makedirs(self.log_dir, exist_ok=True)
        with open(self.path(repository), "a") as file:
            for line in lines:
                file.write(f"{stamp} {line}\n")
