"""
FormatForge status channel.

Status lines travel from the running operation to whoever presents them
(terminal, GUI, log file) as messages. The producer never waits on the
consumer; a slow or failing subscriber cannot stall a format.
"""

from __future__ import annotations

import queue
import threading
from collections.abc import Callable, Iterator
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum, auto
from typing import Any

from formatforge.core.logging import get_logger

logger = get_logger(__name__)


class StatusKind(Enum):
    """What a status line represents."""

    COMMAND = auto()  # command line about to run
    OUTPUT = auto()  # tool stdout
    ERROR_OUTPUT = auto()  # tool stderr
    INFO = auto()
    WARNING = auto()
    SUMMARY = auto()  # one per finished operation


@dataclass(frozen=True)
class StatusMessage:
    """A single line on the status channel."""

    text: str
    kind: StatusKind = StatusKind.INFO
    timestamp: datetime = field(default_factory=datetime.now)

    def __str__(self) -> str:
        return self.text


StatusSubscriber = Callable[[StatusMessage], None]


class StatusChannel:
    """Fan-out channel for status messages; keeps a transcript."""

    def __init__(self) -> None:
        self._subscribers: list[StatusSubscriber] = []
        self._messages: list[StatusMessage] = []
        self._lock = threading.Lock()
        self._closed = False

    def subscribe(self, callback: StatusSubscriber) -> None:
        """Add a callback to be notified of every message."""
        with self._lock:
            self._subscribers.append(callback)

    def emit(self, text: str, kind: StatusKind = StatusKind.INFO) -> StatusMessage:
        """Publish one line."""
        message = StatusMessage(text=text, kind=kind)
        with self._lock:
            self._messages.append(message)
            subscribers = list(self._subscribers)

        for callback in subscribers:
            try:
                callback(message)
            except Exception as e:
                logger.warning("Status subscriber error", error=str(e))
        return message

    def info(self, text: str) -> StatusMessage:
        return self.emit(text, StatusKind.INFO)

    def warning(self, text: str) -> StatusMessage:
        return self.emit(text, StatusKind.WARNING)

    def command(self, text: str) -> StatusMessage:
        return self.emit(text, StatusKind.COMMAND)

    def output(self, text: str) -> StatusMessage:
        return self.emit(text, StatusKind.OUTPUT)

    def error_output(self, text: str) -> StatusMessage:
        return self.emit(text, StatusKind.ERROR_OUTPUT)

    def summary(self, text: str) -> StatusMessage:
        return self.emit(text, StatusKind.SUMMARY)

    def close(self) -> None:
        """Signal subscribers that no more messages follow."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            subscribers = list(self._subscribers)

        for callback in subscribers:
            closer = getattr(callback, "close", None)
            if closer is not None:
                closer()

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def messages(self) -> list[StatusMessage]:
        with self._lock:
            return list(self._messages)

    @property
    def lines(self) -> list[str]:
        return [m.text for m in self.messages]


class QueueSink:
    """
    Subscriber that hands messages to another thread through a queue.

    The consumer iterates ``drain()`` until the channel is closed. Producers
    can also ``post`` other items (such as a prompt request) into the same
    stream so the consumer handles them in order.
    """

    _CLOSED = object()

    def __init__(self) -> None:
        self._queue: queue.Queue[object] = queue.Queue()

    def __call__(self, message: StatusMessage) -> None:
        self._queue.put(message)

    def post(self, item: object) -> None:
        self._queue.put(item)

    def close(self) -> None:
        self._queue.put(self._CLOSED)

    def drain(self, poll_interval: float = 0.1) -> Iterator[Any]:
        """Yield messages and posted items as they arrive; stops once the channel closes."""
        while True:
            try:
                item = self._queue.get(timeout=poll_interval)
            except queue.Empty:
                continue
            if item is self._CLOSED:
                return
            yield item
