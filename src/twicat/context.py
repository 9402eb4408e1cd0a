from __future__ import annotations

import threading
from dataclasses import dataclass, field

from .config import Settings, get_settings


@dataclass
class RunContext:
    """
    State shared by the listener, the tunnel launcher and the CLI for one run.

    - `stopped` is the cancellation signal; the CLI idles by waiting on it.
    - `error` is set when a background component fails, so the CLI can exit
      non-zero instead of idling forever with a dead listener.
    """

    settings: Settings = field(default_factory=get_settings)
    stopped: threading.Event = field(default_factory=threading.Event)
    error: BaseException | None = None

    def cancel(self) -> None:
        self.stopped.set()

    def fail(self, exc: BaseException) -> None:
        self.error = exc
        self.stopped.set()

    def wait(self, timeout: float | None = None) -> bool:
        return self.stopped.wait(timeout)
