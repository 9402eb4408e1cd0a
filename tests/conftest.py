from __future__ import annotations

import subprocess
import sys
from collections.abc import Iterator

import pytest

from twicat.config import Settings
from twicat.context import RunContext
from twicat.tunnel import TunnelLauncher


class SleeperLauncher(TunnelLauncher):
    """Launches a harmless long-running Python process instead of ngrok."""

    def __init__(self, context: RunContext) -> None:
        super().__init__(context)
        self.spawned: list[subprocess.Popen[bytes]] = []

    def command(self, port: int) -> list[str]:
        return [sys.executable, "-c", "import time; time.sleep(60)"]

    def start(self, port: int) -> None:
        super().start(port)
        self.spawned.append(self.process)


@pytest.fixture
def settings() -> Settings:
    return Settings(
        twilio_account_sid=None,
        twilio_auth_token=None,
        provider_timeout=5.0,
        listen_host="127.0.0.1",
        ngrok_binary="ngrok",
        ngrok_api_url="http://127.0.0.1:4040/api/tunnels",
        tunnel_lookup_attempts=1,
        tunnel_lookup_backoff=0.0,
        log_level="WARNING",
    )


@pytest.fixture
def context(settings: Settings) -> RunContext:
    return RunContext(settings=settings)


@pytest.fixture
def sleeper_launcher(context: RunContext) -> Iterator[SleeperLauncher]:
    """A launcher whose subprocesses are always killed after the test."""
    launcher = SleeperLauncher(context)
    yield launcher
    for process in launcher.spawned:
        if process.poll() is None:
            process.kill()
            process.wait()
