from __future__ import annotations

import logging
import os
import signal
import subprocess
import time
from types import FrameType

import httpx
from pydantic import BaseModel, ValidationError

from .context import RunContext
from .errors import TunnelLookupError, TunnelStartError

logger = logging.getLogger(__name__)

EXIT_ABORT = 2


class TunnelConfig(BaseModel):
    addr: str


class Tunnel(BaseModel):
    public_url: str
    proto: str
    config: TunnelConfig


class TunnelsResponse(BaseModel):
    """Shape of ngrok's local `GET /api/tunnels` response."""

    tunnels: list[Tunnel] = []


class TunnelLauncher:
    """
    Runs `ngrok http <port>` for the lifetime of the process.

    On SIGINT/SIGTERM the subprocess is killed before the program exits with
    status 0. If it cannot be killed the process aborts immediately rather
    than leave a public tunnel running.
    """

    def __init__(self, context: RunContext) -> None:
        self.context = context
        self.process: subprocess.Popen[bytes] | None = None

    def command(self, port: int) -> list[str]:
        return [self.context.settings.ngrok_binary, "http", str(port)]

    def start(self, port: int) -> None:
        cmd = self.command(port)
        try:
            self.process = subprocess.Popen(
                cmd,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
            )
        except OSError as exc:
            raise TunnelStartError(f"cannot run {cmd[0]!r}: {exc}") from exc
        logger.info("Started %s (pid %d)", " ".join(cmd), self.process.pid)

    def install_signal_handlers(self) -> None:
        """Must be called from the main thread."""
        signal.signal(signal.SIGINT, self._on_signal)
        signal.signal(signal.SIGTERM, self._on_signal)

    def _on_signal(self, signum: int, frame: FrameType | None) -> None:
        logger.info("Received %s, shutting down", signal.Signals(signum).name)
        self.stop()
        self.context.cancel()
        raise SystemExit(0)

    def stop(self) -> None:
        process = self.process
        if process is None:
            return
        try:
            process.kill()
            process.wait()
        except OSError:
            logger.critical("Unable to kill ngrok (pid %d)", process.pid, exc_info=True)
            os._exit(EXIT_ABORT)
        self.process = None
        logger.info("Stopped ngrok (pid %d)", process.pid)


def find_public_url(tunnels: TunnelsResponse, port: int) -> str:
    """Public URL of the HTTPS tunnel forwarding to `port`."""
    suffix = f":{port}"
    for tunnel in tunnels.tunnels:
        if tunnel.proto == "https" and tunnel.config.addr.endswith(suffix):
            return tunnel.public_url
    raise TunnelLookupError("couldn't find the correct public URL")


def _fetch_tunnels(client: httpx.Client, api_url: str) -> TunnelsResponse:
    try:
        resp = client.get(api_url)
        resp.raise_for_status()
        return TunnelsResponse.model_validate(resp.json())
    except httpx.HTTPStatusError as exc:
        raise TunnelLookupError(f"ngrok API returned {exc.response.status_code}") from exc
    except httpx.HTTPError as exc:
        raise TunnelLookupError(f"failed to get tunnels: {exc}") from exc
    except (ValueError, ValidationError) as exc:
        raise TunnelLookupError(f"failed to decode tunnels: {exc}") from exc


def fetch_public_url(
    context: RunContext,
    port: int,
    client: httpx.Client | None = None,
) -> str:
    """
    Ask the local ngrok API for the public HTTPS URL bound to `port`.

    By default this is a single attempt made right after ngrok was spawned,
    so it can lose the race with ngrok's own startup. Setting
    `tunnel_lookup_attempts` above 1 retries with exponential backoff.
    """
    settings = context.settings
    owns_client = client is None
    if client is None:
        client = httpx.Client(timeout=settings.provider_timeout)

    attempt, delay = 1, settings.tunnel_lookup_backoff
    try:
        while True:
            try:
                return find_public_url(_fetch_tunnels(client, settings.ngrok_api_url), port)
            except TunnelLookupError as exc:
                if attempt >= settings.tunnel_lookup_attempts:
                    raise
                logger.info(
                    "Tunnel lookup attempt %d failed (%s), retrying in %.1fs", attempt, exc, delay
                )
                time.sleep(delay)
                attempt, delay = attempt + 1, delay * 2
    finally:
        if owns_client:
            client.close()
