from __future__ import annotations

import signal
from typing import Any

import httpx
import pytest

from twicat.context import RunContext
from twicat.errors import TunnelLookupError, TunnelStartError
from twicat import tunnel as tunnel_module
from twicat.tunnel import TunnelLauncher, TunnelsResponse, fetch_public_url, find_public_url

TUNNELS: dict[str, Any] = {
    "tunnels": [
        {"public_url": "http://a.ngrok.app", "proto": "http", "config": {"addr": ":9000"}},
        {"public_url": "https://b.ngrok.app", "proto": "https", "config": {"addr": "x:9000"}},
        {"public_url": "https://c.ngrok.app", "proto": "https", "config": {"addr": "y:9001"}},
    ],
    "uri": "/api/tunnels",
}


def _client(*responses: dict[str, Any]) -> tuple[httpx.Client, list[httpx.Request]]:
    """MockTransport client answering with `responses` in order, repeating the last."""
    seen: list[httpx.Request] = []
    queue = list(responses)

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        kwargs = queue.pop(0) if len(queue) > 1 else queue[0]
        return httpx.Response(**kwargs)

    return httpx.Client(transport=httpx.MockTransport(handler)), seen


def test_find_public_url_matches_https_and_port() -> None:
    tunnels = TunnelsResponse.model_validate(TUNNELS)
    assert find_public_url(tunnels, 9000) == "https://b.ngrok.app"
    assert find_public_url(tunnels, 9001) == "https://c.ngrok.app"


def test_find_public_url_port_suffix_is_exact() -> None:
    tunnels = TunnelsResponse.model_validate(
        {"tunnels": [{"public_url": "https://d", "proto": "https", "config": {"addr": "localhost:19000"}}]}
    )
    with pytest.raises(TunnelLookupError):
        find_public_url(tunnels, 9000)


def test_fetch_public_url_queries_ngrok_api(context: RunContext) -> None:
    client, seen = _client(dict(status_code=200, json=TUNNELS))
    assert fetch_public_url(context, 9000, client=client) == "https://b.ngrok.app"
    assert len(seen) == 1
    assert str(seen[0].url) == "http://127.0.0.1:4040/api/tunnels"


def test_fetch_public_url_no_match(context: RunContext) -> None:
    client, _ = _client(dict(status_code=200, json=TUNNELS))
    with pytest.raises(TunnelLookupError, match="public URL"):
        fetch_public_url(context, 1234, client=client)


def test_fetch_public_url_bad_json(context: RunContext) -> None:
    client, _ = _client(dict(status_code=200, content=b"<html>"))
    with pytest.raises(TunnelLookupError, match="decode"):
        fetch_public_url(context, 9000, client=client)


def test_fetch_public_url_http_error(context: RunContext) -> None:
    client, _ = _client(dict(status_code=502))
    with pytest.raises(TunnelLookupError, match="502"):
        fetch_public_url(context, 9000, client=client)


def test_fetch_public_url_daemon_down(context: RunContext) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    client = httpx.Client(transport=httpx.MockTransport(handler))
    with pytest.raises(TunnelLookupError, match="failed to get tunnels"):
        fetch_public_url(context, 9000, client=client)


def test_fetch_public_url_single_attempt_by_default(context: RunContext) -> None:
    client, seen = _client(dict(status_code=200, json={"tunnels": []}), dict(status_code=200, json=TUNNELS))
    with pytest.raises(TunnelLookupError):
        fetch_public_url(context, 9000, client=client)
    assert len(seen) == 1


def test_fetch_public_url_bounded_retry(context: RunContext) -> None:
    context.settings.tunnel_lookup_attempts = 3
    client, seen = _client(
        dict(status_code=200, json={"tunnels": []}),
        dict(status_code=200, json={"tunnels": []}),
        dict(status_code=200, json=TUNNELS),
    )
    assert fetch_public_url(context, 9000, client=client) == "https://b.ngrok.app"
    assert len(seen) == 3


def test_fetch_public_url_retry_gives_up(context: RunContext) -> None:
    context.settings.tunnel_lookup_attempts = 2
    client, seen = _client(dict(status_code=200, json={"tunnels": []}))
    with pytest.raises(TunnelLookupError):
        fetch_public_url(context, 9000, client=client)
    assert len(seen) == 2


def test_launcher_command(context: RunContext) -> None:
    assert TunnelLauncher(context).command(9000) == ["ngrok", "http", "9000"]


def test_launcher_missing_binary(context: RunContext) -> None:
    context.settings.ngrok_binary = "/nonexistent/ngrok"
    with pytest.raises(TunnelStartError):
        TunnelLauncher(context).start(9000)


def test_signal_handler_kills_tunnel_before_exit(
    context: RunContext, sleeper_launcher: TunnelLauncher
) -> None:
    launcher = sleeper_launcher
    launcher.start(9000)
    process = launcher.process
    assert process is not None and process.poll() is None

    with pytest.raises(SystemExit) as info:
        launcher._on_signal(signal.SIGINT, None)

    assert info.value.code == 0
    assert process.poll() is not None
    assert context.stopped.is_set()


def test_stop_is_idempotent(sleeper_launcher: TunnelLauncher) -> None:
    launcher = sleeper_launcher
    launcher.stop()
    launcher.start(9000)
    launcher.stop()
    launcher.stop()
    assert launcher.process is None


def test_kill_failure_aborts(context: RunContext, monkeypatch: pytest.MonkeyPatch) -> None:
    class Unkillable:
        pid = 4242

        def kill(self) -> None:
            raise PermissionError("operation not permitted")

        def wait(self) -> int:
            return 0

    class Aborted(Exception):
        pass

    def fake_exit(code: int) -> None:
        raise Aborted(code)

    monkeypatch.setattr(tunnel_module.os, "_exit", fake_exit)
    launcher = TunnelLauncher(context)
    launcher.process = Unkillable()  # type: ignore[assignment]

    with pytest.raises(Aborted) as info:
        launcher.stop()
    assert info.value.args == (tunnel_module.EXIT_ABORT,)
