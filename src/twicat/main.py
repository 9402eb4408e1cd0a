from __future__ import annotations

import logging
import socket
import threading
from collections.abc import Callable

import typer
import uvicorn
from fastapi import FastAPI, Request, Response
from starlette.exceptions import HTTPException
from starlette.formparsers import MultiPartException

from .context import RunContext
from .errors import ListenerError
from .sms import message_from_form

logger = logging.getLogger(__name__)

# Empty TwiML: Twilio accepts the delivery and sends no auto-reply.
EMPTY_TWIML = """<?xml version="1.0" encoding="UTF-8"?>
<Response></Response>"""


def create_app(emit: Callable[[str], object] = typer.echo) -> FastAPI:
    """
    Build the callback app.

    Every POST, whatever the path, is treated as a Twilio SMS webhook.
    `emit` receives one "<From> <Body>" line per parsed message.
    """
    app = FastAPI(title="twicat", version="0.1.0", docs_url=None, redoc_url=None, openapi_url=None)

    @app.api_route("/{path:path}", methods=["POST"])
    async def sms_callback(request: Request) -> Response:
        try:
            form = await request.form()
        except (HTTPException, MultiPartException) as exc:
            # starlette turns multipart errors into a 400 HTTPException inside an app
            logger.warning("Received a message but couldn't parse body: %s", exc)
            return Response(status_code=200)

        emit(message_from_form(form).line())
        return Response(content=EMPTY_TWIML, media_type="application/xml")

    return app


class CallbackListener:
    """Serves the callback app on an OS-assigned port from a daemon thread."""

    def __init__(self, context: RunContext, app: FastAPI | None = None) -> None:
        self.context = context
        self.app = app if app is not None else create_app()
        self._server: uvicorn.Server | None = None
        self._thread: threading.Thread | None = None

    @property
    def started(self) -> bool:
        return self._server is not None and self._server.started

    def start(self) -> int:
        """Bind the socket, start serving in the background, return the port."""
        host = self.context.settings.listen_host
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            sock.bind((host, 0))
        except OSError as exc:
            sock.close()
            raise ListenerError(f"cannot bind {host}: {exc}") from exc

        port: int = sock.getsockname()[1]

        config = uvicorn.Config(
            self.app,
            log_level=self.context.settings.log_level.lower(),
            access_log=False,
            lifespan="off",
        )
        self._server = uvicorn.Server(config)
        self._thread = threading.Thread(
            target=self._serve, args=(self._server, sock), name="callback-listener", daemon=True
        )
        self._thread.start()
        logger.info("Callback listener bound to %s:%d", host, port)
        return port

    def _serve(self, server: uvicorn.Server, sock: socket.socket) -> None:
        try:
            server.run(sockets=[sock])
        except (Exception, SystemExit) as exc:
            # uvicorn calls sys.exit() when startup fails
            logger.exception("Callback listener stopped")
            self.context.fail(ListenerError(f"listener stopped: {exc!r}"))
            return
        if not server.should_exit:
            self.context.fail(ListenerError("listener stopped unexpectedly"))

    def stop(self, timeout: float = 5.0) -> None:
        if self._server is None or self._thread is None:
            return
        self._server.should_exit = True
        self._thread.join(timeout)
