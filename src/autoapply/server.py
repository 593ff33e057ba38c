"""
Liveness endpoint for autoapply.

Serves a single health route so an external supervisor can probe the
process while the loop runs. The server runs uvicorn on a daemon thread
and shares no state with the loop.

Endpoints:
    GET  /healthz   -> 200 "OK"
    HEAD /healthz   -> 200, empty body
"""

import logging
import os
import socket
import threading
import time
from typing import Optional

import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import PlainTextResponse, Response
from starlette.exceptions import HTTPException as StarletteHTTPException

from .errors import ServerStartupError

logger = logging.getLogger(__name__)

HEALTH_PATH = "/healthz"
DEFAULT_PORT = 3000
STARTUP_TIMEOUT_SECONDS = 10.0

_ERROR_BODIES = {
    404: "Not found!",
    405: "Only GET or HEAD supported!",
}


async def http_error_handler(_req: Request, exc: StarletteHTTPException) -> PlainTextResponse:
    body = _ERROR_BODIES.get(exc.status_code, str(exc.detail))
    return PlainTextResponse(body, status_code=exc.status_code, headers=exc.headers)


def create_app(path: str = HEALTH_PATH, log: Optional[logging.Logger] = None) -> FastAPI:
    """Build the liveness app."""
    log = log or logger
    app = FastAPI(
        title="autoapply",
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
        redirect_slashes=False,
    )
    app.add_exception_handler(StarletteHTTPException, http_error_handler)

    @app.middleware("http")
    async def log_request(request: Request, call_next):
        log.debug(f"Request received: {request.method} {request.url.path}")
        return await call_next(request)

    @app.api_route(path, methods=["GET", "HEAD"], include_in_schema=False)
    async def healthz(request: Request) -> Response:
        if request.method == "HEAD":
            return Response(status_code=200)
        return PlainTextResponse("OK")

    return app


class LivenessServer:
    """HTTP liveness server running on a background thread.

    Example:
        server = LivenessServer(port=3000)
        server.start()
        ...
        server.stop()
    """

    def __init__(
        self,
        port: int = DEFAULT_PORT,
        host: str = "0.0.0.0",
        path: str = HEALTH_PATH,
        logger: Optional[logging.Logger] = None,
    ):
        self.host = host
        self.path = path
        self.logger = logger or logging.getLogger(__name__)
        self._requested_port = port
        self._socket: Optional[socket.socket] = None
        self._server: Optional[uvicorn.Server] = None
        self._thread: Optional[threading.Thread] = None

    @property
    def port(self) -> int:
        """The bound port once started, else the requested one."""
        if self._socket is not None:
            return self._socket.getsockname()[1]
        return self._requested_port

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def _bind(self) -> socket.socket:
        family = socket.AF_INET6 if ":" in self.host else socket.AF_INET
        sock = socket.socket(family, socket.SOCK_STREAM)
        try:
            if os.name != "nt":
                sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            sock.bind((self.host, self._requested_port))
            sock.listen(128)
        except OSError as e:
            sock.close()
            raise ServerStartupError(self._requested_port, e) from e
        return sock

    def start(self, timeout: float = STARTUP_TIMEOUT_SECONDS) -> None:
        """Bind the port and start serving.

        Raises:
            ServerStartupError: If the port cannot be bound or the server
                does not come up within ``timeout`` seconds
        """
        if self.running:
            return

        self._socket = self._bind()
        config = uvicorn.Config(
            create_app(self.path, log=self.logger),
            log_config=None,
            log_level="warning",
            access_log=False,
        )
        self._server = uvicorn.Server(config)
        self._thread = threading.Thread(
            target=self._server.run,
            kwargs={"sockets": [self._socket]},
            name="autoapply-liveness",
            daemon=True,
        )
        self._thread.start()

        deadline = time.monotonic() + timeout
        while not self._server.started:
            if not self._thread.is_alive() or time.monotonic() > deadline:
                self.stop()
                raise ServerStartupError(self._requested_port)
            time.sleep(0.05)

        self.logger.info(f"Server is listening on port {self.port}...")

    def stop(self, timeout: float = 5.0) -> None:
        """Ask uvicorn to exit and wait for the thread."""
        if self._server is not None:
            self._server.should_exit = True
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            self._thread = None
        if self._socket is not None:
            self._socket.close()
            self._socket = None
        self._server = None
