"""Redirect listener capability for the authorization code flow.

The user authorizes the application in a host-provided view (embedded web
view, system browser, ...). The view reports the URLs it navigates to as
``NavigationEvent``s; the flow manager watches them for the redirect that
carries the authorization code.

``LoopbackRedirectListener`` is the default implementation for desktop use:
it opens the system browser and serves the redirect URI on a local
``starlette`` app run by ``uvicorn``.
"""

from __future__ import annotations

import asyncio
import logging
import webbrowser
from collections.abc import AsyncIterator, Callable
from dataclasses import dataclass
from typing import Protocol
from urllib.parse import urlparse

import uvicorn
from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import HTMLResponse, Response
from starlette.routing import Route

from midata.auth.models.errors import RedirectListenerError

logger = logging.getLogger(__name__)

CALLBACK_PAGE = (
    "<html><body><p>Authorization complete. You can close this window.</p>"
    "</body></html>"
)


@dataclass(frozen=True)
class NavigationEvent:
    """A URL the authorization view started loading."""

    url: str


class RedirectHandle(Protocol):
    """An open authorization view."""

    def events(self) -> AsyncIterator[NavigationEvent]:
        """Stream of navigation events until the handle is closed.

        Raises:
            RedirectListenerError: If the view itself fails
        """
        ...

    async def close(self) -> None:
        """Close the view. Safe to call multiple times."""
        ...


class RedirectListener(Protocol):
    """Opens authorization views.

    Allows different strategies for browser interaction:
    - Loopback server + system browser
    - Embedded web view of a host application
    - Test doubles replaying scripted navigation
    """

    async def open(self, url: str) -> RedirectHandle:
        """Open the authorization view at ``url``."""
        ...


_CLOSED = object()


class LoopbackRedirectHandle:
    """Local HTTP server receiving the redirect from the system browser."""

    def __init__(self, host: str, port: int, path: str) -> None:
        self.host = host
        self.port = port
        self.path = path or "/"

        self._queue: asyncio.Queue[object] = asyncio.Queue()
        self._app = Starlette(
            routes=[Route("/{path:path}", self._handle_navigation, methods=["GET"])]
        )
        self._server: uvicorn.Server | None = None
        self._serve_task: asyncio.Task[None] | None = None
        self._closed = False

    async def start(self) -> None:
        """Start serving and wait until the socket is bound.

        Raises:
            RedirectListenerError: If the server cannot start
        """
        config = uvicorn.Config(
            app=self._app, host=self.host, port=self.port, log_level="warning"
        )
        self._server = uvicorn.Server(config)
        self._serve_task = asyncio.create_task(self._serve())

        while not self._server.started:
            if self._serve_task.done():
                self._serve_task.result()
                raise RedirectListenerError(
                    f"Redirect listener on {self.host}:{self.port} stopped early"
                )
            await asyncio.sleep(0.01)

        logger.debug(f"Redirect listener started on {self.host}:{self.port}")

    async def _serve(self) -> None:
        try:
            await self._server.serve()
        except SystemExit as e:
            # uvicorn exits instead of raising when the port can't be bound
            error = RedirectListenerError(
                f"Failed to bind redirect listener on {self.host}:{self.port}"
            )
            self._queue.put_nowait(error)
            raise error from e

    async def _handle_navigation(self, request: Request) -> Response:
        url = str(request.url)
        logger.debug(f"Redirect listener received navigation to {request.url.path}")
        await self._queue.put(NavigationEvent(url=url))
        return HTMLResponse(CALLBACK_PAGE)

    async def events(self) -> AsyncIterator[NavigationEvent]:
        while True:
            item = await self._queue.get()
            if item is _CLOSED:
                return
            if isinstance(item, Exception):
                raise item
            yield item

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True

        if self._server is not None:
            self._server.should_exit = True
        if self._serve_task is not None and not self._serve_task.done():
            await self._serve_task
        self._queue.put_nowait(_CLOSED)
        logger.debug("Redirect listener closed")


class LoopbackRedirectListener:
    """Opens the authorization URL in the system browser.

    The redirect URI must point at this machine, e.g.
    ``http://localhost:8080/callback``.
    """

    def __init__(
        self,
        redirect_uri: str,
        open_browser: Callable[[str], object] = webbrowser.open,
    ) -> None:
        parsed = urlparse(redirect_uri)
        if parsed.scheme != "http" or not parsed.hostname:
            raise ValueError("Loopback redirect URI must be an http:// URL")

        self.redirect_uri = redirect_uri
        self.host = "127.0.0.1" if parsed.hostname == "localhost" else parsed.hostname
        self.port = parsed.port or 80
        self.path = parsed.path
        self._open_browser = open_browser

    async def open(self, url: str) -> LoopbackRedirectHandle:
        handle = LoopbackRedirectHandle(self.host, self.port, self.path)
        await handle.start()

        logger.info("Opening authorization page in the browser")
        self._open_browser(url)
        return handle
