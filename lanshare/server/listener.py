import asyncio
import logging
from typing import Optional, Type
from types import TracebackType

from lanshare.config.config import SharedConfig
from lanshare.server.authenticator import Authenticator
from lanshare.server.handler import ConnectionHandler

LOGGER = logging.getLogger(__name__)

class Listener:
    def __init__(
        self,
        shared: SharedConfig,
        authenticator: Authenticator,
        share_root: str,
        max_workers: int
    ) -> None:
        assert max_workers > 0
        self._shared = shared
        self._authenticator = authenticator
        self._share_root = share_root
        self._max_workers = max_workers
        self._server: Optional[asyncio.AbstractServer] = None
        # created lazily so they bind to the running loop
        self._workers: Optional[asyncio.Semaphore] = None
        self._idle: Optional[asyncio.Event] = None
        self._active_connections = 0
        self._total_connections = 0

    @property
    def active_connections(self) -> int:
        return self._active_connections

    @property
    def total_connections(self) -> int:
        return self._total_connections

    @property
    def port(self) -> int:
        assert self._server is not None, "not serving"
        return int(self._server.sockets[0].getsockname()[1])

    async def serve(self) -> None:
        assert self._server is None, "already serving"
        self._workers = asyncio.Semaphore(self._max_workers)
        self._idle = asyncio.Event()
        self._idle.set()
        self._server = await asyncio.start_server(
            self.client_connected_cb,
            self._shared.hostname or None,
            self._shared.port
        )
        await self._server.start_serving()

    async def __aenter__(self) -> 'Listener':
        await self.serve()
        return self

    async def client_connected_cb(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter
    ) -> None:
        assert self._workers is not None
        assert self._idle is not None
        self._total_connections += 1
        self._active_connections += 1
        self._idle.clear()
        connection_number = self._total_connections
        peername = writer.get_extra_info('peername')
        LOGGER.info(
            "Connection #%d from %s (active clients: %d)",
            connection_number,
            peername[0] if peername else "unknown",
            self._active_connections
        )
        try:
            # Waits here, in arrival order, while every worker is busy
            async with self._workers:
                handler = ConnectionHandler(
                    reader,
                    writer,
                    self._authenticator,
                    self._share_root,
                    self._shared
                )
                result = await handler.run()
            LOGGER.info(
                "Connection #%d ended %s, sent %d/%d file(s)",
                connection_number,
                result.state.value,
                result.sent,
                result.announced
            )
        except Exception:  # pylint: disable=broad-except
            LOGGER.exception("Handler for connection #%d crashed", connection_number)
            writer.close()
        finally:
            self._active_connections -= 1
            if self._active_connections == 0:
                self._idle.set()
            LOGGER.info(
                "Connection #%d finished (active clients: %d)",
                connection_number,
                self._active_connections
            )

    async def wait_idle(self, timeout: Optional[float] = None) -> bool:
        """Wait until no connection is being served. Returns False on timeout."""
        if self._idle is None:
            return True
        try:
            await asyncio.wait_for(self._idle.wait(), timeout)
        except asyncio.TimeoutError:
            return False
        return True

    def is_serving(self) -> bool:
        return self._server is not None and self._server.is_serving()

    def stop_accepting(self) -> None:
        # Already accepted connections run to completion
        if self._server is not None:
            self._server.close()

    async def serve_forever(self) -> None:
        assert self._server is not None, "not serving"
        await self._server.serve_forever()

    async def close(self) -> None:
        if self._server is not None:
            self._server.close()
            await self._server.wait_closed()
            self._server = None
        LOGGER.info("Listener stopped. Total connections served: %d", self._total_connections)

    async def __aexit__(
        self,
        exc_type: Optional[Type[BaseException]],
        exc_val: Optional[BaseException],
        exc_tb: Optional[TracebackType]
    ) -> None:
        await self.close()
