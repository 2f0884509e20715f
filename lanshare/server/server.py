import logging
from typing import Optional, Type
from types import TracebackType

from lanshare.auth.credentials import CredentialStore
from lanshare.config.config import ServerConfig
from lanshare.proto.dat import ConfigurationFault
from lanshare.server.authenticator import Authenticator
from lanshare.server.listener import Listener
from lanshare.server.share import enumerate_share, validate_share_root

LOGGER = logging.getLogger(__name__)

class Server:
    def __init__(self, config: ServerConfig, credentials: CredentialStore):
        # Fail before binding anything if the share cannot be served
        share_root = validate_share_root(config.share_root)
        if not credentials.exists(config.identity):
            raise ConfigurationFault(f"no credentials provisioned for {config.identity!r}")
        if config.max_workers <= 0:
            raise ConfigurationFault(f"max_workers must be positive, got {config.max_workers}")
        self._config = config
        self._share_root = share_root
        authenticator = Authenticator(config.identity, credentials)
        self._listener = Listener(
            config.shared,
            authenticator,
            share_root,
            config.max_workers
        )

    @property
    def listener(self) -> Listener:
        return self._listener

    @property
    def share_root(self) -> str:
        return self._share_root

    async def serve(self) -> None:
        # counted before binding so a failure here leaves no socket behind
        file_count = len(enumerate_share(self._share_root))
        await self._listener.serve()
        LOGGER.info(
            "Serving identity %r on port %d from %s (%d file(s), max %d clients)",
            self._config.identity,
            self._listener.port,
            self._share_root,
            file_count,
            self._config.max_workers
        )

    async def __aenter__(self) -> 'Server':
        await self.serve()
        return self

    async def serve_forever(self) -> None:
        await self._listener.serve_forever()

    def stop_accepting(self) -> None:
        self._listener.stop_accepting()

    async def close(self) -> None:
        await self._listener.close()

    async def __aexit__(
        self,
        exc_type: Optional[Type[BaseException]],
        exc_val: Optional[BaseException],
        exc_tb: Optional[TracebackType]
    ) -> None:
        await self.close()
