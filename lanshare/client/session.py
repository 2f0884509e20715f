import asyncio
import concurrent.futures
import logging
import os
import threading
from enum import Enum
from typing import Callable, List, NamedTuple, Optional, Tuple, Type
from types import TracebackType

import aiofiles
from aiofiles.threadpool.binary import AsyncBufferedIOBase

from lanshare.auth.credentials import hash_secret
from lanshare.auth.directory import IdentityDirectory
from lanshare.client.sink import discard, ensure_sink
from lanshare.config.config import ClientConfig
from lanshare.proto.dat import AUTH_SUCCESS, FILE_ERROR, FILE_INFO_PREFIX, FILE_RECEIVED, \
    NO_FILES, READY, TRANSFER_COMPLETE, AuthenticationRejected, FileDescriptor, IdleTimeout, \
    IOFailure, ShareException, encode_line, format_size, is_safe_name, parse_error, \
    parse_file_count, parse_file_info, read_line

LOGGER = logging.getLogger(__name__)

class SessionStatus(Enum):
    COMPLETE = "complete"
    PARTIAL = "partial"
    NO_FILES = "no files"
    AUTH_FAILED = "authentication failed"
    ERROR = "error"

class SessionReport(NamedTuple):
    status: SessionStatus
    received: int = 0
    announced: int = 0
    files: Tuple[str, ...] = ()
    error: Optional[str] = None

    def summary(self) -> str:
        if self.status in (SessionStatus.COMPLETE, SessionStatus.PARTIAL):
            return f"{self.received}/{self.announced}"
        if self.status == SessionStatus.NO_FILES:
            return "no files"
        return f"{self.status.value}: {self.error}" if self.error else self.status.value

class Progress(NamedTuple):
    index: int
    count: int
    name: str
    received: int
    size: int

    @property
    def overall_percent(self) -> int:
        file_percent = 100 if self.size == 0 else self.received * 100 // self.size
        return ((self.index - 1) * 100 + file_percent) // self.count

ProgressCallback = Callable[[Progress], None]

class ClientSession:
    """Connects to one identity's server and downloads its whole share."""

    def __init__(
        self,
        config: ClientConfig,
        directory: IdentityDirectory,
        progress: Optional[ProgressCallback] = None
    ) -> None:
        self._sink_root = config.sink_root
        self._port = config.shared.port
        self._timeout = config.shared.idle_timeout
        self._chunk_size = config.shared.chunk_size
        self._connect_timeout = config.connect_timeout
        self._directory = directory
        self._progress = progress
        self._reader: Optional[asyncio.StreamReader] = None
        self._writer: Optional[asyncio.StreamWriter] = None
        self._announced = 0
        self._files: List[str] = []

    async def setup(self, identity: str) -> None:
        assert self._reader is None
        assert self._writer is None
        address = self._directory.address_for(identity)
        if address is None:
            raise AuthenticationRejected(f"no server registered for {identity!r}")
        LOGGER.info("Connecting to %s:%d", address, self._port)
        try:
            self._reader, self._writer = await asyncio.wait_for(
                asyncio.open_connection(address, self._port),
                self._connect_timeout
            )
        except asyncio.TimeoutError as ex:
            raise IdleTimeout(f"could not connect to {address} within {self._connect_timeout}s") from ex

    async def __aenter__(self) -> 'ClientSession':
        return self

    async def close(self) -> None:
        if self._writer is not None:
            self._writer.close()
            try:
                await self._writer.wait_closed()
            except OSError as ex:
                LOGGER.debug("Error while closing: %s", ex)
            self._writer = None
        self._reader = None

    async def __aexit__(
        self,
        exc_type: Optional[Type[BaseException]],
        exc_val: Optional[BaseException],
        exc_tb: Optional[TracebackType]
    ) -> None:
        await self.close()

    async def authenticate(self, identity: str, secret: str) -> bool:
        identity = identity.strip()
        if not identity or "\n" in identity or "\r" in identity:
            raise AuthenticationRejected("identity must be a single non-empty line")
        await self._send(identity)
        await self._send(hash_secret(secret))
        response = await self._read()
        return response == AUTH_SUCCESS

    async def receive_files(self) -> SessionReport:
        response = await self._read()
        if response is None:
            raise IOFailure("connection closed before the file list")
        if response == NO_FILES:
            LOGGER.info("No files available on server")
            await self._finish()
            return SessionReport(SessionStatus.NO_FILES)
        server_error = parse_error(response)
        if server_error is not None:
            return SessionReport(SessionStatus.ERROR, error=f"server error: {server_error}")

        count = parse_file_count(response)
        self._announced = count
        ensure_sink(self._sink_root)
        LOGGER.info("Downloading %d file(s)", count)

        for index in range(1, count + 1):
            info = await self._read()
            if info is None or not info.startswith(FILE_INFO_PREFIX):
                LOGGER.warning("Expected file info, got %r", info)
                break
            descriptor = parse_file_info(info)
            if not is_safe_name(descriptor.name):
                LOGGER.warning("Refusing unsafe file name %r", descriptor.name)
                await self._send(FILE_ERROR)
                break
            if not await self._receive_file(descriptor, index, count):
                await self._send(FILE_ERROR)
                break
            await self._send(FILE_RECEIVED)
            self._files.append(descriptor.name)

        await self._finish()
        return self._report()

    async def download(self, identity: str, secret: str) -> SessionReport:
        self._announced = 0
        self._files = []
        try:
            await self.setup(identity)
            if not await self.authenticate(identity, secret):
                return SessionReport(SessionStatus.AUTH_FAILED)
            return await self.receive_files()
        except AuthenticationRejected as ex:
            return SessionReport(SessionStatus.AUTH_FAILED, error=ex.detail)
        except (ShareException, OSError) as ex:
            LOGGER.error("Download error: %s", ex)
            return SessionReport(
                SessionStatus.ERROR,
                received=len(self._files),
                announced=self._announced,
                files=tuple(self._files),
                error=str(ex)
            )
        finally:
            await self.close()

    def start(self, identity: str, secret: str) -> 'concurrent.futures.Future[SessionReport]':
        # Runs download() on its own thread and event loop
        future: 'concurrent.futures.Future[SessionReport]' = concurrent.futures.Future()

        def runner() -> None:
            if not future.set_running_or_notify_cancel():
                return
            try:
                future.set_result(asyncio.run(self.download(identity, secret)))
            except Exception as ex:  # pylint: disable=broad-except
                future.set_exception(ex)

        threading.Thread(target=runner, name="lanshare-download", daemon=True).start()
        return future

    async def _receive_file(self, descriptor: FileDescriptor, index: int, count: int) -> bool:
        path = os.path.join(self._sink_root, descriptor.name)
        created = False
        ok = False
        try:
            async with aiofiles.open(path, 'wb') as f:
                created = True
                ok = await self._receive_payload(f, path, descriptor, index, count)
        except ConnectionError:
            raise
        except OSError as ex:
            # an open failure lands here before READY is sent
            LOGGER.error("Cannot write %s: %s", path, ex)
            ok = False
        finally:
            if created and not ok:
                discard(path)
        return ok

    async def _receive_payload(
        self,
        f: AsyncBufferedIOBase,
        path: str,
        descriptor: FileDescriptor,
        index: int,
        count: int
    ) -> bool:
        assert self._reader is not None
        LOGGER.info("Downloading (%d/%d): %s (%s)", index, count, descriptor.name,
                    format_size(descriptor.size))
        await self._send(READY)
        received = 0
        write_error: Optional[OSError] = None
        self._report_progress(index, count, descriptor, received)
        while received < descriptor.size:
            want = min(self._chunk_size, descriptor.size - received)
            try:
                chunk = await asyncio.wait_for(self._reader.read(want), self._timeout)
            except asyncio.TimeoutError as ex:
                raise IdleTimeout(f"stalled receiving {descriptor.name}") from ex
            if not chunk:
                break
            received += len(chunk)
            if write_error is None:
                try:
                    await f.write(chunk)
                except OSError as ex:
                    # keep draining the payload so the stream stays in step
                    LOGGER.error("Cannot write %s: %s", path, ex)
                    write_error = ex
            self._report_progress(index, count, descriptor, received)
        if received != descriptor.size or write_error is not None:
            LOGGER.warning("Incomplete %s: %d of %d bytes", descriptor.name, received, descriptor.size)
            return False
        return True

    def _report_progress(self, index: int, count: int, descriptor: FileDescriptor, received: int) -> None:
        if self._progress is not None:
            self._progress(Progress(index, count, descriptor.name, received, descriptor.size))

    async def _finish(self) -> None:
        # TRANSFER_COMPLETE closes a session that announced files;
        # anything else here just means the server already hung up
        try:
            trailer = await self._read()
        except (ShareException, OSError) as ex:
            LOGGER.debug("No transfer trailer: %s", ex)
            return
        if trailer not in (None, TRANSFER_COMPLETE):
            LOGGER.warning("Unexpected trailer %r", trailer)

    def _report(self) -> SessionReport:
        received = len(self._files)
        status = SessionStatus.COMPLETE if received == self._announced else SessionStatus.PARTIAL
        return SessionReport(
            status,
            received=received,
            announced=self._announced,
            files=tuple(self._files)
        )

    async def _send(self, line: str) -> None:
        assert self._writer is not None
        self._writer.write(encode_line(line))
        await self._writer.drain()

    async def _read(self) -> Optional[str]:
        assert self._reader is not None
        return await read_line(self._reader, self._timeout)
