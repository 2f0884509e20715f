import asyncio
import logging
from enum import Enum
from typing import NamedTuple

import aiofiles
from aiofiles.threadpool.binary import AsyncBufferedReader

from lanshare.config.config import SharedConfig
from lanshare.proto.dat import AUTH_FAILED, AUTH_SUCCESS, FILE_RECEIVED, NO_FILES, READY, \
    TRANSFER_COMPLETE, AuthenticationRejected, FileDescriptor, IOFailure, PayloadTruncated, \
    ProtocolViolation, ShareException, encode_line, format_error, format_file_count, \
    format_file_info, format_size, read_line
from lanshare.server.authenticator import Authenticator
from lanshare.server.share import enumerate_share, resolve_in_share

LOGGER = logging.getLogger(__name__)

PROGRESS_STEP = 1024 * 1024

class State(Enum):
    CONNECTED = "connected"
    AUTHENTICATING = "authenticating"
    AUTHENTICATED = "authenticated"
    ENUMERATING = "enumerating"
    TRANSFERRING = "transferring"
    COMPLETE = "complete"
    FAILED = "failed"

class SessionResult(NamedTuple):
    peer: str
    state: State
    authenticated: bool
    announced: int
    sent: int

class ConnectionHandler:
    def __init__(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
        authenticator: Authenticator,
        share_root: str,
        shared: SharedConfig
    ) -> None:
        self._reader = reader
        self._writer = writer
        self._authenticator = authenticator
        self._share_root = share_root
        self._timeout = shared.idle_timeout
        self._chunk_size = shared.chunk_size
        self._state = State.CONNECTED
        self._authenticated = False
        self._announced = 0
        self._sent = 0
        peername = writer.get_extra_info('peername')
        self._peer = str(peername[0]) if peername else "unknown"

    async def run(self) -> SessionResult:
        try:
            if await self._authenticate():
                await self._send_files()
        except ShareException as ex:
            LOGGER.info("[%s] Session aborted in %s: %s", self._peer, self._state.value, ex)
            self._state = State.FAILED
        except OSError as ex:
            LOGGER.info("[%s] Client disconnected unexpectedly: %s", self._peer, ex)
            self._state = State.FAILED
        finally:
            await self._close()
        return SessionResult(
            peer=self._peer,
            state=self._state,
            authenticated=self._authenticated,
            announced=self._announced,
            sent=self._sent
        )

    async def _authenticate(self) -> bool:
        self._state = State.AUTHENTICATING
        try:
            identity = await read_line(self._reader, self._timeout)
            proof = None
            if identity is not None:
                LOGGER.info("[%s] Auth attempt for identity %r", self._peer, identity)
                proof = await read_line(self._reader, self._timeout)
            self._authenticator.authenticate_client(identity, proof)
        except (AuthenticationRejected, ProtocolViolation, IOFailure) as ex:
            # A missing, unreadable or late line counts as a failed login
            LOGGER.info("[%s] Authentication FAILED: %s", self._peer, ex)
            await self._send(AUTH_FAILED)
            self._state = State.FAILED
            return False
        await self._send(AUTH_SUCCESS)
        self._authenticated = True
        self._state = State.AUTHENTICATED
        LOGGER.info("[%s] Authentication PASSED", self._peer)
        return True

    async def _send_files(self) -> None:
        self._state = State.ENUMERATING
        try:
            files = enumerate_share(self._share_root)
        except IOFailure as ex:
            LOGGER.error("[%s] %s", self._peer, ex)
            await self._send(format_error("Shared folder not available"))
            self._state = State.FAILED
            return

        if not files:
            await self._send(NO_FILES)
            LOGGER.info("[%s] No files to send", self._peer)
            self._state = State.COMPLETE
            return

        self._announced = len(files)
        await self._send(format_file_count(len(files)))
        LOGGER.info("[%s] Preparing to send %d file(s)", self._peer, len(files))

        self._state = State.TRANSFERRING
        for descriptor in files:
            try:
                if not await self._transfer(descriptor):
                    break
            except PayloadTruncated as ex:
                # the client is still counting payload bytes, so no trailer can follow
                LOGGER.warning("[%s] %s, dropping the connection", self._peer, ex)
                self._state = State.FAILED
                return
            except (ProtocolViolation, IOFailure) as ex:
                LOGGER.info("[%s] Aborting transfers at %s: %s", self._peer, descriptor.name, ex)
                break
            self._sent += 1

        await self._send(TRANSFER_COMPLETE)
        self._state = State.COMPLETE
        LOGGER.info(
            "[%s] Transfer session complete, %d/%d file(s) sent",
            self._peer,
            self._sent,
            self._announced
        )

    async def _transfer(self, descriptor: FileDescriptor) -> bool:
        # refuses a traversing name before anything is announced
        path = resolve_in_share(self._share_root, descriptor.name)
        try:
            # opened before FILE_INFO so a vanished file is never announced
            async with aiofiles.open(path, 'rb') as f:
                return await self._offer(f, descriptor)
        except ConnectionError:
            raise
        except OSError as ex:
            raise IOFailure(f"cannot open {descriptor.name}: {ex}") from ex

    async def _offer(self, f: AsyncBufferedReader, descriptor: FileDescriptor) -> bool:
        await self._send(format_file_info(descriptor))
        LOGGER.info("[%s]   -> %s (%s)", self._peer, descriptor.name, format_size(descriptor.size))

        response = await read_line(self._reader, self._timeout)
        if response != READY:
            LOGGER.info("[%s] Client not ready (received %r), aborting", self._peer, response)
            return False

        await self._stream_file(f, descriptor)

        confirm = await read_line(self._reader, self._timeout)
        if confirm != FILE_RECEIVED:
            LOGGER.info(
                "[%s] Client did not confirm %s (response %r)",
                self._peer,
                descriptor.name,
                confirm
            )
            return False
        return True

    async def _stream_file(self, f: AsyncBufferedReader, descriptor: FileDescriptor) -> None:
        # Never send more than was announced; the size was fixed at enumeration
        sent = 0
        next_report = PROGRESS_STEP
        while sent < descriptor.size:
            try:
                chunk = await f.read(min(self._chunk_size, descriptor.size - sent))
            except OSError as ex:
                raise PayloadTruncated(
                    f"cannot read {descriptor.name} after {sent} of {descriptor.size} bytes: {ex}"
                ) from ex
            if not chunk:
                raise PayloadTruncated(
                    f"{descriptor.name} shrank after it was announced "
                    f"({sent} of {descriptor.size} bytes sent)"
                )
            self._writer.write(chunk)
            await self._writer.drain()
            sent += len(chunk)
            if sent >= next_report:
                LOGGER.debug(
                    "[%s]     Sent %s / %s",
                    self._peer,
                    format_size(sent),
                    format_size(descriptor.size)
                )
                next_report += PROGRESS_STEP
        LOGGER.info("[%s]   Finished sending %s", self._peer, descriptor.name)

    async def _send(self, line: str) -> None:
        self._writer.write(encode_line(line))
        await self._writer.drain()

    async def _close(self) -> None:
        self._writer.close()
        try:
            await self._writer.wait_closed()
        except OSError as ex:
            LOGGER.debug("[%s] Error while closing: %s", self._peer, ex)
