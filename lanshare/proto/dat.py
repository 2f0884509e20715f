# Wire grammar shared by the server and the client.
#
# Every control message is one line of UTF-8 text terminated
# by "\n". File contents are never framed: after the client
# answers a FILE_INFO with READY, exactly <size> raw bytes
# follow on the same stream.
#
# Per connection:
#   C -> S  identity
#   C -> S  proof
#   S -> C  AUTH_SUCCESS | AUTH_FAILED
#   S -> C  FILE_COUNT:<n> | NO_FILES | ERROR:<message>
#   for each file:
#     S -> C  FILE_INFO:<name>:<size>
#     C -> S  READY
#     S -> C  <size raw bytes>
#     C -> S  FILE_RECEIVED | FILE_ERROR
#   S -> C  TRANSFER_COMPLETE

import asyncio
import os
from enum import Enum
from typing import NamedTuple, Optional

PORT = 5050
BUFFER_SIZE = 8192
SOCKET_TIMEOUT = 60.0
CONNECT_TIMEOUT = 10.0
MAX_WORKERS = 10
MAX_LINE = 4096

AUTH_SUCCESS = "AUTH_SUCCESS"
AUTH_FAILED = "AUTH_FAILED"
FILE_COUNT_PREFIX = "FILE_COUNT:"
NO_FILES = "NO_FILES"
FILE_INFO_PREFIX = "FILE_INFO:"
READY = "READY"
FILE_RECEIVED = "FILE_RECEIVED"
FILE_ERROR = "FILE_ERROR"
TRANSFER_COMPLETE = "TRANSFER_COMPLETE"
ERROR_PREFIX = "ERROR:"
DELIMITER = ":"

ENCODING = "utf-8"

class FileDescriptor(NamedTuple):
    name: str
    size: int

class Error(Enum):
    EAUTHENT = -1
    EPROTO = -2
    EIO = -3
    ETIMEOUT = -4
    ECONFIG = -5

class ShareException(Exception):
    err = Error.EIO

    def __init__(self, detail: str = "") -> None:
        self.detail = detail
        super().__init__(f"{self.err.name}: {detail}" if detail else self.err.name)

class AuthenticationRejected(ShareException):
    err = Error.EAUTHENT

class ProtocolViolation(ShareException):
    err = Error.EPROTO

class IOFailure(ShareException):
    err = Error.EIO

class IdleTimeout(IOFailure):
    err = Error.ETIMEOUT

class PayloadTruncated(IOFailure):
    # fewer bytes than announced went out; the stream is out of step
    err = Error.EIO

class ConfigurationFault(ShareException):
    err = Error.ECONFIG

_FORBIDDEN = {"/", "\\", "\n", "\r", "\0"}
for _sep in (os.sep, os.altsep):
    if _sep:
        _FORBIDDEN.add(_sep)

def is_safe_name(name: str) -> bool:
    if name in ("", ".", ".."):
        return False
    return not any(ch in _FORBIDDEN for ch in name)

def encode_line(text: str) -> bytes:
    assert "\n" not in text, "control messages are single lines"
    return (text + "\n").encode(ENCODING)

async def read_line(reader: asyncio.StreamReader, timeout: float) -> Optional[str]:
    """Read one control line, stripped of surrounding whitespace.

    Returns None if the peer closed the stream before a full line
    arrived. Raises IdleTimeout if nothing complete arrives within
    ``timeout`` seconds and ProtocolViolation for an over-long or
    undecodable line.
    """
    try:
        raw = await asyncio.wait_for(reader.readline(), timeout)
    except asyncio.TimeoutError as ex:
        raise IdleTimeout(f"no message within {timeout}s") from ex
    except ValueError as ex:
        # StreamReader.readline reports a line over the stream limit this way
        raise ProtocolViolation("line too long") from ex
    if not raw.endswith(b"\n"):
        return None
    if len(raw) > MAX_LINE:
        raise ProtocolViolation("line too long")
    try:
        return raw.decode(ENCODING).strip()
    except UnicodeDecodeError as ex:
        raise ProtocolViolation("line is not valid UTF-8") from ex

def format_file_count(count: int) -> str:
    assert count > 0
    return f"{FILE_COUNT_PREFIX}{count}"

def parse_file_count(line: str) -> int:
    if not line.startswith(FILE_COUNT_PREFIX):
        raise ProtocolViolation(f"expected file count, got {line!r}")
    try:
        count = int(line[len(FILE_COUNT_PREFIX):])
    except ValueError as ex:
        raise ProtocolViolation(f"bad file count {line!r}") from ex
    if count <= 0:
        raise ProtocolViolation(f"bad file count {line!r}")
    return count

def format_file_info(descriptor: FileDescriptor) -> str:
    if not is_safe_name(descriptor.name):
        raise ValueError(f"unsafe file name: {descriptor.name!r}")
    assert descriptor.size >= 0
    return f"{FILE_INFO_PREFIX}{descriptor.name}{DELIMITER}{descriptor.size}"

def parse_file_info(line: str) -> FileDescriptor:
    if not line.startswith(FILE_INFO_PREFIX):
        raise ProtocolViolation(f"expected file info, got {line!r}")
    payload = line[len(FILE_INFO_PREFIX):]
    name, sep, size_text = payload.rpartition(DELIMITER)
    if not sep or not name:
        raise ProtocolViolation(f"malformed file info {line!r}")
    try:
        size = int(size_text)
    except ValueError as ex:
        raise ProtocolViolation(f"bad file size in {line!r}") from ex
    if size < 0:
        raise ProtocolViolation(f"negative file size in {line!r}")
    return FileDescriptor(name, size)

def format_error(message: str) -> str:
    return ERROR_PREFIX + " ".join(message.splitlines())

def parse_error(line: str) -> Optional[str]:
    if line.startswith(ERROR_PREFIX):
        return line[len(ERROR_PREFIX):]
    return None

def format_size(size: int) -> str:
    if size < 1024:
        return f"{size} B"
    if size < 1024 ** 2:
        return f"{size / 1024:.1f} KB"
    if size < 1024 ** 3:
        return f"{size / 1024 ** 2:.1f} MB"
    return f"{size / 1024 ** 3:.2f} GB"
