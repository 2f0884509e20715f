import dataclasses

from lanshare.proto.dat import PORT, BUFFER_SIZE, SOCKET_TIMEOUT, CONNECT_TIMEOUT, MAX_WORKERS

@dataclasses.dataclass(frozen=True)
class SharedConfig:
    hostname: str = ""
    port: int = PORT
    # bound on every blocking read of a control line
    idle_timeout: float = SOCKET_TIMEOUT
    chunk_size: int = BUFFER_SIZE

@dataclasses.dataclass(frozen=True)
class ServerConfig:
    shared: SharedConfig
    # the one identity this server instance accepts
    identity: str
    share_root: str
    max_workers: int = MAX_WORKERS

@dataclasses.dataclass(frozen=True)
class ClientConfig:
    shared: SharedConfig
    sink_root: str
    connect_timeout: float = CONNECT_TIMEOUT
