import argparse
import asyncio
import getpass
import logging
import os
import signal
import socket
import sys
from typing import Optional

from lanshare.auth.credentials import CredentialStore, hash_secret, load_credentials
from lanshare.auth.directory import IdentityDirectory, load_directory
from lanshare.config.config import ServerConfig, SharedConfig
from lanshare.proto.dat import MAX_WORKERS, PORT, SOCKET_TIMEOUT, ConfigurationFault
from lanshare.server.server import Server

LOGLEVEL = os.environ.get('LOGLEVEL', 'INFO').upper()
logging.basicConfig(level=LOGLEVEL, format="[%(asctime)s] %(levelname)s %(name)s: %(message)s")

LOGGER = logging.getLogger(__name__)

def resolve_identity(
    directory: Optional[IdentityDirectory],
    requested: Optional[str],
    hostname: str
) -> Optional[str]:
    # This machine's hostname wins over the command line, so a lab PC
    # always serves as the identity it is registered under
    if directory is not None:
        detected = directory.identity_for(hostname)
        if detected is not None:
            LOGGER.info("Hostname %r matched, serving as %r", hostname, detected)
            return detected
        LOGGER.info("Hostname %r not found in the identity directory", hostname)
    if requested:
        return requested.strip()
    return None

async def run_server(
    server: Server,
    drain_timeout: float,
    stop: Optional[asyncio.Event] = None
) -> None:
    if stop is None:
        stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for signum in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(signum, stop.set)
        except NotImplementedError:
            # No loop signal support on this platform; Ctrl+C still ends asyncio.run
            pass
    async with server:
        await stop.wait()
        LOGGER.info("Shutdown signal received")
        server.stop_accepting()
        if not await server.listener.wait_idle(drain_timeout):
            LOGGER.warning(
                "%d connection(s) still active after %.0fs",
                server.listener.active_connections,
                drain_timeout
            )

def serve() -> None:
    parser = argparse.ArgumentParser(description="Share one directory with authenticated peers")
    parser.add_argument("--credentials", type=str, required=True,
                        help="JSON file mapping identity to hashed secret")
    parser.add_argument("--share-root", type=str, required=True)
    parser.add_argument("--directory", type=str, default=None,
                        help="JSON file mapping identity to hostname")
    parser.add_argument("--identity", type=str, default=None)
    parser.add_argument("--hostname", type=str, default="")
    parser.add_argument("--port", type=int, default=PORT)
    parser.add_argument("--max-workers", type=int, default=MAX_WORKERS)
    parser.add_argument("--timeout", type=float, default=SOCKET_TIMEOUT)
    args = parser.parse_args()

    credentials: CredentialStore = load_credentials(args.credentials)
    directory = load_directory(args.directory) if args.directory else None
    identity = resolve_identity(directory, args.identity, socket.gethostname())
    if identity is None or not credentials.exists(identity):
        print(f"ERROR: Unknown identity {identity!r}", file=sys.stderr)
        print(f"Registered identities: {sorted(credentials.all_identities())}", file=sys.stderr)
        sys.exit(1)

    config = ServerConfig(
        shared=SharedConfig(
            hostname=args.hostname,
            port=args.port,
            idle_timeout=args.timeout
        ),
        identity=identity,
        share_root=args.share_root,
        max_workers=args.max_workers
    )
    try:
        server = Server(config, credentials)
    except ConfigurationFault as ex:
        LOGGER.error("FATAL: %s", ex)
        sys.exit(1)

    asyncio.run(run_server(server, args.timeout))

def hash_main() -> None:
    parser = argparse.ArgumentParser(description="Print the stored form of a secret")
    parser.add_argument("secret", nargs="?", default=None)
    args = parser.parse_args()
    secret = args.secret if args.secret is not None else getpass.getpass("Secret: ")
    print(hash_secret(secret))

if __name__ == "__main__":
    serve()
