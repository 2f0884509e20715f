import argparse
import asyncio
import getpass
import logging
import os
import sys

from lanshare.auth.directory import load_directory
from lanshare.client.session import ClientSession, Progress, SessionStatus
from lanshare.client.sink import clear_sink, list_sink
from lanshare.config.config import ClientConfig, SharedConfig
from lanshare.proto.dat import CONNECT_TIMEOUT, PORT, SOCKET_TIMEOUT, format_size

LOGLEVEL = os.environ.get('LOGLEVEL', 'WARNING').upper()
logging.basicConfig(level=LOGLEVEL)

def print_progress(progress: Progress) -> None:
    print(
        f"\r({progress.index}/{progress.count}) {progress.name}: "
        f"{format_size(progress.received)} / {format_size(progress.size)} "
        f"({progress.overall_percent}%)",
        end="",
        flush=True
    )
    if progress.received == progress.size:
        print()

def connect() -> None:
    parser = argparse.ArgumentParser(description="Download a server's shared files")
    parser.add_argument("--identity", type=str, required=True)
    parser.add_argument("--directory", type=str, required=True,
                        help="JSON file mapping identity to hostname")
    parser.add_argument("--sink-root", type=str, required=True)
    parser.add_argument("--port", type=int, default=PORT)
    parser.add_argument("--timeout", type=float, default=SOCKET_TIMEOUT)
    parser.add_argument("--connect-timeout", type=float, default=CONNECT_TIMEOUT)
    parser.add_argument("--clean", action="store_true",
                        help="delete the downloaded files once the report is printed")
    args = parser.parse_args()

    client_config = ClientConfig(
        shared=SharedConfig(port=args.port, idle_timeout=args.timeout),
        sink_root=args.sink_root,
        connect_timeout=args.connect_timeout
    )
    session = ClientSession(client_config, load_directory(args.directory), progress=print_progress)
    secret = getpass.getpass("Secret: ")

    report = asyncio.run(session.download(args.identity, secret))
    print(f"Done: {report.summary()}")
    for descriptor in list_sink(args.sink_root):
        print(f"  {descriptor.name:<42} {format_size(descriptor.size)}")

    if args.clean:
        removed = clear_sink(args.sink_root)
        print(f"Cleanup complete, {len(removed)} file(s) removed.")

    if report.status in (SessionStatus.AUTH_FAILED, SessionStatus.ERROR):
        sys.exit(1)

if __name__ == "__main__":
    connect()
