# ShareRoot access. The share is flat: only regular files
# directly inside the root are visible, and every lookup is
# re-done per session so operator edits show up immediately.

import logging
import os
from typing import List

from lanshare.proto.dat import ConfigurationFault, FileDescriptor, IOFailure, is_safe_name

LOGGER = logging.getLogger(__name__)

def validate_share_root(share_root: str) -> str:
    path = os.path.abspath(share_root)
    if not os.path.exists(path):
        raise ConfigurationFault(f"share root does not exist: {path}")
    if not os.path.isdir(path):
        raise ConfigurationFault(f"share root is not a directory: {path}")
    if not os.access(path, os.R_OK | os.X_OK):
        raise ConfigurationFault(f"share root is not readable: {path}")
    return path

def enumerate_share(share_root: str) -> List[FileDescriptor]:
    """List the regular files directly inside ``share_root``, sorted by name.

    Subdirectories and symlinks are skipped, as is any name that could
    not be announced safely on the wire. Sizes are taken now and are
    what the session will announce.
    """
    descriptors: List[FileDescriptor] = []
    try:
        with os.scandir(share_root) as entries:
            for entry in entries:
                if entry.is_symlink() or not entry.is_file():
                    continue
                if not is_safe_name(entry.name):
                    LOGGER.warning("Skipping unannounceable file name %r", entry.name)
                    continue
                descriptors.append(FileDescriptor(entry.name, entry.stat().st_size))
    except OSError as ex:
        raise IOFailure(f"cannot list share root: {ex}") from ex
    descriptors.sort(key=lambda d: d.name)
    return descriptors

def resolve_in_share(share_root: str, name: str) -> str:
    if not is_safe_name(name):
        raise IOFailure(f"refusing unsafe file name {name!r}")
    path = os.path.join(share_root, name)
    if os.path.dirname(os.path.abspath(path)) != os.path.abspath(share_root):
        raise IOFailure(f"refusing path outside share root: {name!r}")
    return path
