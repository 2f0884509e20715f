# The local download directory. Flat, like the share it mirrors.

import logging
import os
from typing import List

from lanshare.proto.dat import FileDescriptor

LOGGER = logging.getLogger(__name__)

def ensure_sink(sink_root: str) -> str:
    os.makedirs(sink_root, exist_ok=True)
    return sink_root

def list_sink(sink_root: str) -> List[FileDescriptor]:
    if not os.path.isdir(sink_root):
        return []
    descriptors: List[FileDescriptor] = []
    with os.scandir(sink_root) as entries:
        for entry in entries:
            if entry.is_file(follow_symlinks=False):
                descriptors.append(FileDescriptor(entry.name, entry.stat().st_size))
    descriptors.sort(key=lambda d: d.name)
    return descriptors

def clear_sink(sink_root: str) -> List[str]:
    removed: List[str] = []
    for descriptor in list_sink(sink_root):
        path = os.path.join(sink_root, descriptor.name)
        try:
            os.remove(path)
        except OSError as ex:
            LOGGER.error("Could not delete %s: %s", path, ex)
            continue
        LOGGER.info("Deleted %s", descriptor.name)
        removed.append(descriptor.name)
    return removed

def discard(path: str) -> None:
    try:
        os.remove(path)
    except FileNotFoundError:
        pass
