import os

import pytest

from lanshare.client.sink import clear_sink, list_sink
from lanshare.config.config import ServerConfig, SharedConfig
from lanshare.proto.dat import ConfigurationFault, FileDescriptor, IOFailure
from lanshare.server.server import Server
from lanshare.server.share import enumerate_share, resolve_in_share, validate_share_root

def test_enumerate_lists_direct_regular_files_sorted(make_share):
    share = make_share({"slides.pdf": b"s" * 4096, "notes.pdf": b"n" * 2048, "empty.txt": b""})
    os.mkdir(os.path.join(share, "subfolder"))
    with open(os.path.join(share, "subfolder", "hidden.pdf"), "wb") as f:
        f.write(b"x")
    assert enumerate_share(share) == [
        FileDescriptor("empty.txt", 0),
        FileDescriptor("notes.pdf", 2048),
        FileDescriptor("slides.pdf", 4096),
    ]

def test_enumerate_skips_symlinks(make_share, tmp_path):
    outside = tmp_path / "secret.txt"
    outside.write_bytes(b"secret")
    share = make_share({"notes.pdf": b"n"})
    os.symlink(str(outside), os.path.join(share, "link.txt"))
    assert [d.name for d in enumerate_share(share)] == ["notes.pdf"]

def test_enumerate_reflects_changes_between_calls(make_share):
    share = make_share({})
    assert enumerate_share(share) == []
    with open(os.path.join(share, "late.txt"), "wb") as f:
        f.write(b"abc")
    assert enumerate_share(share) == [FileDescriptor("late.txt", 3)]

def test_enumerate_missing_root_is_io_failure(tmp_path):
    with pytest.raises(IOFailure):
        enumerate_share(str(tmp_path / "gone"))

def test_validate_share_root(tmp_path):
    assert validate_share_root(str(tmp_path)) == str(tmp_path)
    with pytest.raises(ConfigurationFault):
        validate_share_root(str(tmp_path / "missing"))
    regular = tmp_path / "file.txt"
    regular.write_bytes(b"")
    with pytest.raises(ConfigurationFault):
        validate_share_root(str(regular))

def test_resolve_in_share_refuses_traversal(tmp_path):
    assert resolve_in_share(str(tmp_path), "a.txt") == os.path.join(str(tmp_path), "a.txt")
    for name in ("..", "../a.txt", "sub/a.txt"):
        with pytest.raises(IOFailure):
            resolve_in_share(str(tmp_path), name)

def _config(share_root: str, identity: str = "faculty1") -> ServerConfig:
    return ServerConfig(
        shared=SharedConfig(hostname="127.0.0.1", port=0),
        identity=identity,
        share_root=share_root
    )

def test_server_fails_fast_on_bad_share(tmp_path, credentials):
    with pytest.raises(ConfigurationFault):
        Server(_config(str(tmp_path / "missing")), credentials)

def test_server_requires_provisioned_identity(tmp_path, credentials):
    with pytest.raises(ConfigurationFault):
        Server(_config(str(tmp_path), identity="faculty9"), credentials)

def test_sink_listing_and_cleanup(tmp_path):
    sink = tmp_path / "sink"
    assert list_sink(str(sink)) == []
    sink.mkdir()
    (sink / "b.pdf").write_bytes(b"bb")
    (sink / "a.pdf").write_bytes(b"a")
    assert list_sink(str(sink)) == [FileDescriptor("a.pdf", 1), FileDescriptor("b.pdf", 2)]
    assert sorted(clear_sink(str(sink))) == ["a.pdf", "b.pdf"]
    assert list_sink(str(sink)) == []
