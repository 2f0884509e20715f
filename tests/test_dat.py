import asyncio

import pytest

from lanshare.proto.dat import MAX_LINE, FileDescriptor, IdleTimeout, ProtocolViolation, \
    encode_line, format_error, format_file_count, format_file_info, format_size, is_safe_name, \
    parse_error, parse_file_count, parse_file_info, read_line

def test_file_info_keeps_colons_in_name():
    line = format_file_info(FileDescriptor("lecture 3: intro.pdf", 2048))
    assert line == "FILE_INFO:lecture 3: intro.pdf:2048"
    assert parse_file_info(line) == FileDescriptor("lecture 3: intro.pdf", 2048)

@pytest.mark.parametrize("line", [
    "FILE_INFO:",
    "FILE_INFO:name",
    "FILE_INFO::12",
    "FILE_INFO:name:twelve",
    "FILE_INFO:name:-1",
    "FILE_COUNT:3",
])
def test_malformed_file_info(line):
    with pytest.raises(ProtocolViolation):
        parse_file_info(line)

def test_file_count():
    assert format_file_count(2) == "FILE_COUNT:2"
    assert parse_file_count("FILE_COUNT:2") == 2
    for bad in ("FILE_COUNT:0", "FILE_COUNT:x", "NO_FILES", "FILE_COUNT:-4"):
        with pytest.raises(ProtocolViolation):
            parse_file_count(bad)

@pytest.mark.parametrize("name", ["", ".", "..", "a/b", "..\\up", "two\nlines", "nul\0"])
def test_unsafe_names(name):
    assert not is_safe_name(name)
    with pytest.raises(ValueError):
        format_file_info(FileDescriptor(name, 1))

def test_safe_names():
    for name in ("notes.pdf", ".hidden", "a..b", "lecture 3: intro.pdf"):
        assert is_safe_name(name)

def test_error_line():
    line = format_error("Shared folder\nnot available")
    assert "\n" not in line
    assert parse_error(line) == "Shared folder not available"
    assert parse_error("NO_FILES") is None

def test_encode_line():
    assert encode_line("READY") == b"READY\n"

def test_format_size():
    assert format_size(512) == "512 B"
    assert format_size(2048) == "2.0 KB"
    assert format_size(3 * 1024 * 1024) == "3.0 MB"
    assert format_size(5 * 1024 ** 3) == "5.00 GB"

def _reader(data: bytes, eof: bool = True) -> asyncio.StreamReader:
    reader = asyncio.StreamReader()
    reader.feed_data(data)
    if eof:
        reader.feed_eof()
    return reader

def test_read_line_strips_and_detects_eof():
    async def scenario():
        reader = _reader(b"  faculty1 \r\npartial")
        first = await read_line(reader, 1.0)
        second = await read_line(reader, 1.0)
        return first, second
    assert asyncio.run(scenario()) == ("faculty1", None)

def test_read_line_times_out():
    async def scenario():
        await read_line(_reader(b"", eof=False), 0.05)
    with pytest.raises(IdleTimeout):
        asyncio.run(scenario())

def test_read_line_rejects_long_lines():
    async def scenario():
        await read_line(_reader(b"x" * (MAX_LINE + 1) + b"\n"), 1.0)
    with pytest.raises(ProtocolViolation):
        asyncio.run(scenario())

def test_read_line_rejects_bad_utf8():
    async def scenario():
        await read_line(_reader(b"\xff\xfe\n"), 1.0)
    with pytest.raises(ProtocolViolation):
        asyncio.run(scenario())
