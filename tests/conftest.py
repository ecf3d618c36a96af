import zlib
from typing import List, Optional, Sequence

import pytest

from kiriko.codex.xp3 import XP3_MAGIC


def write_uint16_le(number: int) -> bytes:
    return number.to_bytes(2, byteorder='little', signed=False)


def write_uint32_le(number: int) -> bytes:
    return number.to_bytes(4, byteorder='little', signed=False)


def write_uint64_le(number: int) -> bytes:
    return number.to_bytes(8, byteorder='little', signed=False)


def make_chunk(tag: bytes, payload: bytes, size: Optional[int] = None) -> bytes:
    return tag + write_uint64_le(len(payload) if size is None else size) + payload


def make_segment(flags: int, offset: int, size_original: int, size_compressed: int) -> bytes:
    return (
        write_uint32_le(flags)
        + write_uint64_le(offset)
        + write_uint64_le(size_original)
        + write_uint64_le(size_compressed)
    )


def make_file_entry(
    name: str,
    segments: Sequence[bytes],
    size_original: int,
    size_compressed: int,
    key: int = 0,
    flags: int = 0,
) -> bytes:
    raw_name = name.encode('utf-16-le')
    info = (
        write_uint32_le(flags)
        + write_uint64_le(size_original)
        + write_uint64_le(size_compressed)
        + write_uint16_le(len(raw_name) // 2)
        + raw_name
    )
    body = (
        make_chunk(b'info', info)
        + make_chunk(b'segm', b''.join(segments))
        + make_chunk(b'adlr', write_uint32_le(key))
    )
    return make_chunk(b'File', body)


class XP3Builder:
    def __init__(self) -> None:
        self.files: List[tuple] = []

    def add(self, name, data, key=0, compress=False, split=None, size_original=None):
        self.files.append((name, data, key, compress, split, size_original))
        return self

    def build(self, version=1, compress_table=False, minor=1) -> bytes:
        header_size = len(XP3_MAGIC) + 8 if version == 1 else len(XP3_MAGIC) + 12 + 17
        body = bytearray()
        table = bytearray()
        for name, data, key, compress, split, size_original in self.files:
            pieces = [data] if split is None else split
            segments = []
            stored_total = 0
            for piece in pieces:
                stored = zlib.compress(piece) if compress else piece
                segments.append(
                    make_segment(
                        1 if compress else 0,
                        header_size + len(body),
                        len(piece),
                        len(stored),
                    )
                )
                body += stored
                stored_total += len(stored)
            table += make_file_entry(
                name,
                segments,
                len(data) if size_original is None else size_original,
                stored_total,
                key=key,
            )

        table_offset = header_size + len(body)
        if compress_table:
            packed = zlib.compress(bytes(table))
            table_block = (
                b'\x01' + write_uint64_le(len(packed)) + write_uint64_le(len(table)) + packed
            )
        else:
            table_block = b'\x00' + write_uint64_le(len(table)) + bytes(table)

        if version == 1:
            header = XP3_MAGIC + write_uint64_le(table_offset)
        else:
            additional_offset = len(XP3_MAGIC) + 12
            header = (
                XP3_MAGIC
                + write_uint64_le(additional_offset)
                + write_uint32_le(minor)
                + b'\x80'
                + write_uint64_le(0)
                + write_uint64_le(table_offset)
            )
        assert len(header) == header_size
        return header + bytes(body) + table_block


@pytest.fixture
def xp3_builder():
    return XP3Builder()


@pytest.fixture
def lnd_file():
    def build(stream: bytes, size: int) -> bytes:
        return b'lnd\0' + bytes(4) + write_uint32_le(size) + bytes(4) + stream

    return build
