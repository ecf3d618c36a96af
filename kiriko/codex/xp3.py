import enum
import io
import logging
import zlib
from concurrent.futures import ThreadPoolExecutor
from contextlib import contextmanager
from functools import partial
from typing import IO, TYPE_CHECKING, Dict, Iterator, List, NamedTuple, Optional, Tuple

from arcfs.archive import ArchiveSource, BaseArchive, make_opener, normalize_member
from kiriko.codex.base import (
    BufferLike,
    SupportsRead,
    collect,
    read_exact,
    read_uint8,
    read_uint16_le,
    read_uint32_le,
    read_uint64_le,
)
from kiriko.codex.filters import XP3Filter
from kiriko.errors import CorruptDataError, UnsupportedVersionError
from kiriko.formats import DecodedFile

if TYPE_CHECKING:
    from arcfs.archive import ArchiveIndex


logger = logging.getLogger(__name__)

XP3_MAGIC = b'XP3\r\n \n\x1a\x8b\x67\x01'
FILE_MAGIC = b'File'
INFO_MAGIC = b'info'
SEGM_MAGIC = b'segm'
ADLR_MAGIC = b'adlr'

VERSION_OFFSET = 19
SEGMENT_RECORD_SIZE = 28


class CompressionVariant(enum.IntEnum):
    NONE = 0
    ZLIB = 1


class Segment(NamedTuple):
    flags: int
    offset: int
    size_original: int
    size_compressed: int

    @property
    def variant(self) -> CompressionVariant:
        if self.flags & 7:
            return CompressionVariant.ZLIB
        return CompressionVariant.NONE

    @property
    def stored_size(self) -> int:
        if self.variant == CompressionVariant.ZLIB:
            return self.size_compressed
        return self.size_original


class FileDescriptor(NamedTuple):
    name: str
    flags: int
    size_original: int
    size_compressed: int
    key: int
    segments: Tuple[Segment, ...]


def inflate(data: BufferLike, what: str) -> bytes:
    try:
        return zlib.decompress(data)
    except zlib.error as exc:
        raise CorruptDataError(f'cannot inflate {what}: {exc}') from exc


def detect_version(stream: SupportsRead[bytes]) -> int:
    pos = stream.tell()
    stream.seek(VERSION_OFFSET, io.SEEK_SET)
    version = 2 if read_uint32_le(stream) == 1 else 1
    stream.seek(pos, io.SEEK_SET)
    return version


def resolve_table_offset(stream: SupportsRead[bytes], version: int) -> int:
    if version == 1:
        return read_uint64_le(stream)

    additional_header_offset = read_uint64_le(stream)
    minor_version = read_uint32_le(stream)
    if minor_version != 1:
        raise UnsupportedVersionError(minor_version)

    stream.seek(additional_header_offset, io.SEEK_SET)
    _flags = read_uint8(stream)
    _table_size = read_uint64_le(stream)
    return read_uint64_le(stream)


def read_compressed_table(stream: SupportsRead[bytes], offset: int) -> bytes:
    stream.seek(offset, io.SEEK_SET)
    use_zlib = read_uint8(stream) != 0
    size_compressed = read_uint64_le(stream)
    size_original = read_uint64_le(stream) if use_zlib else size_compressed

    table = read_exact(stream, size_compressed)
    if use_zlib:
        table = inflate(table, 'file table')
        if len(table) != size_original:
            raise CorruptDataError(
                f'file table inflated to {len(table)} bytes, expected {size_original}',
                offset,
            )
    return table


def read_chunk_header(stream: SupportsRead[bytes], magic: bytes) -> int:
    offset = stream.tell()
    tag = read_exact(stream, len(magic))
    if tag != magic:
        raise CorruptDataError(
            f'expected {magic.decode()} chunk, found {tag!r}',
            offset,
        )
    return read_uint64_le(stream)


def read_info_chunk(stream: SupportsRead[bytes]) -> Tuple[int, int, int, str]:
    read_chunk_header(stream, INFO_MAGIC)
    flags = read_uint32_le(stream)
    size_original = read_uint64_le(stream)
    size_compressed = read_uint64_le(stream)
    name_length = read_uint16_le(stream)
    offset = stream.tell()
    raw_name = read_exact(stream, name_length * 2)
    try:
        name = raw_name.decode('utf-16-le')
    except UnicodeDecodeError as exc:
        raise CorruptDataError(f'bad file name {raw_name!r}', offset) from exc
    return flags, size_original, size_compressed, name


def read_segm_chunk(stream: SupportsRead[bytes]) -> Tuple[Segment, ...]:
    offset = stream.tell()
    chunk_size = read_chunk_header(stream, SEGM_MAGIC)
    if chunk_size % SEGMENT_RECORD_SIZE != 0:
        raise CorruptDataError(f'unexpected segm chunk size {chunk_size}', offset)
    return tuple(
        Segment(
            flags=read_uint32_le(stream),
            offset=read_uint64_le(stream),
            size_original=read_uint64_le(stream),
            size_compressed=read_uint64_le(stream),
        )
        for _ in range(chunk_size // SEGMENT_RECORD_SIZE)
    )


def read_adlr_chunk(stream: SupportsRead[bytes]) -> int:
    offset = stream.tell()
    chunk_size = read_chunk_header(stream, ADLR_MAGIC)
    if chunk_size != 4:
        raise CorruptDataError(f'unexpected adlr chunk size {chunk_size}', offset)
    return read_uint32_le(stream)


def read_file_chunk(stream: SupportsRead[bytes]) -> FileDescriptor:
    offset = stream.tell()
    chunk_size = read_chunk_header(stream, FILE_MAGIC)
    start = stream.tell()

    flags, size_original, size_compressed, name = read_info_chunk(stream)
    segments = read_segm_chunk(stream)
    key = read_adlr_chunk(stream)

    if stream.tell() - start != chunk_size:
        raise CorruptDataError(
            f'{name}: File chunk size mismatch, '
            f'declared {chunk_size} but read {stream.tell() - start}',
            offset,
        )
    if not segments:
        raise CorruptDataError(f'{name}: file has no segments', offset)

    return FileDescriptor(name, flags, size_original, size_compressed, key, segments)


@collect(list)
def parse_table(table: BufferLike) -> Iterator[FileDescriptor]:
    stream = io.BytesIO(table)
    while stream.tell() < len(table):
        yield read_file_chunk(stream)


def read_index(data: BufferLike) -> List[FileDescriptor]:
    stream = io.BytesIO(data)
    if read_exact(stream, len(XP3_MAGIC)) != XP3_MAGIC:
        raise CorruptDataError('bad XP3 signature', 0)

    version = detect_version(stream)
    table_offset = resolve_table_offset(stream, version)
    logger.debug('XP3 version %d, table at 0x%x', version, table_offset)

    table = read_compressed_table(stream, table_offset)
    descriptors = parse_table(table)
    logger.debug('table lists %d files', len(descriptors))
    return descriptors


def read_segments(data: BufferLike, descriptor: FileDescriptor) -> bytearray:
    payload = bytearray()
    for segment in descriptor.segments:
        end = segment.offset + segment.stored_size
        if end > len(data):
            raise CorruptDataError(
                f'{descriptor.name}: segment ends at 0x{end:x}, '
                f'past the archive end 0x{len(data):x}',
                segment.offset,
            )
        stored = data[segment.offset : end]
        if segment.variant == CompressionVariant.ZLIB:
            payload += inflate(stored, f'{descriptor.name} segment')
        else:
            payload += stored

    if len(payload) != descriptor.size_original:
        raise CorruptDataError(
            f'{descriptor.name}: reassembled {len(payload)} bytes, '
            f'expected {descriptor.size_original}'
        )
    return payload


def decode_entry(
    data: BufferLike,
    descriptor: FileDescriptor,
    filter: Optional[XP3Filter] = None,
) -> DecodedFile:
    payload = read_segments(data, descriptor)
    if filter is not None:
        filter(payload, descriptor.key)
    return DecodedFile(descriptor.name, bytes(payload))


class XP3Format:
    name = 'krkr/xp3'

    def __init__(self, filter: Optional[XP3Filter] = None, workers: int = 1) -> None:
        self.filter = filter
        self.workers = workers

    def detect(self, data: BufferLike) -> bool:
        return bytes(data[: len(XP3_MAGIC)]) == XP3_MAGIC

    def decode(self, name: str, data: BufferLike) -> List[DecodedFile]:
        data = bytes(data)
        descriptors = read_index(data)
        decode = partial(decode_entry, data, filter=self.filter)
        if self.workers <= 1:
            return [decode(descriptor) for descriptor in descriptors]
        with ThreadPoolExecutor(max_workers=self.workers) as executor:
            return list(executor.map(decode, descriptors))


class XP3Archive(BaseArchive[FileDescriptor]):
    _data: bytes

    def __init__(self, file: ArchiveSource, filter: Optional[XP3Filter] = None) -> None:
        self.filter = filter
        super().__init__(file)

    def _create_index(self) -> 'ArchiveIndex[FileDescriptor]':
        self._stream.seek(0, io.SEEK_SET)
        self._data = self._stream.read()
        index: Dict[str, FileDescriptor] = {}
        for descriptor in read_index(self._data):
            name = normalize_member(descriptor.name)
            if name in index:
                logger.warning(
                    'duplicate member %s (as %r), keeping the last one',
                    name,
                    descriptor.name,
                )
            index[name] = descriptor
        return index

    @contextmanager
    def _read_entry(self, entry: FileDescriptor) -> Iterator[IO[bytes]]:
        yield io.BytesIO(decode_entry(self._data, entry, self.filter).data)


open = make_opener(XP3Archive)
