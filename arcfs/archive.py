import io
import os
import pathlib
from contextlib import AbstractContextManager, contextmanager
from typing import (
    IO,
    TYPE_CHECKING,
    Any,
    Callable,
    ContextManager,
    Generic,
    Iterator,
    Mapping,
    Optional,
    Type,
    TypeVar,
    Union,
    cast,
)

if TYPE_CHECKING:
    from types import TracebackType

GLOB_ALL = '*'


EntryType = TypeVar('EntryType')
ArchiveIndex = Mapping[str, EntryType]
ArchiveSource = Union[str, bytes, os.PathLike[str], IO[bytes]]


class MemberNotFoundError(ValueError):
    def __init__(self, fname: str) -> None:
        super().__init__(f'no member {fname} found in archive')


def normalize_member(fname: Union[str, os.PathLike[str]]) -> str:
    """
    Normalize a member name to a relative posix path.

    Archive tables come from untrusted data, so drive letters, leading
    separators and parent references are dropped.
    """
    parts = pathlib.PureWindowsPath(os.fspath(fname)).parts
    safe = [
        part
        for part in parts
        if part not in ('', '.', '..') and not part.endswith((':', ':\\', '\\'))
    ]
    return '/'.join(safe)


class ArchivePath:
    def __init__(self, fname: str, archive: 'BaseArchive[Any]') -> None:
        self.fname = pathlib.PurePosixPath(fname)
        self.archive = archive

    @property
    def parent(self) -> str:
        return str(self.fname.parent)

    @property
    def name(self) -> str:
        return self.fname.name

    def __str__(self) -> str:
        return str(self.fname)

    def match(self, pattern: str) -> bool:
        return self.fname.match(pattern)

    def read_bytes(self) -> bytes:
        with self.archive.open(str(self), mode='rb') as stream:
            return cast(bytes, stream.read())

    def read_text(self, encoding: str = 'utf-8') -> str:
        with self.archive.open(str(self), encoding=encoding) as stream:
            return cast(str, stream.read())


class BaseArchive(AbstractContextManager['BaseArchive[EntryType]'], Generic[EntryType]):
    """
    Read-only view of an archive: a name -> entry index plus an entry reader.

    Subclasses build the index in `_create_index` and decode one entry in
    `_read_entry`. Member names are normalized with `normalize_member`.
    """

    _stream: IO[bytes]

    index: Mapping[str, EntryType]

    def _create_index(self) -> ArchiveIndex[EntryType]:
        raise NotImplementedError('create_index')

    @contextmanager
    def _read_entry(self, entry: EntryType) -> Iterator[IO[bytes]]:
        raise NotImplementedError('read_entry')

    def __init__(self, file: ArchiveSource) -> None:
        if isinstance(file, os.PathLike):
            file = os.fspath(file)

        if isinstance(file, (str, bytes)):
            self._stream = open(file, 'rb')
        else:
            self._stream = file
        self.index = {
            normalize_member(name): entry
            for name, entry in self._create_index().items()
        }

    @contextmanager
    def open(
        self,
        fname: str,
        mode: str = 'r',
        encoding: str = 'utf-8',
    ) -> Iterator[IO[Any]]:
        try:
            member = self.index[normalize_member(fname)]
        except KeyError as exc:
            raise MemberNotFoundError(fname) from exc

        with self._read_entry(member) as stream:
            if 'b' in mode:
                yield stream
            else:
                yield io.TextIOWrapper(cast(io.BufferedIOBase, stream), encoding=encoding)

    def close(self) -> Optional[bool]:
        return self._stream.close()

    def __exit__(
        self,
        exc_type: Optional[Type[BaseException]],
        exc_value: Optional[BaseException],
        traceback: Optional['TracebackType'],
    ) -> Optional[bool]:
        return self.close()

    def __iter__(self) -> Iterator[ArchivePath]:
        for fname in self.index:
            yield ArchivePath(fname, self)

    def glob(self, pattern: str) -> Iterator[ArchivePath]:
        return (entry for entry in self if entry.match(pattern))

    def extractall(
        self,
        dirname: Union[str, os.PathLike[str]],
        pattern: str = GLOB_ALL,
    ) -> None:
        dirname = pathlib.Path(dirname)
        for entry in self.glob(pattern):
            os.makedirs(dirname / entry.parent, exist_ok=True)
            (dirname / str(entry)).write_bytes(entry.read_bytes())


def make_opener(
    archive_type: Type['BaseArchive[EntryType]'],
) -> Callable[..., ContextManager['BaseArchive[EntryType]']]:
    @contextmanager
    def opener(*args: Any, **kwargs: Any) -> Iterator['BaseArchive[EntryType]']:
        with archive_type(*args, **kwargs) as inst:
            yield inst

    return opener
