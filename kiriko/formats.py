import logging
from dataclasses import dataclass
from typing import Callable, Iterable, Optional, Protocol, Sequence

from kiriko.codex.base import BufferLike
from kiriko.errors import NotRecognizedError


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DecodedFile:
    name: str
    data: bytes


PostProcessor = Callable[[DecodedFile], DecodedFile]


class FileFormat(Protocol):
    name: str

    def detect(self, data: BufferLike) -> bool:
        """Check the signature only, without decoding anything."""

    def decode(self, name: str, data: BufferLike) -> Sequence[DecodedFile]:
        ...


class FormatRegistry:
    """Closed list of formats, probed in order."""

    def __init__(self, formats: Iterable[FileFormat]) -> None:
        self.formats = tuple(formats)

    def __iter__(self):
        return iter(self.formats)

    def detect(self, data: BufferLike) -> Optional[FileFormat]:
        for fmt in self.formats:
            if fmt.detect(data):
                return fmt
        return None

    def decode(self, name: str, data: BufferLike) -> Sequence[DecodedFile]:
        fmt = self.detect(data)
        if fmt is None:
            raise NotRecognizedError(name)
        logger.debug('%s: decoding as %s', name, fmt.name)
        return fmt.decode(name, data)
