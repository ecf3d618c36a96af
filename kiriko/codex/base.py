from functools import wraps
from typing import (
    Callable,
    Iterable,
    Optional,
    ParamSpec,
    Protocol,
    TypeVar,
    Union,
)

from kiriko.errors import CorruptDataError


ItemT = TypeVar('ItemT')
ResultT = TypeVar('ResultT')
ArgsP = ParamSpec('ArgsP')
ReadT = TypeVar('ReadT', covariant=True)
BufferLike = Union[bytes, bytearray, memoryview]


class SupportsRead(Protocol[ReadT]):
    def read(self, size: int = ...) -> ReadT:
        ...

    def seek(self, pos: int, whence: int = ...) -> Optional[int]:
        ...

    def tell(self) -> int:
        ...


def collect(
    collector: Callable[[Iterable[ItemT]], ResultT],
) -> Callable[[Callable[ArgsP, Iterable[ItemT]]], Callable[ArgsP, ResultT]]:
    def decorator(
        generator: Callable[ArgsP, Iterable[ItemT]],
    ) -> Callable[ArgsP, ResultT]:
        @wraps(generator)
        def inner(*args: ArgsP.args, **kwargs: ArgsP.kwargs) -> ResultT:
            return collector(generator(*args, **kwargs))

        return inner

    return decorator


def read_exact(stream: SupportsRead[bytes], size: int) -> bytes:
    offset = stream.tell()
    data = stream.read(size)
    if len(data) != size:
        raise CorruptDataError(
            f'unexpected end of data, wanted {size} bytes but got {len(data)}',
            offset,
        )
    return data


def read_uint8(stream: SupportsRead[bytes]) -> int:
    return read_exact(stream, 1)[0]


def read_uint16_le(stream: SupportsRead[bytes]) -> int:
    return int.from_bytes(read_exact(stream, 2), byteorder='little', signed=False)


def read_uint32_le(stream: SupportsRead[bytes]) -> int:
    return int.from_bytes(read_exact(stream, 4), byteorder='little', signed=False)


def read_uint64_le(stream: SupportsRead[bytes]) -> int:
    return int.from_bytes(read_exact(stream, 8), byteorder='little', signed=False)
