from typing import Mapping, Optional, Protocol, Sequence, Tuple

import numpy as np

from kiriko.errors import UnknownTitleError


class XP3Filter(Protocol):
    def __call__(self, payload: bytearray, key: int) -> None:
        ...


class XorFilter:
    """
    XOR every byte with a constant, then toggle bits at fixed offsets.

    The fixups restore header bytes of embedded files that the blanket XOR
    leaves wrong. A fixup only applies when the payload reaches its offset.
    """

    def __init__(self, xor: int, fixups: Sequence[Tuple[int, int]] = ()) -> None:
        self.xor = xor
        self.fixups = tuple(fixups)

    def __call__(self, payload: bytearray, key: int) -> None:
        if not payload:
            return
        view = np.frombuffer(payload, dtype=np.uint8)
        view ^= np.uint8(self.xor)
        del view
        for offset, mask in self.fixups:
            if len(payload) > offset:
                payload[offset] ^= mask

    def __repr__(self) -> str:
        fixups = ', '.join(f'(0x{offset:x}, 0x{mask:02x})' for offset, mask in self.fixups)
        return f'{type(self).__name__}(0x{self.xor:02x}, ({fixups}))'


FILTERS: Mapping[str, XP3Filter] = {
    'fsn': XorFilter(0x36, ((0x2EA29, 0x03), (0x13, 0x01))),
}


def get_filter(title: Optional[str]) -> Optional[XP3Filter]:
    if title is None:
        return None
    try:
        return FILTERS[title]
    except KeyError as exc:
        raise UnknownTitleError(title) from exc
