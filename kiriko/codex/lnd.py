import io
import logging
from typing import List

from kiriko.codex.base import BufferLike, read_exact, read_uint32_le
from kiriko.errors import CorruptDataError
from kiriko.formats import DecodedFile


logger = logging.getLogger(__name__)

LND_MAGIC = b'lnd\0'


def decompress(data: BufferLike, size: int) -> bytes:
    """
    Decode a KID LND stream into at most `size` bytes.

    Each control byte selects one of four operations by its two high bits:
    11 repeats a single byte, 10 copies from already decoded output, 01 adds
    a pattern onto the output and 00 copies literals. Running out of input
    ends decoding and returns what was produced so far.
    """
    output = bytearray(size)
    end = len(data)
    i = o = 0

    while o < size and i < end:
        control = data[i]
        i += 1

        if control & 0x80 and control & 0x40:
            count = (control & 0x1F) + 2
            if control & 0x20:
                if i >= end:
                    break
                count += data[i] << 5
                i += 1
            if i >= end:
                break
            value = data[i]
            count = min(count, size - o)
            output[o : o + count] = bytes([value]) * count
            o += count
            i += 1

        elif control & 0x80:
            length = ((control >> 2) & 0xF) + 2
            if i >= end:
                break
            distance = ((control & 3) << 8) + data[i] + 1
            i += 1
            if distance > o:
                raise CorruptDataError(
                    f'back-reference distance {distance} exceeds {o} decoded bytes',
                    i - 2,
                )
            # copy one byte at a time, short distances tile the output
            for _ in range(length):
                if o >= size:
                    break
                output[o] = output[o - distance]
                o += 1

        elif control & 0x40:
            if i >= end:
                break
            repeat = data[i] + 1
            i += 1
            width = (control & 0x3F) + 2
            pattern = data[i : i + width]
            for _ in range(repeat):
                for value in pattern:
                    if o >= size:
                        break
                    output[o] = (output[o] + value) & 0xFF
                    o += 1
                if len(pattern) < width:
                    # input ran out inside the pattern
                    return bytes(output[:o])
            i += width

        else:
            count = (control & 0x1F) + 1
            if control & 0x20:
                if i >= end:
                    break
                count += data[i] << 5
                i += 1
            chunk = data[i : i + min(count, size - o)]
            output[o : o + len(chunk)] = chunk
            o += len(chunk)
            i += len(chunk)
            if len(chunk) < count and o < size:
                break

    return bytes(output[:o])


class LndFormat:
    name = 'kid/lnd'

    def detect(self, data: BufferLike) -> bool:
        return bytes(data[: len(LND_MAGIC)]) == LND_MAGIC

    def decode(self, name: str, data: BufferLike) -> List[DecodedFile]:
        stream = io.BytesIO(data)
        if read_exact(stream, len(LND_MAGIC)) != LND_MAGIC:
            raise CorruptDataError(f'{name}: bad LND signature', 0)
        stream.seek(4, io.SEEK_CUR)
        size_original = read_uint32_le(stream)
        stream.seek(4, io.SEEK_CUR)
        output = decompress(stream.read(), size_original)
        if len(output) != size_original:
            logger.warning(
                '%s: stream ended after %d of %d bytes',
                name,
                len(output),
                size_original,
            )
        return [DecodedFile(name, output)]
