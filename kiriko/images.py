import io
import logging
from pathlib import PurePosixPath

from PIL import Image

from kiriko.formats import DecodedFile


logger = logging.getLogger(__name__)

IMAGE_SUFFIXES = ('.bmp', '.tga')


def convert_to_png(decoded: DecodedFile) -> DecodedFile:
    path = PurePosixPath(decoded.name)
    if path.suffix.lower() not in IMAGE_SUFFIXES:
        return decoded

    # TGA carries no signature
    formats = ('TGA',) if path.suffix.lower() == '.tga' else ('BMP',)
    try:
        with Image.open(io.BytesIO(decoded.data), formats=formats) as im:
            output = io.BytesIO()
            im.save(output, format='PNG')
    except (OSError, SyntaxError) as exc:
        logger.warning('%s: left as is, cannot convert image: %s', decoded.name, exc)
        return decoded

    return DecodedFile(str(path.with_suffix('.png')), output.getvalue())
