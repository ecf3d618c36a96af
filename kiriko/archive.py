import itertools
import logging
import os
from pathlib import Path
from typing import Iterable, Iterator, List, Optional, Sequence

from arcfs.archive import normalize_member
from kiriko.codex.filters import get_filter
from kiriko.codex.lnd import LndFormat
from kiriko.codex.xp3 import XP3Format
from kiriko.formats import DecodedFile, FormatRegistry, PostProcessor


logger = logging.getLogger(__name__)

ARCHIVE_PATTERNS = ('*.xp3', '*.XP3', '*.lnd', '*.LND')


def default_registry(title: Optional[str] = None, workers: int = 1) -> FormatRegistry:
    return FormatRegistry(
        [
            XP3Format(get_filter(title), workers=workers),
            LndFormat(),
        ]
    )


def game_search(base_dir, patterns=ARCHIVE_PATTERNS) -> Iterator[Path]:
    parsed_files = set()

    base_dir = Path(base_dir)
    if base_dir.is_file():
        yield base_dir
        return

    for pattern in patterns:
        for entry in sorted(base_dir.glob(pattern)):
            if not (entry.is_dir() or entry in parsed_files):
                parsed_files.add(entry)
                yield entry


def decode_file(
    path: Path,
    registry: FormatRegistry,
    hooks: Sequence[PostProcessor] = (),
) -> Optional[List[DecodedFile]]:
    data = path.read_bytes()
    fmt = registry.detect(data)
    if fmt is None:
        logger.info('%s: not recognized, skipping', path.name)
        return None

    logger.info('%s: decoding as %s', path.name, fmt.name)
    files = list(fmt.decode(path.name, data))
    for hook in hooks:
        files = [hook(decoded) for decoded in files]
    return files


def write_files(target: Path, files: Iterable[DecodedFile]) -> int:
    count = 0
    for decoded in files:
        name = normalize_member(decoded.name)
        if not name:
            logger.warning('skipping member with empty name %r', decoded.name)
            continue
        if name != decoded.name:
            logger.debug('writing %r as %s', decoded.name, name)
        path = target / name
        os.makedirs(path.parent, exist_ok=True)
        path.write_bytes(decoded.data)
        count += 1
    return count


def extract(
    base_dir,
    patterns=ARCHIVE_PATTERNS,
    target='extracted',
    registry: Optional[FormatRegistry] = None,
    hooks: Sequence[PostProcessor] = (),
) -> int:
    if registry is None:
        registry = default_registry()
    target = Path(target)

    total = 0
    for path in game_search(base_dir, patterns):
        files = decode_file(path, registry, hooks)
        if files is None:
            continue
        written = write_files(target / path.name, files)
        logger.info('%s: extracted %d files', path.name, written)
        total += written
    return total


def contains_xp3(base_dir, patterns=ARCHIVE_PATTERNS) -> bool:
    probe = XP3Format()
    for path in itertools.islice(game_search(base_dir, patterns), 64):
        with open(path, 'rb') as stream:
            if probe.detect(stream.read(32)):
                return True
    return False
