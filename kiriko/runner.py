import argparse
import logging
import pathlib
import sys

from kiriko import archive
from kiriko.codex.filters import FILTERS
from kiriko.errors import FormatError, UnknownTitleError
from kiriko.images import convert_to_png
from kiriko.prompt import Option, select_prompt


logger = logging.getLogger(__name__)

NO_TITLE = 'none'


def menu(argv=None):
    if argv is None:
        argv = sys.argv[1:]

    parser = argparse.ArgumentParser(
        description='Extract visual novel archives (XP3, LND).'
    )
    parser.add_argument(
        'path',
        nargs='?',
        default='.',
        help='Archive file or game directory. If omitted, current working directory is used.',
    )
    parser.add_argument(
        '-p',
        '--patterns',
        nargs='*',
        default=archive.ARCHIVE_PATTERNS,
        help='patterns of archive files to extract',
    )
    parser.add_argument(
        '-t',
        '--title',
        choices=sorted(FILTERS) + [NO_TITLE],
        help='game title, selects the XP3 decryption filter',
    )
    parser.add_argument(
        '-j',
        '--workers',
        type=int,
        default=1,
        help='number of files decoded in parallel within an archive',
    )
    parser.add_argument(
        '--png',
        action='store_true',
        help='convert extracted BMP and TGA images to PNG',
    )
    parser.add_argument(
        '-o',
        '--output',
        default='extracted',
        help='directory to extract files into',
    )
    parser.add_argument(
        '-v',
        '--verbose',
        action='store_true',
        help='print debug information',
    )
    return parser.parse_args(argv)


def ask_title(gamedir, patterns):
    if not sys.stdin.isatty() or not archive.contains_xp3(gamedir, patterns):
        return NO_TITLE
    options = [Option(NO_TITLE, 'No encryption')] + [
        Option(title, repr(FILTERS[title])) for title in sorted(FILTERS)
    ]
    return select_prompt('Which game are the XP3 archives from?', options).key


def main(argv=None):
    args = menu(argv)

    logging.basicConfig(
        format='%(message)s',
        level=logging.DEBUG if args.verbose else logging.INFO,
    )

    gamedir = pathlib.Path(args.path)
    title = args.title or ask_title(gamedir, args.patterns)
    hooks = [convert_to_png] if args.png else []

    try:
        registry = archive.default_registry(
            None if title == NO_TITLE else title,
            workers=args.workers,
        )
        total = archive.extract(
            gamedir,
            args.patterns,
            args.output,
            registry=registry,
            hooks=hooks,
        )
    except (FormatError, UnknownTitleError) as exc:
        logger.error('error: %s', exc)
        return 1

    logger.info('done, %d files extracted', total)
    return 0


if __name__ == '__main__':
    sys.exit(main())
