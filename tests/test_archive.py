import io
import logging

import pytest
from PIL import Image

from kiriko import archive, runner
from kiriko.codex.lnd import LndFormat
from kiriko.codex.xp3 import XP3Format
from kiriko.errors import CorruptDataError, NotRecognizedError
from kiriko.formats import DecodedFile, FormatRegistry
from kiriko.images import convert_to_png


def make_bmp(size=(2, 2), color=(255, 0, 0)):
    output = io.BytesIO()
    Image.new('RGB', size, color).save(output, format='BMP')
    return output.getvalue()


def test_registry_detects_formats(xp3_builder, lnd_file):
    registry = archive.default_registry()
    assert isinstance(registry.detect(xp3_builder.add('a', b'a').build()), XP3Format)
    assert isinstance(registry.detect(lnd_file(b'\x00a', 1)), LndFormat)
    assert registry.detect(b'RIFF....') is None


def test_registry_decode_not_recognized():
    with pytest.raises(NotRecognizedError):
        FormatRegistry([LndFormat()]).decode('x.bin', b'nope')


def test_registry_order_is_explicit(lnd_file):
    class Everything:
        name = 'everything'

        def detect(self, data):
            return True

        def decode(self, name, data):
            return [DecodedFile(name, b'')]

    registry = FormatRegistry([Everything(), LndFormat()])
    assert registry.decode('a.lnd', lnd_file(b'\x00a', 1)) == [DecodedFile('a.lnd', b'')]


def test_default_registry_with_title(xp3_builder):
    registry = archive.default_registry('fsn')
    (decoded,) = registry.decode('data.xp3', xp3_builder.add('a.txt', b'hello').build())
    assert decoded.data == bytes(b ^ 0x36 for b in b'hello')


def test_extract_directory(tmp_path, xp3_builder, lnd_file):
    game = tmp_path / 'game'
    game.mkdir()
    (game / 'data.xp3').write_bytes(
        xp3_builder.add('scenario/a.ks', b'text').add('b.txt', b'bee').build()
    )
    (game / 'op.lnd').write_bytes(lnd_file(b'\x01hi', 2))
    (game / 'readme.xp3').write_bytes(b'not really')

    target = tmp_path / 'out'
    assert archive.extract(game, target=target) == 3
    assert (target / 'data.xp3' / 'scenario' / 'a.ks').read_bytes() == b'text'
    assert (target / 'data.xp3' / 'b.txt').read_bytes() == b'bee'
    assert (target / 'op.lnd' / 'op.lnd').read_bytes() == b'hi'
    assert not (target / 'readme.xp3').exists()


def test_extract_single_file(tmp_path, xp3_builder):
    path = tmp_path / 'data.xp3'
    path.write_bytes(xp3_builder.add('a.txt', b'hello').build())
    assert archive.extract(path, target=tmp_path / 'out') == 1


def test_extract_corrupt_archive_writes_nothing(tmp_path, xp3_builder):
    path = tmp_path / 'data.xp3'
    path.write_bytes(
        xp3_builder.add('a.txt', b'hello').add('b.txt', b'world', size_original=9).build()
    )
    with pytest.raises(CorruptDataError):
        archive.extract(path, target=tmp_path / 'out')
    assert not (tmp_path / 'out').exists()


def test_write_files_stays_inside_target(tmp_path):
    target = tmp_path / 'out'
    files = [
        DecodedFile('../../evil.txt', b'x'),
        DecodedFile('C:\\windows\\system.ini', b'y'),
        DecodedFile('dir\\sub\\file.txt', b'z'),
        DecodedFile('..', b''),
    ]
    assert archive.write_files(target, files) == 3
    assert (target / 'evil.txt').read_bytes() == b'x'
    assert (target / 'windows' / 'system.ini').read_bytes() == b'y'
    assert (target / 'dir' / 'sub' / 'file.txt').read_bytes() == b'z'
    assert not (tmp_path / 'evil.txt').exists()


def test_png_hook(tmp_path, xp3_builder):
    path = tmp_path / 'data.xp3'
    path.write_bytes(xp3_builder.add('bg/sky.bmp', make_bmp()).add('a.txt', b'a').build())
    archive.extract(path, target=tmp_path / 'out', hooks=[convert_to_png])

    png = tmp_path / 'out' / 'data.xp3' / 'bg' / 'sky.png'
    with Image.open(png) as im:
        assert im.format == 'PNG'
        assert im.size == (2, 2)
        assert im.convert('RGB').getpixel((0, 0)) == (255, 0, 0)
    assert (tmp_path / 'out' / 'data.xp3' / 'a.txt').read_bytes() == b'a'


def test_png_hook_leaves_broken_images(caplog):
    decoded = DecodedFile('broken.bmp', b'BM nonsense')
    with caplog.at_level(logging.WARNING):
        assert convert_to_png(decoded) is decoded
    assert 'broken.bmp' in caplog.text


def test_runner_extracts(tmp_path, xp3_builder):
    path = tmp_path / 'data.xp3'
    path.write_bytes(xp3_builder.add('a.txt', b'hello').build())
    out = tmp_path / 'out'
    assert runner.main([str(path), '-t', 'fsn', '-o', str(out), '-j', '2']) == 0
    assert (out / 'data.xp3' / 'a.txt').read_bytes() == bytes(b ^ 0x36 for b in b'hello')


def test_runner_reports_corrupt_archive(tmp_path, xp3_builder):
    path = tmp_path / 'data.xp3'
    path.write_bytes(xp3_builder.add('a.txt', b'hello', size_original=2).build())
    assert runner.main([str(path), '-t', 'none', '-o', str(tmp_path / 'out')]) == 1
