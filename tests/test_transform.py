import io

import pytest
from PIL import Image, ImageCms

from conftest import make_image
from lambdas.optimize.transform import OptimizeError, optimize, optimize_file

ORIENTATION = 0x0112


def exif_with_orientation(value):
    exif = Image.Exif()
    exif[ORIENTATION] = value
    return exif.tobytes()


@pytest.mark.parametrize('fmt,content_type', [
    ('BMP', 'image/bmp'),
    ('JPEG', 'image/jpeg'),
    ('TIFF', 'image/tiff'),
    ('PNG', 'image/png'),
])
def test_format_is_preserved(fmt, content_type):
    out = optimize(make_image(fmt), content_type)
    with Image.open(io.BytesIO(out)) as image:
        assert image.format == fmt
        assert image.size == (32, 24)


def test_jpeg_exif_orientation_is_preserved():
    data = make_image('JPEG', exif=exif_with_orientation(6))
    out = optimize(data, 'image/jpeg')
    with Image.open(io.BytesIO(out)) as image:
        assert image.getexif()[ORIENTATION] == 6


def test_png_exif_is_preserved():
    data = make_image('PNG', exif=exif_with_orientation(3))
    out = optimize(data, 'image/png')
    with Image.open(io.BytesIO(out)) as image:
        assert image.getexif()[ORIENTATION] == 3


def test_icc_profile_is_preserved():
    profile = ImageCms.ImageCmsProfile(ImageCms.createProfile('sRGB')).tobytes()
    data = make_image('JPEG', icc_profile=profile)
    out = optimize(data, 'image/jpeg')
    with Image.open(io.BytesIO(out)) as image:
        assert image.info.get('icc_profile') == profile


def test_metadata_can_be_dropped():
    data = make_image('JPEG', exif=exif_with_orientation(6))
    out = optimize(data, 'image/jpeg', preserve_metadata=False)
    with Image.open(io.BytesIO(out)) as image:
        assert ORIENTATION not in image.getexif()


def test_explicit_jpeg_quality():
    noise = Image.effect_noise((64, 64), 64).convert('RGB')
    buffer = io.BytesIO()
    noise.save(buffer, format='JPEG', quality=95)
    data = buffer.getvalue()

    out = optimize(data, 'image/jpeg', jpeg_quality=40)
    assert len(out) < len(data)


def test_corrupt_data_raises():
    with pytest.raises(OptimizeError):
        optimize(b'not an image at all', 'image/png')


def test_truncated_data_raises():
    data = make_image('PNG', size=(64, 64))
    with pytest.raises(OptimizeError):
        optimize(data[:60], 'image/png')


def test_declared_type_must_match_data():
    with pytest.raises(OptimizeError):
        optimize(make_image('PNG'), 'image/jpeg')


def test_unknown_content_type_raises():
    with pytest.raises(OptimizeError):
        optimize(make_image('PNG'), 'image/webp')


def test_optimize_file_rewrites_in_place(tmp_path):
    path = tmp_path / 'image.png'
    path.write_bytes(make_image('PNG'))

    before, after = optimize_file(str(path), 'image/png')

    assert before > 0
    assert after == path.stat().st_size
    with Image.open(path) as image:
        assert image.format == 'PNG'


def test_tiff_orientation_is_preserved():
    data = make_image('TIFF', tiffinfo={ORIENTATION: 6})
    out = optimize(data, 'image/tiff')
    with Image.open(io.BytesIO(out)) as image:
        assert image.getexif().get(ORIENTATION) == 6


def frames(*colors):
    return [Image.new('RGB', (16, 16), color) for color in colors]


def test_multi_page_tiff_keeps_every_page():
    pages = frames((255, 0, 0), (0, 255, 0), (0, 0, 255))
    buffer = io.BytesIO()
    pages[0].save(buffer, format='TIFF', save_all=True, append_images=pages[1:])

    out = optimize(buffer.getvalue(), 'image/tiff')

    with Image.open(io.BytesIO(out)) as image:
        assert image.n_frames == 3
        image.seek(2)
        assert image.convert('RGB').getpixel((0, 0)) == (0, 0, 255)


def test_animated_png_keeps_every_frame():
    images = frames((255, 0, 0), (0, 0, 255))
    buffer = io.BytesIO()
    images[0].save(buffer, format='PNG', save_all=True, append_images=images[1:], duration=100, loop=0)

    out = optimize(buffer.getvalue(), 'image/png')

    with Image.open(io.BytesIO(out)) as image:
        assert image.format == 'PNG'
        assert image.n_frames == 2
