"""
Lossless-as-possible re-encode of an image in its own format.

Embedded metadata (EXIF, which carries orientation, ICC colour profile and
DPI) is written back out so optimized files look the same as the source.
"""
import io

from PIL import Image

FORMATS = {
    'image/bmp': 'BMP',
    'image/jpeg': 'JPEG',
    'image/tiff': 'TIFF',
    'image/png': 'PNG',
}


# Descriptive TIFF tags carried across; layout tags are rebuilt by the encoder
TIFF_METADATA_TAGS = (
    270,  # ImageDescription
    271,  # Make
    272,  # Model
    274,  # Orientation
    305,  # Software
    306,  # DateTime
    315,  # Artist
    33432,  # Copyright
)


class OptimizeError(Exception):
    pass


def _metadata_options(image, image_format):
    options = {}
    icc_profile = image.info.get('icc_profile')
    if icc_profile and image_format != 'BMP':
        options['icc_profile'] = icc_profile
    dpi = image.info.get('dpi')
    if dpi and image_format != 'BMP':
        options['dpi'] = dpi
    exif = image.info.get('exif')
    if exif and image_format in ('JPEG', 'PNG'):
        options['exif'] = exif
    if image_format == 'TIFF':
        tags = getattr(image, 'tag_v2', {})
        tiffinfo = {tag: tags[tag] for tag in TIFF_METADATA_TAGS if tag in tags}
        if tiffinfo:
            options['tiffinfo'] = tiffinfo
    return options


def _encoder_options(image, image_format, jpeg_quality):
    if image_format == 'JPEG':
        options = {'optimize': True, 'progressive': image.info.get('progressive', False)}
        # 'keep' reuses the source quantization tables, so no generation loss
        options['quality'] = jpeg_quality
        if jpeg_quality == 'keep':
            options['subsampling'] = 'keep'
        return options
    if image_format == 'PNG':
        return {'optimize': True}
    if image_format == 'TIFF':
        return {'compression': 'tiff_lzw'}
    return {}


def optimize(data, content_type, preserve_metadata=True, jpeg_quality='keep'):
    """Return `data` re-encoded as a smaller file of the same format."""
    image_format = FORMATS.get(content_type)
    if image_format is None:
        raise OptimizeError(f"No encoder for content type {content_type}")

    try:
        with Image.open(io.BytesIO(data)) as image:
            # Declared content type is trusted, but the decoder must agree
            if image.format != image_format:
                raise OptimizeError(
                    f"Declared {content_type} but image data is {image.format}"
                )
            options = _encoder_options(image, image_format, jpeg_quality)
            # Multi-page TIFF and animated PNG keep every frame
            if getattr(image, 'n_frames', 1) > 1:
                options['save_all'] = True
            if preserve_metadata:
                options.update(_metadata_options(image, image_format))

            buffer = io.BytesIO()
            image.save(buffer, format=image_format, **options)
    except OptimizeError:
        raise
    except (OSError, EOFError, ValueError, SyntaxError, Image.DecompressionBombError) as e:
        raise OptimizeError(f"Could not re-encode {image_format} image: {e}") from e

    return buffer.getvalue()


def optimize_file(path, content_type, preserve_metadata=True, jpeg_quality='keep'):
    """Optimize the image at `path`, replacing its contents."""
    with open(path, 'rb') as f:
        data = f.read()
    optimized = optimize(data, content_type, preserve_metadata, jpeg_quality)
    with open(path, 'wb') as f:
        f.write(optimized)
    return len(data), len(optimized)
