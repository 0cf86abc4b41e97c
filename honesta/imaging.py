import base64
import binascii
import re
from io import BytesIO

from PIL import Image, ImageFilter, UnidentifiedImageError

DATA_URL_RE = re.compile(r'^data:(?P<mime>[\w/+.-]+)?(;[\w=-]+)*;base64,(?P<data>.*)$', re.DOTALL)

PUBLIC_MAX_DIM = 500
ORIGINAL_MAX_DIM = 600
JPEG_QUALITY = 60

# Darkening filter for the public photo
BRIGHTNESS = 0.45
CONTRAST = 1.15
BLUR_RADIUS = 1
HIGHLIGHT_THRESHOLD = 180
HIGHLIGHT_CAP = 140


def decode_data_url(data_url: str) -> bytes:
    """Return the raw bytes of a base64 ``data:`` URL."""
    match = DATA_URL_RE.match((data_url or '').strip())
    if not match:
        raise ValueError("Image must be a base64 data URL")
    try:
        return base64.b64decode(match.group('data'), validate=False)
    except (binascii.Error, ValueError):
        raise ValueError("Image data is not valid base64")


def encode_data_url(raw: bytes, mime: str = 'image/jpeg') -> str:
    return f"data:{mime};base64,{base64.b64encode(raw).decode('ascii')}"


def load_image(raw: bytes) -> Image.Image:
    try:
        image = Image.open(BytesIO(raw))
        image.load()
    except (UnidentifiedImageError, OSError):
        raise ValueError("Could not read image. Use PNG, JPG, JPEG, GIF, or WEBP.")
    return image.convert('RGB')


def _fit_within(image: Image.Image, max_dim: int) -> Image.Image:
    width, height = image.size
    if width <= max_dim and height <= max_dim:
        return image
    ratio = min(max_dim / width, max_dim / height)
    size = (max(1, round(width * ratio)), max(1, round(height * ratio)))
    return image.resize(size, Image.Resampling.LANCZOS)


def _to_jpeg(image: Image.Image) -> bytes:
    buffer = BytesIO()
    image.save(buffer, format='JPEG', quality=JPEG_QUALITY)
    return buffer.getvalue()


def _clamp(value: float) -> int:
    return max(0, min(255, int(round(value))))


def cap_highlights(gray: Image.Image) -> Image.Image:
    return gray.point(lambda v: HIGHLIGHT_CAP if v > HIGHLIGHT_THRESHOLD else v)


def darken(image: Image.Image) -> Image.Image:
    """
    Grayscale, 45% brightness, 115% contrast and a 1px blur, then cap the
    highlights so glare can't reveal printed names or ID numbers.
    """
    gray = image.convert('L')
    gray = gray.point(lambda v: _clamp(v * BRIGHTNESS))
    gray = gray.point(lambda v: _clamp((v - 128) * CONTRAST + 128))
    gray = gray.filter(ImageFilter.GaussianBlur(BLUR_RADIUS))
    # After 45% brightness and 115% contrast the brightest pixel is 113,
    # so the cap only bites on images that skip the darkening steps.
    return cap_highlights(gray)


def convert_to_black_and_white(raw: bytes) -> str:
    """Public feed photo, returned as a JPEG data URL."""
    image = _fit_within(load_image(raw), PUBLIC_MAX_DIM)
    return encode_data_url(_to_jpeg(darken(image)))


def compress_original_image(raw: bytes) -> str:
    """Original photo, shown only once ownership is proven."""
    image = _fit_within(load_image(raw), ORIGINAL_MAX_DIM)
    return encode_data_url(_to_jpeg(image))
