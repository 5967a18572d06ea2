"""Size-targeted image compression with Pillow.

Without a target the image is encoded once at a per-format preset. With a
target the quality axis is binary-searched first; only if quality 1 at full
resolution is still too large does the width shrink geometrically, so the
total cost stays at O(log(width) * log(100)) encodes.
"""

import io
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Tuple, Union

from PIL import Image, UnidentifiedImageError

from file_compressor.core.exceptions import CompressionFailedError

logger = logging.getLogger(__name__)

# Anything larger is downscaled before encoding to bound encode cost.
MAX_IMAGE_DIMENSION = 4000
RESIZE_RATIO = 0.70
MIN_QUALITY = 1
MAX_QUALITY = 100
PROBE_QUALITY = 50

PRESET_QUALITY = {"JPEG": 70, "WEBP": 65, "PNG": 100}
PNG_PRESET_COMPRESS_LEVEL = 8
PNG_SEARCH_COMPRESS_LEVEL = 9

_EXTENSIONS = {"JPEG": ".jpg", "PNG": ".png", "WEBP": ".webp"}


@dataclass(frozen=True)
class ImageCompressionOutcome:
    data: bytes
    format: str
    quality: int
    width: int
    height: int
    met_target: Optional[bool]
    encodes: int
    resized: bool

    @property
    def extension(self) -> str:
        return _EXTENSIONS[self.format]

    @property
    def size_bytes(self) -> int:
        return len(self.data)


def output_format_for(source_format: Optional[str]) -> str:
    """Formats we can re-encode keep their format; everything else becomes JPEG."""
    fmt = (source_format or "").upper()
    if fmt == "JPG":
        fmt = "JPEG"
    return fmt if fmt in _EXTENSIONS else "JPEG"


def _palette_colors(quality: int) -> int:
    return max(2, round(256 * quality / 100))


def _scaled_size(image: Image.Image, width: int) -> Tuple[int, int]:
    width = max(1, int(width))
    height = max(1, round(image.height * width / image.width))
    return width, height


def encode_image(
    image: Image.Image,
    fmt: str,
    quality: int,
    width: Optional[int] = None,
    compress_level: int = PNG_SEARCH_COMPRESS_LEVEL,
) -> bytes:
    """Encode ``image`` as ``fmt`` at ``quality``, optionally resized to ``width``.

    For PNG the quality picks the palette size, which keeps output size
    monotonic in quality the same way JPEG/WebP quality does.
    """
    work = image
    if width is not None and width != image.width:
        work = image.resize(_scaled_size(image, width), Image.Resampling.LANCZOS)

    buffer = io.BytesIO()
    if fmt == "JPEG":
        if work.mode != "RGB":
            work = work.convert("RGB")
        work.save(buffer, format="JPEG", quality=quality, optimize=True, progressive=True)
    elif fmt == "WEBP":
        work.save(buffer, format="WEBP", quality=quality)
    elif fmt == "PNG":
        paletted = work.quantize(colors=_palette_colors(quality), method=Image.Quantize.FASTOCTREE)
        paletted.save(buffer, format="PNG", optimize=False, compress_level=compress_level)
    else:
        raise ValueError(f"Unsupported output format: {fmt}")
    return buffer.getvalue()


def _normalize_mode(image: Image.Image) -> Image.Image:
    has_alpha = "A" in image.getbands() or "transparency" in image.info
    wanted = "RGBA" if has_alpha else "RGB"
    return image if image.mode == wanted else image.convert(wanted)


def load_image(source: Union[bytes, str, Path], name: str = "") -> Tuple[Image.Image, str]:
    """Decode ``source`` and apply the 4000px preprocessing bound.

    Returns the working image and the output format to encode to.
    """
    try:
        if isinstance(source, (bytes, bytearray)):
            image = Image.open(io.BytesIO(source))
        else:
            image = Image.open(source)
        image.load()
    except (UnidentifiedImageError, OSError, ValueError) as e:
        raise CompressionFailedError.for_file(name, "not a readable image", original_error=e) from e

    fmt = output_format_for(image.format)
    work = _normalize_mode(image)

    if work.width > MAX_IMAGE_DIMENSION or work.height > MAX_IMAGE_DIMENSION:
        before = work.size
        if work is image:
            work = work.copy()
        work.thumbnail((MAX_IMAGE_DIMENSION, MAX_IMAGE_DIMENSION), Image.Resampling.LANCZOS)
        logger.info(f"[image] Downscaled {before[0]}x{before[1]} -> {work.width}x{work.height} before encoding")

    return work, fmt


class _Search:
    """One compression run: counts encoder calls for a single image."""

    def __init__(self, image: Image.Image, fmt: str, target_bytes: int) -> None:
        self.image = image
        self.fmt = fmt
        self.target_bytes = target_bytes
        self.encodes = 0

    def encode(self, quality: int, width: Optional[int] = None) -> bytes:
        self.encodes += 1
        return encode_image(self.image, self.fmt, quality, width)

    def fits(self, data: bytes) -> bool:
        return len(data) <= self.target_bytes

    def best_quality(self, width: Optional[int], floor: bytes, floor_quality: int) -> Tuple[bytes, int]:
        """Binary search [1, 100] for the highest quality that fits at ``width``.

        ``floor`` is an encoding already known to fit; it is kept if no probe
        in the search does better.
        """
        low, high = MIN_QUALITY, MAX_QUALITY
        best, best_quality = floor, floor_quality
        while low <= high:
            mid = (low + high) // 2
            data = self.encode(mid, width)
            if self.fits(data):
                best, best_quality = data, mid
                low = mid + 1
            else:
                high = mid - 1
        return best, best_quality


def compress_image(
    source: Union[bytes, str, Path],
    target_bytes: Optional[int] = None,
    name: str = "",
) -> ImageCompressionOutcome:
    """Compress an image, optionally to fit within ``target_bytes``.

    Always returns output. When the target cannot be met even at quality 1
    and width 1, the quality-1/width-1 encoding is returned with
    ``met_target=False``.
    """
    image, fmt = load_image(source, name)

    if not target_bytes:
        quality = PRESET_QUALITY[fmt]
        data = encode_image(image, fmt, quality, compress_level=PNG_PRESET_COMPRESS_LEVEL)
        logger.info(f"[image] {name or 'image'}: preset {fmt} q={quality} -> {len(data)} bytes")
        return ImageCompressionOutcome(
            data=data,
            format=fmt,
            quality=quality,
            width=image.width,
            height=image.height,
            met_target=None,
            encodes=1,
            resized=False,
        )

    logger.info(f"[image] {name or 'image'}: target {target_bytes} bytes ({target_bytes / 1024:.1f}KB), {fmt}")
    search = _Search(image, fmt, target_bytes)

    # Phase 1: is the target reachable at native resolution?
    floor = search.encode(MIN_QUALITY)
    if search.fits(floor):
        data, quality = search.best_quality(None, floor, MIN_QUALITY)
        return _finish(search, data, quality, image.width, name)

    # Phase 2: shrink width until something fits.
    logger.info(f"[image] Quality {MIN_QUALITY} is {len(floor)} bytes > {target_bytes}; reducing resolution")
    width = image.width
    while True:
        width = max(1, int(width * RESIZE_RATIO))

        probe = search.encode(PROBE_QUALITY, width)
        if search.fits(probe):
            data, quality = search.best_quality(width, probe, PROBE_QUALITY)
            break

        low = search.encode(MIN_QUALITY, width)
        if search.fits(low):
            data, quality = low, MIN_QUALITY
            break

        if width == 1:
            logger.warning(f"[image] Target {target_bytes} bytes unreachable; returning quality 1 at width 1")
            data, quality = low, MIN_QUALITY
            break

    return _finish(search, data, quality, width, name)


def _finish(search: _Search, data: bytes, quality: int, width: int, name: str) -> ImageCompressionOutcome:
    _, height = _scaled_size(search.image, width)
    met = search.fits(data)
    logger.info(
        f"[image] {name or 'image'}: final {len(data)} bytes at q={quality}, "
        f"{width}x{height} after {search.encodes} encodes (met_target={met})"
    )
    return ImageCompressionOutcome(
        data=data,
        format=search.fmt,
        quality=quality,
        width=width,
        height=height,
        met_target=met,
        encodes=search.encodes,
        resized=width != search.image.width,
    )
