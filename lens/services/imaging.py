"""Image pipeline: resize, thumbnail and colour palette extraction with Pillow."""

from __future__ import annotations

import io
import struct
from collections import Counter
from dataclasses import dataclass, field
from typing import Any

from flask import current_app
from PIL import Image, ImageOps, UnidentifiedImageError

from lens.errors import ProcessingError

PALETTE_SAMPLE_SIZE = 150
PALETTE_COLORS = 5

AVATAR_SIZE = 400
AVATAR_QUALITY = 90

# EXIF tags copied into photo metadata
EXIF_FIELDS = {
    0x0110: "camera",
    0xA434: "lens",
    0x920A: "focal_length",
    0x829D: "aperture",
    0x829A: "shutter_speed",
    0x8827: "iso",
    0x9003: "date_taken",
}
EXIF_IFD = 0x8769

# Pillow reports corrupt EXIF or TIFF data with several exception types
PIPELINE_ERRORS = (OSError, ValueError, SyntaxError, KeyError, TypeError, struct.error)


@dataclass
class ProcessOptions:
    max_width: int = 2048
    max_height: int = 2048
    quality: int = 85
    thumbnail_size: int = 300
    thumbnail_quality: int = 80

    @classmethod
    def from_config(cls) -> "ProcessOptions":
        config = current_app.config
        return cls(
            max_width=config.get("IMAGE_MAX_WIDTH", 2048),
            max_height=config.get("IMAGE_MAX_HEIGHT", 2048),
            quality=config.get("IMAGE_QUALITY", 85),
            thumbnail_size=config.get("THUMBNAIL_SIZE", 300),
            thumbnail_quality=config.get("THUMBNAIL_QUALITY", 80),
        )


@dataclass
class ProcessedImage:
    main: bytes
    thumbnail: bytes
    color_palette: list[dict[str, Any]]
    metadata: dict[str, Any] = field(default_factory=dict)
    content_type: str = "image/jpeg"


def _open(data: bytes) -> Image.Image:
    try:
        image = Image.open(io.BytesIO(data))
        image.load()
    except (UnidentifiedImageError, OSError, Image.DecompressionBombError) as e:
        raise ProcessingError(f"Could not read image: {e}")
    return image


def _encode_jpeg(image: Image.Image, quality: int) -> bytes:
    buffer = io.BytesIO()
    image.save(buffer, format="JPEG", quality=quality, optimize=True)
    return buffer.getvalue()


def _to_rgb(image: Image.Image) -> Image.Image:
    if image.mode == "RGB":
        return image
    if image.mode in ("RGBA", "LA") or (image.mode == "P" and "transparency" in image.info):
        rgba = image.convert("RGBA")
        background = Image.new("RGB", rgba.size, (255, 255, 255))
        background.paste(rgba, mask=rgba.getchannel("A"))
        return background
    return image.convert("RGB")


def _exif_value(value: Any) -> Any:
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="ignore").strip("\x00 ") or None
    if isinstance(value, str):
        return value.strip("\x00 ") or None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return str(value)
    return int(number) if number.is_integer() else round(number, 4)


def extract_exif(image: Image.Image) -> dict[str, Any] | None:
    exif = image.getexif()
    if not exif:
        return None
    merged = dict(exif)
    merged.update(exif.get_ifd(EXIF_IFD))
    result = {}
    for tag, name in EXIF_FIELDS.items():
        if tag in merged:
            value = _exif_value(merged[tag])
            if value is not None:
                result[name] = value
    return result or None


def extract_palette(image: Image.Image, colors: int = PALETTE_COLORS) -> list[dict[str, Any]]:
    """Most frequent exact RGB triples of a 150x150 downsample, with their share in percent.

    This is a plain histogram, not perceptual clustering: near-identical shades
    count as different colours.
    """
    sample = _to_rgb(image).resize((PALETTE_SAMPLE_SIZE, PALETTE_SAMPLE_SIZE))
    counts = Counter(sample.getdata())
    total = PALETTE_SAMPLE_SIZE * PALETTE_SAMPLE_SIZE
    return [
        {"color": f"rgb({r},{g},{b})", "percentage": round(count / total * 100)}
        for (r, g, b), count in counts.most_common(colors)
    ]


def process_image(data: bytes, options: ProcessOptions | None = None) -> ProcessedImage:
    """Run the full pipeline. Any failure raises ProcessingError and nothing is kept."""
    options = options or ProcessOptions.from_config()
    original = _open(data)
    source_format = (original.format or "").lower() or None
    try:
        exif = extract_exif(original)
        rgb = _to_rgb(original)

        main = rgb.copy()
        # thumbnail() keeps the aspect ratio and never enlarges
        main.thumbnail((options.max_width, options.max_height), Image.Resampling.LANCZOS)

        thumb = ImageOps.fit(
            rgb,
            (options.thumbnail_size, options.thumbnail_size),
            method=Image.Resampling.LANCZOS,
            centering=(0.5, 0.5),
        )

        processed = ProcessedImage(
            main=_encode_jpeg(main, options.quality),
            thumbnail=_encode_jpeg(thumb, options.thumbnail_quality),
            color_palette=extract_palette(main),
        )
    except PIPELINE_ERRORS as e:
        raise ProcessingError(f"Image processing failed: {e}")

    processed.metadata = {
        "original_width": original.width,
        "original_height": original.height,
        "original_format": source_format,
        "original_size": len(data),
        "width": main.width,
        "height": main.height,
        "format": "jpeg",
        "size": len(processed.main),
        "exif": exif,
    }
    return processed


def process_avatar(data: bytes) -> bytes:
    image = _open(data)
    try:
        avatar = ImageOps.fit(
            _to_rgb(image),
            (AVATAR_SIZE, AVATAR_SIZE),
            method=Image.Resampling.LANCZOS,
            centering=(0.5, 0.5),
        )
        return _encode_jpeg(avatar, AVATAR_QUALITY)
    except PIPELINE_ERRORS as e:
        raise ProcessingError(f"Avatar processing failed: {e}")


__all__ = [
    "ProcessOptions",
    "ProcessedImage",
    "process_image",
    "process_avatar",
    "extract_palette",
    "extract_exif",
]
