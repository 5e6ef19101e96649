"""Decode uploads and render the stored variants with Pillow."""
import io
import logging
from dataclasses import dataclass, field

from PIL import Image, ImageDraw, ImageFont, ImageOps, UnidentifiedImageError

from app.utils.exceptions import ProcessingError

logger = logging.getLogger(__name__)

MEDIUM_MAX_EDGE = 1920
THUMBNAIL_MAX_EDGE = 400

ORIGINAL_QUALITY = 95
MEDIUM_QUALITY = 85
THUMBNAIL_QUALITY = 80
WEBP_QUALITY = 85

WATERMARK_POSITIONS = ("top-left", "top-right", "bottom-left", "bottom-right")
WATERMARK_MARGIN = 20
WATERMARK_MIN_FONT = 24


@dataclass(frozen=True)
class WatermarkSpec:
    text: str
    position: str = "bottom-right"
    opacity: float = 0.7


@dataclass
class RenderedImage:
    width: int
    height: int
    variants: dict[str, bytes] = field(default_factory=dict)

    @property
    def extensions(self) -> dict[str, str]:
        return {name: ("webp" if name == "webp" else "jpg") for name in self.variants}


def decode_image(path: str) -> Image.Image:
    """Open ``path`` fully, upright and in RGB."""
    try:
        with Image.open(path) as raw:
            raw.load()
            image = ImageOps.exif_transpose(raw)
            if image.mode != "RGB":
                image = image.convert("RGB")
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError, SyntaxError, EOFError) as exc:
        raise ProcessingError(f"Cannot decode image: {exc}") from exc
    return image


def apply_watermark(image: Image.Image, spec: WatermarkSpec) -> Image.Image:
    if spec.position not in WATERMARK_POSITIONS:
        raise ProcessingError(f"Unknown watermark position: {spec.position}")
    opacity = min(max(spec.opacity, 0.0), 1.0)
    width, height = image.size
    font_size = max(width // 40, WATERMARK_MIN_FONT)

    try:
        font = ImageFont.load_default(size=font_size)
        base = image.convert("RGBA")
        overlay = Image.new("RGBA", base.size, (255, 255, 255, 0))
        draw = ImageDraw.Draw(overlay)
        left, top, right, bottom = draw.textbbox((0, 0), spec.text, font=font)
        text_w, text_h = right - left, bottom - top

        x = width - text_w - WATERMARK_MARGIN if spec.position.endswith("right") else WATERMARK_MARGIN
        y = height - text_h - WATERMARK_MARGIN if spec.position.startswith("bottom") else WATERMARK_MARGIN
        draw.text((max(x, 0) - left, max(y, 0) - top), spec.text, font=font, fill=(255, 255, 255, round(255 * opacity)))
        return Image.alpha_composite(base, overlay).convert("RGB")
    except (OSError, ValueError) as exc:
        raise ProcessingError(f"Watermark failed: {exc}") from exc


def _encode(image: Image.Image, fmt: str, **params) -> bytes:
    buf = io.BytesIO()
    image.save(buf, format=fmt, **params)
    return buf.getvalue()


def _bounded(image: Image.Image, max_edge: int) -> Image.Image:
    # thumbnail() keeps aspect ratio and never enlarges
    copy = image.copy()
    copy.thumbnail((max_edge, max_edge), Image.Resampling.LANCZOS)
    return copy


def render_variants(path: str, watermark: WatermarkSpec | None = None, webp: bool = False) -> RenderedImage:
    """Decode the upload at ``path`` and encode every variant.

    Runs synchronously; callers push it to a worker thread.
    """
    image = decode_image(path)
    if watermark is not None:
        image = apply_watermark(image, watermark)

    width, height = image.size
    rendered = RenderedImage(width=width, height=height)
    try:
        rendered.variants["original"] = _encode(image, "JPEG", quality=ORIGINAL_QUALITY, progressive=True)

        if max(width, height) > MEDIUM_MAX_EDGE:
            medium = _bounded(image, MEDIUM_MAX_EDGE)
            rendered.variants["medium"] = _encode(medium, "JPEG", quality=MEDIUM_QUALITY, progressive=True)
        else:
            medium = image
            rendered.variants["medium"] = rendered.variants["original"]

        thumbnail = _bounded(image, THUMBNAIL_MAX_EDGE)
        rendered.variants["thumbnail"] = _encode(thumbnail, "JPEG", quality=THUMBNAIL_QUALITY)

        if webp:
            rendered.variants["webp"] = _encode(medium, "WEBP", quality=WEBP_QUALITY)
    except (OSError, ValueError) as exc:
        raise ProcessingError(f"Cannot encode image: {exc}") from exc

    logger.debug("Rendered %s variants for %dx%d image", ",".join(rendered.variants), width, height)
    return rendered
