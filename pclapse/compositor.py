# compositor.py
"""
Letterbox compositor: one still -> one canvas-sized BGRA frame.

The whole source stays visible; whatever the scaled source does not cover is
black padding. An optional timestamp is burned into the top-right corner on a
half transparent backing box.
"""
import io
import os
from functools import lru_cache

import numpy as np
from PIL import Image, ImageDraw, ImageFont

from . import config
from .errors import CompositionFailed

RESAMPLE = Image.Resampling.LANCZOS


def letterbox_rect(src_w, src_h, canvas_w, canvas_h):
    """Return (x, y, w, h) of the scaled source inside the canvas."""
    if src_w <= 0 or src_h <= 0:
        raise ValueError(f"invalid source size {src_w}x{src_h}")
    rs = src_w / src_h
    rc = canvas_w / canvas_h
    if rs > rc:
        # relatively wider: full width, pad top and bottom
        w = canvas_w
        h = min(canvas_h, max(1, round(canvas_w / rs)))
    else:
        # relatively taller (or same shape): full height, pad left and right
        h = canvas_h
        w = min(canvas_w, max(1, round(canvas_h * rs)))
    return (canvas_w - w) // 2, (canvas_h - h) // 2, w, h


@lru_cache(maxsize=4)
def _load_font(size):
    try:
        return ImageFont.truetype(config.TIMESTAMP_FONT, size)
    except OSError:
        pass
    try:
        return ImageFont.load_default(size=size)
    except TypeError:
        # Pillow < 10.1 only ships the fixed bitmap font
        return ImageFont.load_default()


def format_timestamp(ts):
    return ts.strftime(config.TIMESTAMP_FORMAT)


def _timestamp_layout(canvas_w, canvas_h, text, font):
    measure = ImageDraw.Draw(Image.new("L", (1, 1)))
    left, top, right, bottom = measure.textbbox((0, 0), text, font=font)
    text_w, text_h = right - left, bottom - top
    x = canvas_w - config.TIMESTAMP_MARGIN - text_w
    y = config.TIMESTAMP_MARGIN
    box = (
        max(0, x - config.TIMESTAMP_PAD_X),
        max(0, y - config.TIMESTAMP_PAD_Y),
        min(canvas_w, x + text_w + config.TIMESTAMP_PAD_X),
        min(canvas_h, y + text_h + config.TIMESTAMP_PAD_Y),
    )
    # shift the draw origin so the ink starts exactly at (x, y)
    return (x - left, y - top), box


def timestamp_box(canvas, timestamp):
    """Backing rectangle (left, top, right, bottom), right/bottom exclusive."""
    font = _load_font(config.TIMESTAMP_FONT_SIZE)
    _, box = _timestamp_layout(canvas.width, canvas.height, format_timestamp(timestamp), font)
    return box


def _burn_timestamp(frame, timestamp):
    text = format_timestamp(timestamp)
    font = _load_font(config.TIMESTAMP_FONT_SIZE)
    origin, box = _timestamp_layout(frame.width, frame.height, text, font)
    overlay = Image.new("RGBA", frame.size, (0, 0, 0, 0))
    draw = ImageDraw.Draw(overlay)
    if box[2] > box[0] and box[3] > box[1]:
        draw.rectangle((box[0], box[1], box[2] - 1, box[3] - 1), fill=(0, 0, 0, config.TIMESTAMP_BG_ALPHA))
    draw.text(origin, text, font=font, fill=(255, 255, 255, 255))
    return Image.alpha_composite(frame.convert("RGBA"), overlay).convert("RGB")


def _decode(source):
    """Decode any supported pixel source into a fresh RGB image."""
    try:
        if isinstance(source, Image.Image):
            return source.convert("RGB")
        if isinstance(source, (bytes, bytearray, memoryview)):
            source = io.BytesIO(bytes(source))
        elif not isinstance(source, (str, os.PathLike)):
            raise CompositionFailed(f"unsupported pixel source type: {type(source).__name__}")
        with Image.open(source) as im:
            im.load()
            return im.convert("RGB")
    except (OSError, ValueError, Image.DecompressionBombError) as e:
        raise CompositionFailed(f"cannot decode source image: {e}") from e


def _to_bgra(frame, canvas, out):
    if out is None:
        try:
            out = np.empty(canvas.shape, dtype=np.uint8)
        except MemoryError as e:
            raise CompositionFailed("cannot allocate canvas buffer") from e
    elif out.shape != canvas.shape or out.dtype != np.uint8:
        raise CompositionFailed(f"target buffer {out.shape} does not match canvas {canvas.shape}")
    rgb = np.asarray(frame, dtype=np.uint8)
    out[..., 0] = rgb[..., 2]
    out[..., 1] = rgb[..., 1]
    out[..., 2] = rgb[..., 0]
    out[..., 3] = 255
    return out


def compose(source, canvas, timestamp=None, out=None):
    """Compose ``source`` onto a black ``canvas``-sized frame.

    Returns a (height, width, 4) uint8 array in BGRA order. When ``out`` is
    given the frame is written into it (pool buffers); otherwise a new array
    is allocated. Raises CompositionFailed, never returns a partial frame.
    """
    img = _decode(source)
    x, y, w, h = letterbox_rect(img.width, img.height, canvas.width, canvas.height)
    frame = Image.new("RGB", (canvas.width, canvas.height), (0, 0, 0))
    scaled = img if img.size == (w, h) else img.resize((w, h), RESAMPLE)
    frame.paste(scaled, (x, y))
    if timestamp is not None:
        frame = _burn_timestamp(frame, timestamp)
    return _to_bgra(frame, canvas, out)
