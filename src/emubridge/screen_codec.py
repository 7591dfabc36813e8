"""Encode engine frame buffers into transportable images."""

from __future__ import annotations

import io
from typing import Protocol

import numpy as np
from PIL import Image

from .engine import normalise_frame_buffer


class ScreenCodec(Protocol):
    """Convert an RGBA frame buffer into ``(mime type, encoded bytes)``."""

    mime_type: str

    def encode(self, frame: np.ndarray) -> bytes:
        """Return the encoded image for ``frame``."""


class PngScreenCodec:
    """Lossless PNG encoding via Pillow, optionally upscaled."""

    mime_type = "image/png"

    def __init__(self, *, scale: int = 1) -> None:
        if scale < 1:
            raise ValueError("scale must be a positive integer")
        self.scale = scale

    def encode(self, frame: np.ndarray) -> bytes:
        if isinstance(frame, np.ndarray) and frame.ndim == 3:
            rgba = normalise_frame_buffer(
                frame, width=frame.shape[1], height=frame.shape[0]
            )
        else:
            rgba = normalise_frame_buffer(frame)
        image = Image.fromarray(rgba)
        if self.scale != 1:
            image = image.resize(
                (image.width * self.scale, image.height * self.scale),
                resample=Image.Resampling.NEAREST,
            )
        buffer = io.BytesIO()
        image.save(buffer, format="PNG")
        return buffer.getvalue()


__all__ = ["PngScreenCodec", "ScreenCodec"]
