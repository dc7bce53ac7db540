"""Media normalizer: bounded-size JPEG payloads for the oracle.

Images wider than ``max_width`` are downsized proportionally (never upsized)
and re-encoded as lossy JPEG. The bound is a bandwidth/latency control.
"""

from __future__ import annotations

import base64
import hashlib
import logging
from dataclasses import dataclass
from pathlib import Path

import cv2
import numpy as np

from mediscan.errors import MediaError

logger = logging.getLogger(__name__)

DEFAULT_MAX_WIDTH = 800
DEFAULT_QUALITY = 60


def media_ref_from_bytes(data: bytes) -> str:
    """Stable media reference from content hash (first 12 hex chars)."""
    return hashlib.sha256(data).hexdigest()[:12]


@dataclass(frozen=True)
class MediaPayload:
    """Encoded image ready for the oracle."""
    ref: str
    data: str  # base64, no data-URL prefix
    mime_type: str = "image/jpeg"
    width: int = 0
    height: int = 0

    def to_data_url(self) -> str:
        return f"data:{self.mime_type};base64,{self.data}"

    @classmethod
    def from_base64(cls, data: str, mime_type: str = "image/jpeg") -> MediaPayload:
        """Wrap an already-encoded payload (e.g. re-sending a stored record attachment)."""
        return cls(ref=media_ref_from_bytes(data.encode("ascii")), data=data, mime_type=mime_type)


def normalize_image(
    data: bytes,
    *,
    max_width: int = DEFAULT_MAX_WIDTH,
    quality: int = DEFAULT_QUALITY,
) -> MediaPayload:
    """Decode, bound width to ``max_width``, re-encode as JPEG at ``quality``."""
    if not data:
        raise MediaError("empty image")
    arr = np.frombuffer(data, dtype=np.uint8)
    frame = cv2.imdecode(arr, cv2.IMREAD_COLOR)
    if frame is None:
        raise MediaError("could not decode image")

    height, width = frame.shape[:2]
    if width > max_width:
        new_height = max(1, round(height * max_width / width))
        frame = cv2.resize(frame, (max_width, new_height), interpolation=cv2.INTER_AREA)
        logger.debug("Downsized image %dx%d -> %dx%d", width, height, max_width, new_height)
        width, height = max_width, new_height

    ok, jpeg = cv2.imencode(".jpg", frame, [cv2.IMWRITE_JPEG_QUALITY, int(quality)])
    if not ok:
        raise MediaError("JPEG encoding failed")
    encoded = jpeg.tobytes()
    return MediaPayload(
        ref=media_ref_from_bytes(encoded),
        data=base64.b64encode(encoded).decode("ascii"),
        width=width,
        height=height,
    )


def load_image(
    path: str | Path,
    *,
    max_width: int = DEFAULT_MAX_WIDTH,
    quality: int = DEFAULT_QUALITY,
) -> MediaPayload:
    """Read an image file and normalize it."""
    try:
        raw = Path(path).read_bytes()
    except OSError as e:
        raise MediaError(f"could not read image {path}: {e}") from e
    return normalize_image(raw, max_width=max_width, quality=quality)
