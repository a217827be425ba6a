"""
Camera capture and marker cropping.

A ``CameraStream`` produces frames, either from a locally attached camera
(OpenCV ``VideoCapture``) or from frames the operator's browser uploads. The
``CaptureUnit`` pulls a frame, keeps the user's crop rectangle inside the
image and cuts the marker out at native resolution.
"""

import logging
import math
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import List, Optional, Tuple, Union

import cv2
import numpy as np

from .config import CameraConfig, CaptureProfile
from .errors import CameraUnavailable, CaptureUnavailable, NameRequired

logger = logging.getLogger(__name__)

ImageSize = Tuple[int, int]   # (width, height)

DEFAULT_CROP_SIZE = 200


# ─────────────────────────────────────────────────────────────────────────────
# Image containers
# ─────────────────────────────────────────────────────────────────────────────

@dataclass
class RawImage:
    """One captured frame (BGR, as OpenCV delivers it)."""

    pixels: np.ndarray
    captured_at: datetime = field(default_factory=datetime.now)

    @property
    def size(self) -> ImageSize:
        h, w = self.pixels.shape[:2]
        return w, h


@dataclass
class CroppedImage:
    """The marker cut out of a frame, with the operator's label."""

    pixels: np.ndarray
    label: str
    region: 'CropRegion'

    @property
    def size(self) -> ImageSize:
        h, w = self.pixels.shape[:2]
        return w, h


@dataclass(frozen=True)
class CropRegion:
    """Rectangle in display coordinates (position + size)."""

    x: float
    y: float
    width: float
    height: float

    def to_dict(self) -> dict:
        return {'x': self.x, 'y': self.y, 'width': self.width, 'height': self.height}


def clamp_region(region: CropRegion, bounds: ImageSize, min_extent: float = 1) -> CropRegion:
    """
    Force a region inside ``bounds``.

    The result always has positive extent no larger than the bounds and never
    reaches past the right or bottom edge.
    """
    bw, bh = bounds
    if bw <= 0 or bh <= 0:
        raise CaptureUnavailable(f"Image bounds must be positive, got {bw}x{bh}")

    width = min(max(region.width, min_extent, 1), bw)
    height = min(max(region.height, min_extent, 1), bh)
    x = min(max(region.x, 0), bw - width)
    y = min(max(region.y, 0), bh - height)
    return CropRegion(x=x, y=y, width=width, height=height)


def default_crop_region(bounds: ImageSize, size: int = DEFAULT_CROP_SIZE) -> CropRegion:
    """A ``size`` x ``size`` box centred in the image (shrunk to fit)."""
    bw, bh = bounds
    width, height = min(size, bw), min(size, bh)
    return clamp_region(
        CropRegion(x=(bw - width) / 2, y=(bh - height) / 2, width=width, height=height),
        bounds,
    )


def crop_pixels(pixels: np.ndarray, region: CropRegion, display_size: Optional[ImageSize] = None) -> np.ndarray:
    """
    Cut ``region`` out of ``pixels``.

    ``region`` is expressed in display coordinates; it is scaled to the native
    resolution before sampling. Output is at least 1x1 and at most the full
    image.
    """
    h, w = pixels.shape[:2]
    if w == 0 or h == 0:
        raise CaptureUnavailable("Cannot crop an empty image")

    dw, dh = display_size or (w, h)
    region = clamp_region(region, (dw, dh))
    sx, sy = w / dw, h / dh

    x0 = min(max(int(math.floor(region.x * sx)), 0), w - 1)
    y0 = min(max(int(math.floor(region.y * sy)), 0), h - 1)
    x1 = min(max(int(math.ceil((region.x + region.width) * sx)), x0 + 1), w)
    y1 = min(max(int(math.ceil((region.y + region.height) * sy)), y0 + 1), h)

    return pixels[y0:y1, x0:x1].copy()


def encode_png(pixels: np.ndarray) -> bytes:
    ok, buf = cv2.imencode('.png', pixels)
    if not ok:
        raise CaptureUnavailable("Failed to encode image as PNG")
    return buf.tobytes()


def decode_image(data: bytes) -> Optional[np.ndarray]:
    """Decode an uploaded JPEG/PNG; None if the bytes are not an image."""
    if not data:
        return None
    return cv2.imdecode(np.frombuffer(data, dtype=np.uint8), cv2.IMREAD_COLOR)


# ─────────────────────────────────────────────────────────────────────────────
# Streams
# ─────────────────────────────────────────────────────────────────────────────

class CameraStream(ABC):
    """A source of frames. Only one may be open per authoring session."""

    @abstractmethod
    def open(self) -> None:
        """Acquire the device; raise CameraUnavailable on failure."""

    @abstractmethod
    def read_frame(self) -> Optional[np.ndarray]:
        """Return the current frame, or None if none is available."""

    @abstractmethod
    def release(self) -> None:
        """Release the device. Safe to call more than once."""

    @property
    @abstractmethod
    def is_open(self) -> bool:
        ...


class OpenCVCameraStream(CameraStream):
    """Locally attached camera, opened with progressively looser profiles."""

    def __init__(self, config: Optional[CameraConfig] = None):
        self.config = config or CameraConfig()
        self._cap: Optional[cv2.VideoCapture] = None
        self.active_profile: Optional[CaptureProfile] = None

    def open(self) -> None:
        self.release()
        profiles: List[CaptureProfile] = self.config.profiles or [CaptureProfile()]

        for i, profile in enumerate(profiles, start=1):
            logger.debug(f"Trying camera profile {i}/{len(profiles)}: {profile.width}x{profile.height}")
            cap = cv2.VideoCapture(self.config.device_index)
            if not cap.isOpened():
                cap.release()
                logger.warning(f"Camera profile {i} failed: device {self.config.device_index} not opened")
                continue

            if profile.width:
                cap.set(cv2.CAP_PROP_FRAME_WIDTH, profile.width)
            if profile.height:
                cap.set(cv2.CAP_PROP_FRAME_HEIGHT, profile.height)

            ok, frame = cap.read()
            if ok and frame is not None and frame.size > 0:
                self._cap = cap
                self.active_profile = profile
                logger.info(f"Camera opened with profile {i} ({frame.shape[1]}x{frame.shape[0]})")
                return

            cap.release()
            logger.warning(f"Camera profile {i} failed: no frame delivered")

        raise CameraUnavailable(
            f"No camera configuration worked for device {self.config.device_index}"
        )

    def read_frame(self) -> Optional[np.ndarray]:
        if self._cap is None:
            return None
        ok, frame = self._cap.read()
        return frame if ok else None

    def release(self) -> None:
        if self._cap is not None:
            self._cap.release()
            self._cap = None
            self.active_profile = None

    @property
    def is_open(self) -> bool:
        return self._cap is not None


class UploadedFrameStream(CameraStream):
    """Frames pushed by the operator's browser, one at a time."""

    def __init__(self):
        self._open = False
        self._frame: Optional[np.ndarray] = None

    def open(self) -> None:
        self._open = True
        self._frame = None

    def push_frame(self, frame: Union[bytes, np.ndarray]) -> None:
        if not self._open:
            raise CaptureUnavailable("Camera stream is not active")
        self._frame = decode_image(frame) if isinstance(frame, (bytes, bytearray)) else frame

    def read_frame(self) -> Optional[np.ndarray]:
        return None if self._frame is None else self._frame.copy()

    def release(self) -> None:
        self._open = False
        self._frame = None

    @property
    def is_open(self) -> bool:
        return self._open


# ─────────────────────────────────────────────────────────────────────────────
# Capture unit
# ─────────────────────────────────────────────────────────────────────────────

class CaptureUnit:
    """
    Pulls frames from the active stream and crops the marker out of them.

    The most recent capture (and crop) is retained until the next
    ``capture()`` or an explicit ``discard()``.
    """

    def __init__(self, stream: Optional[CameraStream] = None, min_crop_extent: int = 1):
        self.stream = stream
        self.min_crop_extent = min_crop_extent
        self.last_capture: Optional[RawImage] = None
        self.last_crop: Optional[CroppedImage] = None
        self.region: Optional[CropRegion] = None
        self.display_size: Optional[ImageSize] = None

    def capture(self) -> RawImage:
        if self.stream is None or not self.stream.is_open:
            raise CaptureUnavailable("No active camera stream")

        frame = self.stream.read_frame()
        if frame is None or frame.size == 0 or 0 in frame.shape[:2]:
            raise CaptureUnavailable("Camera returned an empty frame")

        image = RawImage(pixels=frame)
        self.last_capture = image
        self.last_crop = None
        self.display_size = image.size
        self.region = default_crop_region(image.size)
        logger.debug(f"Captured frame {image.size[0]}x{image.size[1]}")
        return image

    def define_crop_region(self, region: CropRegion, display_size: Optional[ImageSize] = None) -> CropRegion:
        """Store ``region`` clamped to the displayed image bounds."""
        if display_size is not None:
            self.display_size = display_size
        bounds = self._bounds()
        self.region = clamp_region(region, bounds, self.min_crop_extent)
        return self.region

    def move_crop_region(self, dx: float, dy: float) -> CropRegion:
        current = self.region or default_crop_region(self._bounds())
        return self.define_crop_region(replace(current, x=current.x + dx, y=current.y + dy))

    def resize_crop_region(self, dw: float, dh: float) -> CropRegion:
        current = self.region or default_crop_region(self._bounds())
        return self.define_crop_region(
            replace(current, width=current.width + dw, height=current.height + dh)
        )

    def crop(self, image: Optional[RawImage], label: str, region: Optional[CropRegion] = None) -> CroppedImage:
        if not label or not label.strip():
            raise NameRequired("Enter a name for the treasure marker before cropping")
        image = image or self.last_capture
        if image is None:
            raise CaptureUnavailable("Capture an image before cropping")

        display_size = self.display_size or image.size
        region = clamp_region(region or self.region or default_crop_region(display_size), display_size)
        pixels = crop_pixels(image.pixels, region, display_size)

        self.last_crop = CroppedImage(pixels=pixels, label=label.strip(), region=region)
        logger.debug(f"Cropped '{label.strip()}' to {pixels.shape[1]}x{pixels.shape[0]}")
        return self.last_crop

    def discard(self) -> None:
        self.last_capture = None
        self.last_crop = None
        self.region = None
        self.display_size = None

    def _bounds(self) -> ImageSize:
        if self.display_size is not None:
            return self.display_size
        if self.last_capture is not None:
            return self.last_capture.size
        raise CaptureUnavailable("Capture an image before defining a crop region")
