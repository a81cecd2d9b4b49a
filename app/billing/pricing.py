"""Static credit prices for image and video generation.

Prices are looked up, never computed: a combination that has no row has no
price, and callers must refuse the request rather than guess.
"""
from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class ImagePrice:
    quality: str
    size: str
    api_cost: float
    price_with_margin: float    # 50% margin over api_cost
    credits_to_charge: int


@dataclass(frozen=True)
class VideoPrice:
    duration: str
    resolution: str
    motion: str
    api_cost: float
    price_with_margin: float    # 30% margin over api_cost
    credits_to_charge: int


IMAGE_PRICING: tuple[ImagePrice, ...] = (
    ImagePrice("low", "1024x1024", 0.011, 0.0165, 2),
    ImagePrice("low", "1024x1536", 0.016, 0.024, 3),
    ImagePrice("low", "1536x1024", 0.016, 0.024, 3),
    ImagePrice("medium", "1024x1024", 0.042, 0.063, 7),
    ImagePrice("medium", "1024x1536", 0.063, 0.0945, 10),
    ImagePrice("medium", "1536x1024", 0.063, 0.0945, 10),
    ImagePrice("high", "1024x1024", 0.167, 0.2505, 25),
    ImagePrice("high", "1024x1536", 0.25, 0.375, 38),
    ImagePrice("high", "1536x1024", 0.25, 0.375, 38),
)

VIDEO_PRICING: tuple[VideoPrice, ...] = (
    VideoPrice("5s", "360p", "normal", 0.30, 0.39, 39),
    VideoPrice("5s", "360p", "smooth", 0.60, 0.78, 78),
    VideoPrice("8s", "360p", "normal", 0.60, 0.78, 78),
    VideoPrice("5s", "540p", "normal", 0.30, 0.39, 39),
    VideoPrice("5s", "540p", "smooth", 0.60, 0.78, 78),
    VideoPrice("8s", "540p", "normal", 0.60, 0.78, 78),
    VideoPrice("5s", "720p", "normal", 0.40, 0.52, 52),
    VideoPrice("5s", "720p", "smooth", 0.80, 1.04, 104),
    VideoPrice("8s", "720p", "normal", 0.80, 1.04, 104),
    VideoPrice("5s", "1080p", "normal", 0.80, 1.04, 104),
)

_IMAGE_INDEX = {(p.quality, p.size): p for p in IMAGE_PRICING}
_VIDEO_INDEX = {(p.duration, p.resolution, p.motion): p for p in VIDEO_PRICING}


def get_pricing_details(quality: str, size: str) -> Optional[ImagePrice]:
    return _IMAGE_INDEX.get((quality, size))


def calculate_credits(quality: str, size: str) -> Optional[int]:
    """Credits for one image, or None if the combination is not offered."""
    price = get_pricing_details(quality, size)
    return price.credits_to_charge if price else None


def get_video_pricing_details(duration: str, resolution: str, motion: str) -> Optional[VideoPrice]:
    return _VIDEO_INDEX.get((duration, resolution, motion))


def calculate_video_credits(duration: str = "5s", resolution: str = "720p", motion: str = "normal") -> Optional[int]:
    """Credits for one video, or None if the combination is not offered."""
    price = get_video_pricing_details(duration, resolution, motion)
    return price.credits_to_charge if price else None


# Display labels

def format_quality(quality: str) -> str:
    return quality[:1].upper() + quality[1:]


def format_size(size: str) -> str:
    width, _, height = size.partition("x")
    if width == height:
        return f"Square ({size})"
    if int(width) > int(height):
        return f"Landscape ({size})"
    return f"Portrait ({size})"


def format_duration(duration: str) -> str:
    return "5 seconds" if duration == "5s" else "8 seconds"


_RESOLUTION_LABELS = {
    "360p": "360p (SD)",
    "540p": "540p (QHD)",
    "720p": "720p (HD)",
    "1080p": "1080p (Full HD)",
}


def format_resolution(resolution: str) -> str:
    return _RESOLUTION_LABELS.get(resolution, resolution)


def format_motion_mode(motion: str) -> str:
    return "Normal Motion" if motion == "normal" else "Smooth Motion"
