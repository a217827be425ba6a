"""
Configuration models for the treasure hunt tooling.

This module defines the configuration structure using Pydantic for validation.
"""

from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional
from pydantic import BaseModel, Field, field_validator


class FallbackPolicy(str, Enum):
    """What to do when the image validator cannot produce a score."""

    REJECT = 'reject'
    UNVERIFIED = 'unverified'


class ServerConfig(BaseModel):
    """Remote treasure server the client app reads its configuration from."""

    base_url: Optional[str] = Field(
        None,
        description="Base URL of the treasure server (no trailing slash)"
    )
    headers: Dict[str, str] = Field(
        default_factory=dict,
        description="Extra headers sent with every remote call"
    )
    timeout_seconds: float = Field(
        15.0,
        gt=0,
        le=300,
        description="Per-request timeout for remote calls"
    )

    @field_validator('base_url')
    @classmethod
    def strip_trailing_slash(cls, v: Optional[str]) -> Optional[str]:
        """Normalise the base URL; blank means not configured."""
        if v is None:
            return None
        v = v.strip().rstrip('/')
        return v or None


class ValidatorConfig(BaseModel):
    """Configuration for the external image quality tool."""

    command: str = Field("arcoreimg", description="Validator executable")
    min_validation_score: int = Field(
        75,
        ge=0,
        le=100,
        description="Minimum score an image needs to be accepted as a marker"
    )
    timeout_seconds: float = Field(
        30.0,
        gt=0,
        le=600,
        description="Maximum time the validator may run"
    )
    fallback_policy: FallbackPolicy = Field(
        FallbackPolicy.REJECT,
        description="Behaviour when the validator fails to produce a score"
    )
    fallback_score: int = Field(
        0,
        ge=0,
        le=100,
        description="Score substituted under the 'unverified' policy"
    )


class SessionConfig(BaseModel):
    """Defaults for an authoring session."""

    default_max_treasures: int = Field(
        5,
        ge=1,
        le=500,
        description="Treasures to hide before the session completes"
    )
    physical_size_in_meters: float = Field(
        0.15,
        gt=0,
        description="Printed marker width reported to the client app"
    )
    allow_without_gps: bool = Field(
        False,
        description="Continue in degraded mode (0,0) when location is denied"
    )
    min_crop_extent: int = Field(
        1,
        ge=1,
        description="Smallest crop width/height in display pixels"
    )


class CaptureProfile(BaseModel):
    """One camera configuration to try; None means unconstrained."""

    width: Optional[int] = Field(None, gt=0)
    height: Optional[int] = Field(None, gt=0)


def _default_profiles() -> List[CaptureProfile]:
    return [
        CaptureProfile(width=1280, height=720),
        CaptureProfile(width=640, height=480),
        CaptureProfile(),
    ]


class CameraConfig(BaseModel):
    """Configuration for a locally attached camera."""

    device_index: int = Field(0, ge=0, description="OpenCV device index")
    profiles: List[CaptureProfile] = Field(
        default_factory=_default_profiles,
        description="Capture profiles, most constrained first"
    )


class PublisherConfig(BaseModel):
    """Where the published configuration document is written."""

    local_path: Path = Field(
        Path("Web-config.JSON"),
        description="Durable local copy of the configuration"
    )
    public_path: Optional[Path] = Field(
        Path("public") / "Web-config.JSON",
        description="Mirrored copy served same-origin; None disables it"
    )

    @field_validator('local_path', 'public_path')
    @classmethod
    def validate_path(cls, v: Optional[Path]) -> Optional[Path]:
        """Ensure paths are Path objects."""
        if v is None:
            return None
        return Path(v) if not isinstance(v, Path) else v


class HuntConfig(BaseModel):
    """Main application configuration."""

    server: ServerConfig = Field(default_factory=ServerConfig)
    validator: ValidatorConfig = Field(default_factory=ValidatorConfig)
    session: SessionConfig = Field(default_factory=SessionConfig)
    camera: CameraConfig = Field(default_factory=CameraConfig)
    publisher: PublisherConfig = Field(default_factory=PublisherConfig)
    debug_logging: bool = Field(True, description="Log at DEBUG level")

    def resolve_paths(self, root: Path) -> 'HuntConfig':
        """Return a copy whose relative publisher paths are anchored at root."""
        root = Path(root)
        publisher = self.publisher.model_copy()
        if not publisher.local_path.is_absolute():
            publisher.local_path = root / publisher.local_path
        if publisher.public_path is not None and not publisher.public_path.is_absolute():
            publisher.public_path = root / publisher.public_path
        return self.model_copy(update={'publisher': publisher})
