"""
Treasure Hunt Ops - marker authoring and publishing for AR scavenger hunts.

Captures physical-world marker images, scores them for AR tracking, geotags
them and publishes the clue configuration the hunt's client app reads.
"""

__version__ = "0.1.0"

from .hunt import TreasureHunt
from .config import (
    HuntConfig,
    ServerConfig,
    ValidatorConfig,
    SessionConfig,
    CameraConfig,
    PublisherConfig,
    FallbackPolicy,
)
from .config_manager import ConfigManager
from .records import TreasureRecord, TreasureConfiguration
from .publisher import ConfigurationPublisher, PublishResult, DeletionResult
from .remote import TreasureServerClient
from .validator import ImageQualityValidator, ValidationOutcome
from .workflow import AuthoringWorkflow, WorkflowState, UploadStatus

__all__ = [
    'TreasureHunt',
    'HuntConfig',
    'ServerConfig',
    'ValidatorConfig',
    'SessionConfig',
    'CameraConfig',
    'PublisherConfig',
    'FallbackPolicy',
    'ConfigManager',
    'TreasureRecord',
    'TreasureConfiguration',
    'ConfigurationPublisher',
    'PublishResult',
    'DeletionResult',
    'TreasureServerClient',
    'ImageQualityValidator',
    'ValidationOutcome',
    'AuthoringWorkflow',
    'WorkflowState',
    'UploadStatus',
]
