"""
Main TreasureHunt class that integrates configuration, the validator, the
treasure server and the configuration publisher.

This module provides the high-level API used by the CLI and the web backend.
"""

import logging
from pathlib import Path
from typing import List, Optional, Union

from .config import HuntConfig
from .config_manager import ConfigManager
from .publisher import ConfigurationPublisher, DeletionResult, PublishResult
from .records import TreasureRecord
from .remote import ConnectionReport, TreasureServerClient
from .validator import ImageQualityValidator, ValidationOutcome
from .workflow import AuthoringWorkflow

logger = logging.getLogger(__name__)


class TreasureHunt:
    """
    Main application class for treasure hunt operations.

    Wires the configured services together and hands out authoring
    workflows that share them.
    """

    def __init__(
        self,
        config_path: Optional[Path] = None,
        config: Optional[HuntConfig] = None,
        client: Optional[TreasureServerClient] = None,
    ):
        """
        Initialize the services.

        Args:
            config_path: Path to configuration file. If None, uses default.
            config: Preloaded configuration; skips reading ``config_path``.
            client: Treasure server client to use instead of building one.
        """
        self.config_manager = ConfigManager(config_path)
        if config is None:
            self.config_manager.load_or_default()
            config = self.config_manager.apply_env_overrides()
        self.config = config

        self.client = client or TreasureServerClient(config.server)
        self.validator = ImageQualityValidator(config.validator)
        self.publisher = ConfigurationPublisher(config.publisher, self.client)

    @classmethod
    def initialize(cls, project_dir: Path, server_url: Optional[str] = None) -> 'TreasureHunt':
        """
        Create a project directory with a default configuration.

        Args:
            project_dir: Root directory for the project
            server_url: Optional base URL of the treasure server

        Returns:
            TreasureHunt bound to the new configuration
        """
        manager = ConfigManager.initialize_project(project_dir, server_url)
        return cls(manager.config_path, config=manager.config.resolve_paths(project_dir))

    def new_workflow(self, max_treasures: Optional[int] = None) -> AuthoringWorkflow:
        """Create an authoring workflow sharing this instance's services."""
        return AuthoringWorkflow(
            self.config,
            validator=self.validator,
            publisher=self.publisher,
            client=self.client,
            max_treasures=max_treasures,
        )

    def list_treasures(self) -> List[TreasureRecord]:
        """Treasures in the local configuration document, in clue order."""
        document = self.publisher.load_local()
        if document is None:
            return []
        return sorted(document.images, key=lambda r: r.clue_index)

    def republish(self, records: Optional[List[TreasureRecord]] = None) -> PublishResult:
        """
        Publish ``records`` (or the current local document) to every target.

        Republishing the local document brings the server and the public
        mirror back in line after a partial publish.
        """
        if records is None:
            document = self.publisher.load_local()
            if document is None:
                raise FileNotFoundError(
                    f"No configuration published yet at {self.config.publisher.local_path}"
                )
            records = document.images
        return self.publisher.publish(records)

    def delete_treasure(self, image_name: str, file_name: Optional[str] = None) -> DeletionResult:
        return self.publisher.delete(image_name, file_name)

    def validate_image(self, image_path: Union[str, Path]) -> ValidationOutcome:
        """Score an image file with the configured validator."""
        path = Path(image_path)
        if not path.exists():
            raise FileNotFoundError(f"Image not found: {path}")
        return self.validator.evaluate(path)

    def check_server(self) -> ConnectionReport:
        return self.client.check_connection()
