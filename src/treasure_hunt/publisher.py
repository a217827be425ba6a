"""
Configuration publisher.

Publishing writes the treasure configuration in three independent steps:

  1. durable local file (atomic replace) -- the source of truth
  2. push to the treasure server        -- best effort
  3. mirrored public copy               -- best effort

A publish succeeds when step 1 succeeds. Steps 2 and 3 report their own
status so an operator can see when a republish is needed. If step 1 fails the
remote steps are skipped, so the server never gets ahead of the local copy.
"""

import json
import logging
import os
import tempfile
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from .config import PublisherConfig
from .errors import LocalConfigCorrupt, RemoteError, TreasureHuntError, TreasureNotFound
from .records import TreasureConfiguration, TreasureRecord
from .remote import TreasureServerClient

logger = logging.getLogger(__name__)


class StepStatus(str, Enum):
    OK = 'ok'
    FAILED = 'failed'
    SKIPPED = 'skipped'


@dataclass
class StepResult:
    status: StepStatus
    message: str = ''

    @property
    def ok(self) -> bool:
        return self.status == StepStatus.OK

    def to_dict(self) -> Dict[str, Any]:
        return {'status': self.status.value, 'message': self.message}


@dataclass
class PublishResult:
    document: TreasureConfiguration
    local: StepResult
    remote: StepResult
    mirror: StepResult

    @property
    def succeeded(self) -> bool:
        return self.local.ok

    @property
    def partial(self) -> bool:
        """Local copy written but at least one mirror is out of date."""
        return self.succeeded and StepStatus.FAILED in (self.remote.status, self.mirror.status)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'success': self.succeeded,
            'partial': self.partial,
            'totalTreasures': self.document.total_treasures,
            'lastUpdated': self.document.last_updated,
            'steps': {
                'local': self.local.to_dict(),
                'remote': self.remote.to_dict(),
                'mirror': self.mirror.to_dict(),
            },
        }


@dataclass
class DeletionResult:
    image_name: str
    remote_fetch: StepResult
    image_delete: StepResult
    publish: PublishResult
    restored: List[str] = field(default_factory=list)

    @property
    def diverged(self) -> bool:
        """Local and remote copies now disagree until the next full publish."""
        return StepStatus.FAILED in (self.remote_fetch.status, self.publish.remote.status)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'success': self.publish.succeeded,
            'treasureRemoved': self.image_name,
            'diverged': self.diverged,
            'remoteFetch': self.remote_fetch.to_dict(),
            'imageDeleted': self.image_delete.ok,
            'imageDelete': self.image_delete.to_dict(),
            'configUpdated': self.publish.remote.ok,
            'restoredFromLocal': self.restored,
            'publish': self.publish.to_dict(),
        }


class ConfigurationPublisher:
    """Sole writer of the treasure configuration document."""

    def __init__(self, config: PublisherConfig, client: Optional[TreasureServerClient] = None):
        self.config = config
        self.client = client

    def load_local(self) -> Optional[TreasureConfiguration]:
        """
        Read the local document; None if it has never been published.

        Raises:
            LocalConfigCorrupt: the file exists but is not a valid document
        """
        path = Path(self.config.local_path)
        if not path.exists():
            return None
        try:
            with open(path, 'r', encoding='utf-8') as f:
                return TreasureConfiguration.from_wire(json.load(f))
        except (OSError, TypeError, ValueError, TreasureHuntError) as exc:
            logger.error(f"Failed to read local config {path}: {exc}")
            raise LocalConfigCorrupt(
                f"Local configuration {path} is unreadable; fix or remove it and republish",
                payload={'path': str(path)},
            ) from exc


    def publish(self, records: Sequence[TreasureRecord], push_remote: bool = True) -> PublishResult:
        """
        Recompute the document from ``records`` and write it out.

        Args:
            records: Full list of treasure records
            push_remote: Set False to leave the server untouched

        Returns:
            PublishResult with one status per step
        """
        document = TreasureConfiguration.build(records)
        payload = document.to_json()

        local = self._write_file(Path(self.config.local_path), payload, 'local')

        if not local.ok:
            skipped = StepResult(StepStatus.SKIPPED, 'local write failed')
            return PublishResult(document, local, skipped, skipped)

        if push_remote:
            remote = self._push_remote(document)
        else:
            remote = StepResult(StepStatus.SKIPPED, 'remote push not requested')

        if self.config.public_path is None:
            mirror = StepResult(StepStatus.SKIPPED, 'no public path configured')
        else:
            mirror = self._write_file(Path(self.config.public_path), payload, 'public')

        result = PublishResult(document, local, remote, mirror)
        if result.partial:
            logger.warning(
                f"Partial publish of {document.total_treasures} treasure(s): "
                f"remote={remote.status.value}, mirror={mirror.status.value}"
            )
        else:
            logger.info(f"Published {document.total_treasures} treasure(s)")
        return result

    def delete(self, image_name: str, file_name: Optional[str] = None) -> DeletionResult:
        """
        Remove a treasure by ``imageName`` and republish.

        The server copy is authoritative: it is fetched, filtered and
        republished everywhere. Local records the server never received are
        carried over and reported in ``restored``. If the server copy cannot
        be fetched the deletion is applied to the local document only and the
        stores diverge until the next full publish.

        Raises:
            TreasureNotFound: no reachable store holds the treasure
            LocalConfigCorrupt: the local document cannot be read
        """
        remote_doc: Optional[TreasureConfiguration] = None
        if self.client is None or not self.client.configured:
            remote_fetch = StepResult(StepStatus.SKIPPED, 'no treasure server configured')
        else:
            try:
                remote_doc = self.client.fetch_config()
                remote_fetch = StepResult(StepStatus.OK, f"{remote_doc.total_treasures} treasure(s) on server")
            except TreasureHuntError as exc:
                logger.error(f"Failed to get current config from server: {exc}")
                remote_fetch = StepResult(StepStatus.FAILED, str(exc))

        local_doc = self.load_local() or TreasureConfiguration()

        target = None
        for doc in (remote_doc, local_doc):
            if doc is not None and target is None:
                target = doc.find(image_name)
        if target is None:
            raise TreasureNotFound(
                f"No treasure named '{image_name}'",
                payload={'imageName': image_name},
            )

        image_delete = self._delete_image(file_name or target.file_name)

        if remote_doc is not None:
            remaining = remote_doc.without(image_name)
            on_server = {r.image_name for r in remote_doc.images}
            restored = [r for r in local_doc.without(image_name) if r.image_name not in on_server]
            if restored:
                # Saved locally while the server push was failing; republish them too.
                logger.warning(
                    f"Keeping {len(restored)} local treasure(s) missing from the server copy: "
                    f"{', '.join(r.image_name for r in restored)}"
                )
                remaining = remaining + restored
            publish = self.publish(remaining)
        else:
            restored = []
            remaining = local_doc.without(image_name)
            publish = self.publish(remaining, push_remote=False)

        logger.info(f"Deleted treasure {image_name}: {len(remaining)} remaining")
        return DeletionResult(
            image_name, remote_fetch, image_delete, publish,
            restored=[r.image_name for r in restored],
        )


    # ─────────────────────────────────────────────────────────────────────────

    def _push_remote(self, document: TreasureConfiguration) -> StepResult:
        if self.client is None or not self.client.configured:
            return StepResult(StepStatus.SKIPPED, 'no treasure server configured')
        try:
            self.client.push_config(document)
        except RemoteError as exc:
            logger.error(f"Failed to upload config to server: {exc}")
            return StepResult(StepStatus.FAILED, str(exc))
        return StepResult(StepStatus.OK)

    def _delete_image(self, file_name: str) -> StepResult:
        if self.client is None or not self.client.configured:
            return StepResult(StepStatus.SKIPPED, 'no treasure server configured')
        try:
            self.client.delete_image(file_name)
        except RemoteError as exc:
            logger.error(f"Failed to delete image {file_name} from server: {exc}")
            return StepResult(StepStatus.FAILED, str(exc))
        return StepResult(StepStatus.OK)

    @staticmethod
    def _write_file(path: Path, payload: str, label: str) -> StepResult:
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix='.tmp')
            try:
                with os.fdopen(fd, 'w', encoding='utf-8') as f:
                    f.write(payload)
                    f.flush()
                    os.fsync(f.fileno())
                os.replace(tmp_name, path)
            except BaseException:
                if os.path.exists(tmp_name):
                    os.remove(tmp_name)
                raise
        except OSError as exc:
            logger.error(f"Failed to save {label} config {path}: {exc}")
            return StepResult(StepStatus.FAILED, str(exc))
        logger.debug(f"Wrote {label} config {path}")
        return StepResult(StepStatus.OK, str(path))


def records_from_wire(items: List[Dict[str, Any]]) -> List[TreasureRecord]:
    return [TreasureRecord.model_validate(item) for item in items]
