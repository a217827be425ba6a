"""
Treasure authoring workflow.

Walks the operator through hiding one treasure at a time:

    SETUP -> CAPTURING -> NAMING -> CROPPING -> VALIDATING -> AUTHORING -> SAVED
                ^                                  |                        |
                +------------- rejected -----------+                        |
                +-------------------- author another -----------------------+
                                                            SAVED -> COMPLETE

Each save appends one record and publishes the whole configuration before any
further transition is accepted. Only one transition runs at a time; a second
caller gets ``WorkflowBusy`` instead of racing the first.
"""

import logging
import random
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional, Tuple

from .capture import CameraStream, CaptureUnit, CropRegion, CroppedImage, RawImage, encode_png
from .config import HuntConfig
from .errors import (
    ClueTextRequired,
    InvalidRequest,
    InvalidTransition,
    LocalConfigCorrupt,
    LocationPermissionDenied,
    NameRequired,
    PhysicalGameIncomplete,
    PublishFailed,
    QuotaReached,
    TreasureHuntError,
    UploadRejected,
    UploadUnreachable,
    ValidatorFailed,
    WorkflowBusy,
)
from .location import UNKNOWN_LOCATION, Coordinates, LocationProvider
from .publisher import ConfigurationPublisher, PublishResult
from .records import TreasureConfiguration, TreasureRecord, file_name_for, image_name_for
from .remote import TreasureServerClient
from .validator import ImageQualityValidator

logger = logging.getLogger(__name__)

SECRET_CODES = ['LIFT123', 'TREAS456', 'HUNT789', 'CLUE012', 'FIND345', 'SEEK678', 'GOLD901']


class WorkflowState(str, Enum):
    SETUP = 'setup'
    CAPTURING = 'capturing'
    NAMING = 'naming'
    CROPPING = 'cropping'
    VALIDATING = 'validating'
    AUTHORING = 'authoring'
    SAVED = 'saved'
    COMPLETE = 'complete'


class UploadStatus(str, Enum):
    UPLOADED = 'uploaded'
    UNREACHABLE = 'unreachable'
    REJECTED = 'rejected'
    NOT_CONFIGURED = 'not_configured'


@dataclass
class DraftTreasure:
    """The treasure currently being authored; discarded unless saved."""

    raw_image: RawImage
    coordinates: Coordinates
    label: str = ''
    cropped: Optional[CroppedImage] = None
    record: Optional[TreasureRecord] = None


@dataclass
class ValidationReport:
    accepted: bool
    score: Optional[int]
    threshold: int
    verified: bool = True
    reason: str = ''
    upload_status: Optional[UploadStatus] = None
    asset_url: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'accepted': self.accepted,
            'score': self.score,
            'threshold': self.threshold,
            'verified': self.verified,
            'reason': self.reason,
            'uploadStatus': self.upload_status.value if self.upload_status else None,
            'assetUrl': self.asset_url,
        }


@dataclass
class SaveReport:
    record: TreasureRecord
    publish: PublishResult
    session_complete: bool

    def to_dict(self) -> Dict[str, Any]:
        return {
            'record': self.record.to_wire(),
            'publish': self.publish.to_dict(),
            'sessionComplete': self.session_complete,
        }


class AuthoringWorkflow:
    """State machine for one authoring session."""

    def __init__(
        self,
        config: HuntConfig,
        validator: ImageQualityValidator,
        publisher: ConfigurationPublisher,
        client: Optional[TreasureServerClient] = None,
        max_treasures: Optional[int] = None,
    ):
        self.config = config
        self.validator = validator
        self.publisher = publisher
        self.client = client
        if max_treasures is None:
            max_treasures = config.session.default_max_treasures
        if isinstance(max_treasures, bool) or not isinstance(max_treasures, int) or max_treasures < 1:
            raise InvalidRequest(
                f"Treasure quota must be a whole number of at least 1, got {max_treasures!r}",
                payload={'maxTreasures': max_treasures},
            )
        self.max_treasures = max_treasures

        self.state = WorkflowState.SETUP
        self.records: List[TreasureRecord] = []
        self.saved_count = 0
        self.degraded_location = False
        self.stream: Optional[CameraStream] = None
        self.location: Optional[LocationProvider] = None
        self.capture_unit = CaptureUnit(min_crop_extent=config.session.min_crop_extent)
        self.draft: Optional[DraftTreasure] = None
        self.last_good_capture: Optional[RawImage] = None
        self.last_validation: Optional[ValidationReport] = None
        self._next_clue_index = 0
        self._lock = threading.Lock()

    # ─────────────────────────────────────────────────────────────────────────
    # Transitions
    # ─────────────────────────────────────────────────────────────────────────

    def start(self, stream: CameraStream, location: LocationProvider) -> None:
        """SETUP -> CAPTURING. Needs a location fix and a working camera."""
        with self._transition('start the session', WorkflowState.SETUP):
            try:
                location.current()
            except LocationPermissionDenied:
                if not self.config.session.allow_without_gps:
                    raise
                logger.warning("Location unavailable; continuing without GPS")
                self.degraded_location = True
            self.location = location

            self._acquire_stream(stream)
            self._seed_records()
            self._set_state(WorkflowState.CAPTURING)

    def capture(self) -> RawImage:
        """CAPTURING -> NAMING. Geotags the draft with the current fix."""
        with self._transition('capture', WorkflowState.CAPTURING):
            coordinates = self._coordinates()
            image = self.capture_unit.capture()
            self.draft = DraftTreasure(raw_image=image, coordinates=coordinates)
            self.last_good_capture = image
            self._set_state(WorkflowState.NAMING)
            return image

    def confirm_name(self, label: str) -> CropRegion:
        """NAMING -> CROPPING. Returns the initial crop region."""
        with self._transition('name the marker', WorkflowState.NAMING):
            label = (label or '').strip()
            if not label:
                raise NameRequired("Please enter a name for the treasure marker")
            self.draft.label = label
            self._set_state(WorkflowState.CROPPING)
            return self.capture_unit.region

    def adjust_crop(self, region: CropRegion, display_size: Optional[Tuple[int, int]] = None) -> CropRegion:
        with self._transition('adjust the crop', WorkflowState.CROPPING):
            return self.capture_unit.define_crop_region(region, display_size)

    def confirm_crop(self) -> ValidationReport:
        """
        CROPPING -> VALIDATING -> AUTHORING (accepted) or CAPTURING (rejected).

        The image advances iff its score is at least the configured minimum.
        Upload failures do not block authoring; they are reported in the
        returned report's ``upload_status``.
        """
        with self._transition('confirm the crop', WorkflowState.CROPPING):
            draft = self.draft
            image = draft.raw_image or self.last_good_capture
            draft.cropped = self.capture_unit.crop(image, draft.label)

            self._set_state(WorkflowState.VALIDATING)
            try:
                report = self._validate_and_upload(draft)
            except Exception:
                self._set_state(WorkflowState.CROPPING)
                raise
            self.last_validation = report
            return report

    def recapture(self) -> None:
        """Throw the draft away and go back to the camera."""
        with self._transition(
            'recapture',
            WorkflowState.NAMING,
            WorkflowState.CROPPING,
            WorkflowState.AUTHORING,
        ):
            self._discard_draft()
            self._set_state(WorkflowState.CAPTURING)

    def save(
        self,
        clue_text: str,
        has_physical_game: bool = False,
        physical_game_instruction: str = '',
        physical_game_secret_code: str = '',
    ) -> SaveReport:
        """
        AUTHORING -> SAVED (or COMPLETE once the quota is reached).

        Raises:
            ClueTextRequired: blank clue text
            PhysicalGameIncomplete: physical game without instruction or code
            PublishFailed: the local configuration could not be written
        """
        with self._transition('save the clue', WorkflowState.AUTHORING):
            clue_text = (clue_text or '').strip()
            if not clue_text:
                raise ClueTextRequired("Please enter clue text before continuing")

            instruction = (physical_game_instruction or '').strip()
            secret_code = (physical_game_secret_code or '').strip()
            if has_physical_game and not (instruction and secret_code):
                raise PhysicalGameIncomplete(
                    "A physical game needs both an instruction and a secret code"
                )

            fields = self.draft.record.model_dump()
            fields.update(
                clue_text=clue_text,
                has_physical_game=has_physical_game,
                physical_game_instruction=instruction,
                physical_game_secret_code=secret_code,
            )
            record = TreasureRecord(**fields)

            self.records.append(record)
            try:
                result = self.publisher.publish(self.records)
            except Exception:
                self.records.pop()
                raise
            if not result.succeeded:
                self.records.pop()
                raise PublishFailed(
                    f"Could not save the treasure configuration: {result.local.message}",
                    payload={'publish': result.to_dict()},
                )

            self.saved_count += 1
            self._discard_draft()
            self._set_state(WorkflowState.SAVED)
            logger.info(
                f"Saved treasure {record.image_name} "
                f"({self.saved_count}/{self.max_treasures} this session)"
            )

            complete = self.quota_reached
            if complete:
                self._finish()
            return SaveReport(record=record, publish=result, session_complete=complete)

    def continue_session(self) -> None:
        """SAVED -> CAPTURING, unless the quota has been reached."""
        with self._transition('hide another treasure', WorkflowState.SAVED):
            if self.quota_reached:
                raise QuotaReached(f"Session quota of {self.max_treasures} treasures reached")
            self._set_state(WorkflowState.CAPTURING)

    def end_session(self) -> None:
        """Any state -> COMPLETE. Published records stay published."""
        if not self._lock.acquire(blocking=False):
            raise WorkflowBusy("Wait for the current step to finish before ending the session")
        try:
            if self.state != WorkflowState.COMPLETE:
                self._finish()
        finally:
            self._lock.release()

    # ─────────────────────────────────────────────────────────────────────────
    # Queries
    # ─────────────────────────────────────────────────────────────────────────

    @property
    def quota_reached(self) -> bool:
        return self.saved_count >= self.max_treasures

    @property
    def busy(self) -> bool:
        return self._lock.locked()

    def generate_secret_code(self) -> str:
        """A memorable code for a physical game, suffixed with the clue index."""
        if self.draft is not None and self.draft.record is not None:
            index = self.draft.record.clue_index
        else:
            index = self._next_clue_index
        return f"{random.choice(SECRET_CODES)}{index}"

    def configuration(self) -> TreasureConfiguration:
        return TreasureConfiguration.build(self.records)

    def to_dict(self) -> Dict[str, Any]:
        draft = None
        if self.draft is not None:
            draft = {
                'label': self.draft.label,
                'latitude': self.draft.coordinates.latitude,
                'longitude': self.draft.coordinates.longitude,
                'record': self.draft.record.to_wire() if self.draft.record else None,
            }
        region = self.capture_unit.region
        return {
            'state': self.state.value,
            'savedCount': self.saved_count,
            'maxTreasures': self.max_treasures,
            'totalTreasures': len(self.records),
            'degradedLocation': self.degraded_location,
            'busy': self.busy,
            'draft': draft,
            'cropRegion': region.to_dict() if region and self.draft else None,
            'lastValidation': self.last_validation.to_dict() if self.last_validation else None,
        }

    # ─────────────────────────────────────────────────────────────────────────
    # Internals
    # ─────────────────────────────────────────────────────────────────────────

    @contextmanager
    def _transition(self, action: str, *allowed: WorkflowState) -> Iterator[None]:
        if not self._lock.acquire(blocking=False):
            raise WorkflowBusy(f"Cannot {action}: another step is still running")
        try:
            if self.state not in allowed:
                raise InvalidTransition(
                    f"Cannot {action} while {self.state.value}",
                    payload={'state': self.state.value},
                )
            yield
        finally:
            self._lock.release()

    def _set_state(self, state: WorkflowState) -> None:
        logger.info(f"Authoring: {self.state.value} -> {state.value}")
        self.state = state

    def _acquire_stream(self, stream: CameraStream) -> None:
        if self.stream is not None and self.stream is not stream:
            self.stream.release()
        self.stream = None
        stream.open()
        self.stream = stream
        self.capture_unit.stream = stream

    def _seed_records(self) -> None:
        """Continue from the server's configuration, else the local one."""
        existing: Optional[TreasureConfiguration] = None
        if self.client is not None and self.client.configured:
            try:
                existing = self.client.fetch_config()
            except TreasureHuntError as exc:
                logger.warning(f"Failed to load treasures from server: {exc}")
        if existing is None:
            try:
                existing = self.publisher.load_local()
            except LocalConfigCorrupt as exc:
                logger.warning(f"Ignoring unreadable local treasures: {exc}")

        if existing is None:
            logger.info("Starting with empty treasure list")
            self.records = []
            self._next_clue_index = 0
        else:
            logger.info(f"Loaded {existing.total_treasures} existing treasure(s)")
            self.records = list(existing.images)
            self._next_clue_index = existing.next_clue_index()

    def _coordinates(self) -> Coordinates:
        try:
            return self.location.current()
        except LocationPermissionDenied:
            if not self.config.session.allow_without_gps:
                raise
            self.degraded_location = True
            return UNKNOWN_LOCATION

    def _validate_and_upload(self, draft: DraftTreasure) -> ValidationReport:
        threshold = self.config.validator.min_validation_score
        try:
            outcome = self.validator.evaluate_image(draft.cropped.pixels)
        except ValidatorFailed as exc:
            return self._reject(None, threshold, f"Image validation failed: {exc.message}")

        if not outcome.passes(threshold):
            return self._reject(
                outcome.score,
                threshold,
                f"Image quality score ({outcome.score}) is below the required threshold of "
                f"{threshold}. Please capture an image with more visual features, better "
                f"contrast, and sharper details.",
            )

        clue_index = self._next_clue_index
        self._next_clue_index += 1
        image_name = image_name_for(clue_index, draft.label)
        file_name = file_name_for(draft.label)

        upload_status, asset_url = self._upload(draft, image_name, file_name, outcome.score)

        draft.record = TreasureRecord(
            image_name=image_name,
            file_name=file_name,
            physical_size_in_meters=self.config.session.physical_size_in_meters,
            clue_index=clue_index,
            clue_name=draft.label,
            latitude=draft.coordinates.latitude,
            longitude=draft.coordinates.longitude,
            validation_score=outcome.score,
            verified=outcome.verified,
        )
        self._set_state(WorkflowState.AUTHORING)
        return ValidationReport(
            accepted=True,
            score=outcome.score,
            threshold=threshold,
            verified=outcome.verified,
            upload_status=upload_status,
            asset_url=asset_url,
        )

    def _upload(
        self, draft: DraftTreasure, image_name: str, file_name: str, score: int
    ) -> Tuple[UploadStatus, Optional[str]]:
        if self.client is None or not self.client.configured:
            return UploadStatus.NOT_CONFIGURED, None
        try:
            asset = self.client.upload_marker(
                encode_png(draft.cropped.pixels),
                image_name=image_name,
                file_name=file_name,
                latitude=draft.coordinates.latitude,
                longitude=draft.coordinates.longitude,
                validation_score=score,
            )
        except UploadUnreachable as exc:
            logger.warning(f"Marker upload unreachable, continuing: {exc}")
            return UploadStatus.UNREACHABLE, None
        except UploadRejected as exc:
            logger.warning(f"Marker upload rejected, continuing: {exc}")
            return UploadStatus.REJECTED, None
        return UploadStatus.UPLOADED, asset.url

    def _reject(self, score: Optional[int], threshold: int, reason: str) -> ValidationReport:
        logger.info(f"Marker rejected: {reason}")
        self._discard_draft()
        self._set_state(WorkflowState.CAPTURING)
        return ValidationReport(accepted=False, score=score, threshold=threshold, reason=reason)

    def _discard_draft(self) -> None:
        self.draft = None
        self.last_good_capture = None
        self.capture_unit.discard()

    def _finish(self) -> None:
        if self.stream is not None:
            self.stream.release()
        self._discard_draft()
        self._set_state(WorkflowState.COMPLETE)
