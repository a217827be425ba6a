"""
Exception hierarchy for the treasure hunt tooling.

Every error carries a short machine-readable ``code`` and the HTTP status the
Flask blueprints answer with, so callers can tell a network hiccup from a
rejected image without string matching.
"""

from typing import Any, Dict, Optional


class TreasureHuntError(Exception):
    """Base class for all domain errors."""

    code = 'treasure_hunt_error'
    status_code = 400

    def __init__(self, message: str, payload: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.payload = payload or {}

    def to_dict(self) -> Dict[str, Any]:
        data = {'error': self.code, 'message': self.message}
        data.update(self.payload)
        return data


# ── Permission errors ─────────────────────────────────────────────────────────

class CameraUnavailable(TreasureHuntError):
    """No capture profile could open the camera."""
    code = 'camera_unavailable'
    status_code = 503


class CaptureUnavailable(TreasureHuntError):
    """No active stream, or the frame came back empty."""
    code = 'capture_unavailable'
    status_code = 409


class LocationPermissionDenied(TreasureHuntError):
    code = 'location_permission_denied'
    status_code = 403


# ── Input validation ──────────────────────────────────────────────────────────

class InvalidRequest(TreasureHuntError):
    """Client input that is malformed or out of range."""
    code = 'invalid_request'


class NameRequired(TreasureHuntError):
    code = 'name_required'


class ClueTextRequired(TreasureHuntError):
    code = 'clue_text_required'


class PhysicalGameIncomplete(TreasureHuntError):
    code = 'physical_game_incomplete'


# ── Validator ─────────────────────────────────────────────────────────────────

class ValidatorFailed(TreasureHuntError):
    """The external quality tool crashed, timed out or printed no score."""
    code = 'validator_failed'
    status_code = 502


# ── Remote server ─────────────────────────────────────────────────────────────

class RemoteError(TreasureHuntError):
    code = 'remote_error'
    status_code = 502


class RemoteNotConfigured(RemoteError):
    code = 'remote_not_configured'
    status_code = 503


class UploadUnreachable(RemoteError):
    code = 'upload_unreachable'


class UploadRejected(RemoteError):
    code = 'upload_rejected'

    def __init__(self, message: str, status: int, body: str = ''):
        super().__init__(message, payload={'status': status})
        self.status = status
        self.body = body


class RemoteConfigUnavailable(RemoteError):
    code = 'remote_config_unavailable'


# ── Data integrity ────────────────────────────────────────────────────────────

class TreasureNotFound(TreasureHuntError):
    code = 'treasure_not_found'
    status_code = 404


class DuplicateImageName(TreasureHuntError):
    code = 'duplicate_image_name'
    status_code = 409


class LocalConfigCorrupt(TreasureHuntError):
    """The local configuration file exists but cannot be read back."""
    code = 'local_config_corrupt'
    status_code = 500


class PublishFailed(TreasureHuntError):
    """The local configuration write failed; nothing was published."""
    code = 'publish_failed'
    status_code = 500


# ── Workflow misuse ───────────────────────────────────────────────────────────

class InvalidTransition(TreasureHuntError):
    code = 'invalid_transition'
    status_code = 409


class WorkflowBusy(TreasureHuntError):
    code = 'workflow_busy'
    status_code = 409


class QuotaReached(TreasureHuntError):
    code = 'quota_reached'
    status_code = 409


# ── Team/score store ──────────────────────────────────────────────────────────

class TeamNotFound(TreasureHuntError):
    code = 'team_not_found'
    status_code = 404


class InvalidTeamNode(TreasureHuntError):
    """An upstream node without a team name is not a team."""
    code = 'invalid_team_node'


class ScoreEntryNotFound(TreasureHuntError):
    code = 'score_entry_not_found'
    status_code = 404


class ScoreEntryFinalized(TreasureHuntError):
    """Finalized ledger entries are immutable."""
    code = 'score_entry_finalized'
    status_code = 409


class InvalidScore(TreasureHuntError):
    code = 'invalid_score'
