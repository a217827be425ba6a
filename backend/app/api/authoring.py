"""
Treasure authoring API endpoints.

One session walks the operator through capture, naming, cropping,
validation and clue authoring. Every response carries the session state so
the page can render the right step.
"""
import logging
from typing import Optional

from flask import Blueprint, jsonify, request
from pydantic import BaseModel, ConfigDict, Field, StrictBool, StrictInt

from treasure_hunt.capture import CropRegion

from ..services.container import get_services

logger = logging.getLogger(__name__)
bp = Blueprint('authoring', __name__)


# ── Request bodies ────────────────────────────────────────────────────────────

class _Body(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class StartRequest(_Body):
    max_treasures: Optional[StrictInt] = Field(None, ge=1, alias='maxTreasures')
    latitude: Optional[float] = None
    longitude: Optional[float] = None


class RegionBody(_Body):
    x: float = 0
    y: float = 0
    width: float = 0
    height: float = 0


class DisplaySizeBody(_Body):
    width: StrictInt = Field(gt=0)
    height: StrictInt = Field(gt=0)


class NameRequest(_Body):
    label: str = ''


class CropRequest(_Body):
    region: Optional[RegionBody] = None
    display_size: Optional[DisplaySizeBody] = Field(None, alias='displaySize')
    confirm: StrictBool = True


class SaveRequest(_Body):
    clue_text: str = Field('', alias='clueText')
    has_physical_game: StrictBool = Field(False, alias='hasPhysicalGame')
    physical_game_instruction: str = Field('', alias='physicalGameInstruction')
    physical_game_secret_code: str = Field('', alias='physicalGameSecretCode')


def _json():
    return request.get_json(silent=True) or {}


def _state(session, status: int = 200, **extra):
    data = session.to_dict()
    data.update(extra)
    return jsonify(data), status


# ── Session lifecycle ─────────────────────────────────────────────────────────

@bp.route('/sessions', methods=['POST'])
def start_session():
    """
    POST /api/authoring/sessions
    JSON: { maxTreasures?, latitude?, longitude? }
    """
    body = StartRequest.model_validate(_json())
    session = get_services().sessions.start(
        max_treasures=body.max_treasures,
        latitude=body.latitude,
        longitude=body.longitude,
    )
    return _state(session, 201)


@bp.get('/sessions/<session_id>')
def get_session(session_id: str):
    return _state(get_services().sessions.get(session_id))


@bp.route('/sessions/<session_id>/end', methods=['POST'])
def end_session(session_id: str):
    return _state(get_services().sessions.end(session_id))


@bp.route('/sessions/<session_id>', methods=['DELETE'])
def discard_session(session_id: str):
    """Ends the session if needed and forgets it."""
    get_services().sessions.remove(session_id)
    return jsonify({'success': True, 'sessionId': session_id})


# ── Capture ───────────────────────────────────────────────────────────────────

@bp.route('/sessions/<session_id>/frame', methods=['POST'])
def capture_frame(session_id: str):
    """
    POST /api/authoring/sessions/<id>/frame
    Multipart: frame=<image>, latitude=<float>, longitude=<float>

    Pushes the frame the page grabbed from its camera and captures it.
    """
    session = get_services().sessions.get(session_id)

    latitude = request.form.get('latitude', type=float)
    longitude = request.form.get('longitude', type=float)
    if latitude is not None and longitude is not None:
        session.location.update(latitude, longitude)

    upload = request.files.get('frame')
    payload = upload.read() if upload else request.get_data()
    if not payload:
        return jsonify({'error': 'invalid_request', 'message': 'No frame provided'}), 400

    session.stream.push_frame(payload)
    image = session.workflow.capture()
    width, height = image.size
    return _state(session, imageSize={'width': width, 'height': height})


@bp.route('/sessions/<session_id>/recapture', methods=['POST'])
def recapture(session_id: str):
    session = get_services().sessions.get(session_id)
    session.workflow.recapture()
    return _state(session)


# ── Naming & cropping ─────────────────────────────────────────────────────────

@bp.route('/sessions/<session_id>/name', methods=['POST'])
def confirm_name(session_id: str):
    """POST .../name  JSON: { label }"""
    session = get_services().sessions.get(session_id)
    body = NameRequest.model_validate(_json())
    region = session.workflow.confirm_name(body.label)
    return _state(session, cropRegion=region.to_dict())


@bp.route('/sessions/<session_id>/crop', methods=['POST'])
def crop(session_id: str):
    """
    POST .../crop
    JSON: { region?: {x, y, width, height}, displaySize?: {width, height}, confirm?: bool }

    Adjusts the crop rectangle and, unless ``confirm`` is false, crops and
    validates the marker.
    """
    session = get_services().sessions.get(session_id)
    body = CropRequest.model_validate(_json())

    if body.region is not None:
        display = body.display_size
        display_size = (display.width, display.height) if display else None
        session.workflow.adjust_crop(
            CropRegion(
                x=body.region.x,
                y=body.region.y,
                width=body.region.width,
                height=body.region.height,
            ),
            display_size,
        )

    if not body.confirm:
        return _state(session)

    report = session.workflow.confirm_crop()
    return _state(session, validation=report.to_dict())


# ── Authoring ─────────────────────────────────────────────────────────────────

@bp.route('/sessions/<session_id>/secret-code', methods=['POST'])
def secret_code(session_id: str):
    session = get_services().sessions.get(session_id)
    return jsonify({'code': session.workflow.generate_secret_code()})


@bp.route('/sessions/<session_id>/save', methods=['POST'])
def save(session_id: str):
    """
    POST .../save
    JSON: { clueText, hasPhysicalGame?, physicalGameInstruction?, physicalGameSecretCode? }
    """
    session = get_services().sessions.get(session_id)
    body = SaveRequest.model_validate(_json())
    report = session.workflow.save(
        clue_text=body.clue_text,
        has_physical_game=body.has_physical_game,
        physical_game_instruction=body.physical_game_instruction,
        physical_game_secret_code=body.physical_game_secret_code,
    )
    return _state(session, saved=report.to_dict())


@bp.route('/sessions/<session_id>/continue', methods=['POST'])
def continue_session(session_id: str):
    session = get_services().sessions.get(session_id)
    session.workflow.continue_session()
    return _state(session)
