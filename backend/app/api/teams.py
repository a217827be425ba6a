"""Team roster and physical score API."""
from flask import Blueprint, jsonify, request

from ..services.container import get_services

bp = Blueprint('teams', __name__)


@bp.get('')
def list_teams():
    return jsonify(get_services().teams.list_teams())


@bp.get('/<uid>')
def get_team(uid: str):
    team = get_services().teams.get_team(uid)
    return jsonify(team.to_dict(include_relations=True))


@bp.put('/<uid>')
def put_team(uid: str):
    """PUT /api/teams/<uid>: whole-node write from the upstream game."""
    team = get_services().teams.upsert_node(uid, request.get_json(silent=True))
    return jsonify(team.to_node())


@bp.patch('/<uid>/physical-score')
def update_physical_score(uid: str):
    """PATCH /api/teams/<uid>/physical-score  JSON: { physicalScore, physicalScoreComment? }"""
    data = request.get_json(silent=True) or {}
    team = get_services().teams.update_physical_score(
        uid,
        data.get('physicalScore'),
        data.get('physicalScoreComment'),
    )
    return jsonify(team.to_node())


# ── Score ledger ──────────────────────────────────────────────────────────────

@bp.get('/<uid>/score-entries')
def list_score_entries(uid: str):
    store = get_services().teams
    entries = store.list_score_entries(uid)
    return jsonify({
        'entries': [e.to_dict() for e in entries],
        'netPhysicalScore': store.net_physical_score(uid),
    })


@bp.post('/<uid>/score-entries')
def add_score_entry(uid: str):
    """POST /api/teams/<uid>/score-entries  JSON: { score, volunteerName?, benchmark? }"""
    data = request.get_json(silent=True) or {}
    entry = get_services().teams.add_score_entry(
        uid,
        data.get('score'),
        volunteer_name=data.get('volunteerName', ''),
        benchmark=data.get('benchmark', ''),
    )
    return jsonify(entry.to_dict()), 201


@bp.patch('/<uid>/score-entries/<int:entry_id>')
def edit_score_entry(uid: str, entry_id: int):
    data = request.get_json(silent=True) or {}
    entry = get_services().teams.edit_score_entry(
        entry_id,
        uid=uid,
        score=data.get('score'),
        volunteer_name=data.get('volunteerName'),
        benchmark=data.get('benchmark'),
    )
    return jsonify(entry.to_dict())


@bp.post('/<uid>/score-entries/<int:entry_id>/finalize')
def finalize_score_entry(uid: str, entry_id: int):
    entry = get_services().teams.finalize_score_entry(entry_id, uid=uid)
    return jsonify({'entry': entry.to_dict(), 'physicalScore': entry.team.physical_score})
