"""
Treasure configuration API endpoints.
"""
import logging
from flask import Blueprint, jsonify, request

from treasure_hunt.publisher import records_from_wire

from ..services.container import get_services

logger = logging.getLogger(__name__)
bp = Blueprint('treasures', __name__)


@bp.get('')
def get_configuration():
    """GET /api/treasures: the local configuration document."""
    document = get_services().hunt.publisher.load_local()
    if document is None:
        return jsonify({'images': [], 'lastUpdated': None, 'totalTreasures': 0})
    return jsonify(document.to_wire())


@bp.route('/publish', methods=['POST'])
def publish():
    """
    POST /api/treasures/publish
    JSON: { treasures: [TreasureRecord, ...] }

    Replaces the configuration with ``treasures``. 200 when the local copy was
    written (``partial`` flags a stale server or mirror), 500 otherwise.
    """
    data = request.get_json(silent=True) or {}
    treasures = data.get('treasures')
    if not isinstance(treasures, list):
        return jsonify({'error': 'invalid_request', 'message': 'Invalid treasures data'}), 400

    result = get_services().hunt.republish(records_from_wire(treasures))
    return jsonify(result.to_dict()), 200 if result.succeeded else 500


@bp.route('/delete', methods=['POST'])
def delete():
    """
    POST /api/treasures/delete
    JSON: { imageName, fileName? }
    """
    data = request.get_json(silent=True) or {}
    image_name = (data.get('imageName') or '').strip()
    if not image_name:
        return jsonify({'error': 'invalid_request', 'message': 'imageName is required'}), 400

    result = get_services().hunt.delete_treasure(image_name, data.get('fileName') or None)
    return jsonify(result.to_dict()), 200 if result.publish.succeeded else 500


@bp.get('/server-check')
def server_check():
    report = get_services().hunt.check_server()
    return jsonify(report.to_dict())


@bp.get('/image-url/<path:file_name>')
def image_url(file_name: str):
    return jsonify({'fileName': file_name, 'url': get_services().hunt.client.image_url(file_name)})
