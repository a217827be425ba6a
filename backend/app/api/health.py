"""Health check endpoint."""
from flask import Blueprint, jsonify

from ..services.container import get_services

bp = Blueprint('health', __name__)


@bp.get('/api/health')
def health():
    services = get_services()
    return jsonify({
        'status': 'ok',
        'serverConfigured': services.hunt.client.configured,
        'activeSessions': services.sessions.active_count(),
    })
