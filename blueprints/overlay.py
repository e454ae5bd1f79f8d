"""Broadcast overlay: the scoreboard page and the live state it polls."""

import uuid

from flask import Blueprint, current_app, jsonify, render_template, request

overlay_bp = Blueprint('overlay', __name__, url_prefix='/overlay')


def _synchronizer():
    return current_app.extensions['live_sync']


@overlay_bp.route('')
def scoreboard():
    """Transparent scoreboard meant for capture by broadcast software"""
    synchronizer = _synchronizer()
    # each page load is its own view; it reports hidden on load if opened in the background
    viewer_id = uuid.uuid4().hex
    synchronizer.set_visible(True, viewer=viewer_id)
    poll_ms = current_app.config['OVERLAY_POLL_INTERVAL_MS']
    return render_template(
        'overlay.html', poll_ms=poll_ms, viewer_id=viewer_id, state=synchronizer.state()
    )


@overlay_bp.route('/state')
def state():
    synchronizer = _synchronizer()
    viewer = request.args.get('viewer', '').strip()
    if viewer:
        synchronizer.touch_viewer(viewer)
    return jsonify(synchronizer.state().to_dict())


@overlay_bp.route('/visibility', methods=['POST'])
def visibility():
    payload = request.get_json(silent=True) or {}
    if 'visible' not in payload or not isinstance(payload['visible'], bool):
        return jsonify({'error': 'visible must be true or false'}), 400

    synchronizer = _synchronizer()
    viewer = payload.get('viewer')
    if viewer is None:
        synchronizer.set_visible(payload['visible'])
    elif isinstance(viewer, str) and viewer.strip():
        synchronizer.set_visible(payload['visible'], viewer=viewer.strip())
    else:
        return jsonify({'error': 'viewer must be a non-empty string'}), 400
    return jsonify(synchronizer.state().to_dict())


@overlay_bp.route('/refetch', methods=['POST'])
def refetch():
    synchronizer = _synchronizer()
    issued = synchronizer.refetch()
    body = synchronizer.state().to_dict()
    body['fetched'] = issued
    return jsonify(body)
