"""
AETHER Patch — Addressing Blueprint
Routes: /api/patch/*
Dependencies: patch_manager
"""

from flask import Blueprint, jsonify, request

from core.addressing import AddressValidationError, CoreApiError, EntityKind

patch_bp = Blueprint('patch', __name__)

_patch_manager = None


def init_app(patch_manager):
    """Initialize blueprint with required dependencies."""
    global _patch_manager
    _patch_manager = patch_manager


def _fail(error, status):
    return jsonify({'success': False, 'error': str(error)}), status


def _int_field(data, name, default=None):
    value = data.get(name, default)
    if value is None:
        raise AddressValidationError(f"'{name}' is required")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise AddressValidationError(f"'{name}' must be an integer, got {value!r}")


@patch_bp.errorhandler(AddressValidationError)
def handle_validation_error(e):
    body = e.to_dict()
    body['success'] = False
    return jsonify(body), 400


@patch_bp.errorhandler(ValueError)
def handle_bad_request(e):
    return _fail(e, 400)


@patch_bp.errorhandler(CoreApiError)
def handle_core_error(e):
    return _fail(f"Core unavailable: {e}", 502)


@patch_bp.route('/api/patch/health', methods=['GET'])
def patch_health():
    return jsonify({'status': 'ok', 'core_url': _patch_manager.client.base_url})


@patch_bp.route('/api/patch/conflicts', methods=['POST'])
def check_conflicts():
    """
    Check a candidate against fixtures, or against nodes with "kind": "node".

    {"universe": 1, "start": 1, "width": 4, "exclude_id": "par_1"}
    or {"universe": 1, "channels": [1, 2, 9]}
    """
    data = request.get_json() or {}
    universe = _int_field(data, 'universe', 1)
    exclude_id = data.get('exclude_id')
    kind = EntityKind(data.get('kind') or 'fixture')
    _patch_manager.refresh()
    if 'channels' in data:
        channels = [int(ch) for ch in data.get('channels') or []]
        report = _patch_manager.check_channels(universe, channels, exclude_id, kind)
    else:
        report = _patch_manager.check_range(
            universe, _int_field(data, 'start'), _int_field(data, 'width', 1),
            exclude_id, kind
        )
    result = report.to_dict()
    result['success'] = True
    return jsonify(result)


@patch_bp.route('/api/patch/allocate', methods=['POST'])
def allocate():
    """First-fit placement: {"universe": 1, "width": 4, "quantity": 2}"""
    data = request.get_json() or {}
    _patch_manager.refresh()
    result = _patch_manager.plan_allocation(
        _int_field(data, 'universe', 1),
        _int_field(data, 'width'),
        _int_field(data, 'quantity', 1),
        data.get('exclude_id'),
    )
    return jsonify(result.to_dict())


@patch_bp.route('/api/patch/fixtures/batch', methods=['POST'])
def add_fixtures():
    """Auto-place and create fixtures: {"name", "universe", "width", "quantity"}"""
    data = request.get_json() or {}
    name = (data.get('name') or '').strip()
    if not name:
        return _fail('Fixture name is required', 400)
    outcome = _patch_manager.add_fixtures(
        name,
        _int_field(data, 'universe', 1),
        _int_field(data, 'width'),
        _int_field(data, 'quantity', 1),
        color=data.get('color'),
        fixture_type=data.get('type'),
    )
    if not outcome.allocation.is_complete():
        return jsonify(outcome.to_dict()), 409
    return jsonify(outcome.to_dict())


@patch_bp.route('/api/patch/suggest-node-range', methods=['POST'])
def suggest_range():
    data = request.get_json() or {}
    _patch_manager.refresh()
    suggested = _patch_manager.suggest_node_range(
        _int_field(data, 'universe', 1), data.get('exclude_id')
    )
    return jsonify({'success': True, 'range': suggested.to_dict() if suggested else None})


@patch_bp.route('/api/patch/nodes/<node_id>/pair', methods=['POST'])
def pair_node(node_id):
    """
    Pair or reconfigure a node, warning on overlap.

    {"universe": 2, "channel_start": 1, "channel_end": 256, "confirm": false}
    """
    data = request.get_json() or {}
    try:
        outcome = _patch_manager.pair_node(
            node_id,
            _int_field(data, 'universe', 1),
            _int_field(data, 'channel_start', 1),
            _int_field(data, 'channel_end', 512),
            name=data.get('name'),
            confirm=data.get('confirm') is True,
        )
    except KeyError:
        return _fail('Node not found', 404)
    if outcome.needs_confirmation:
        return jsonify(outcome.to_dict()), 409
    return jsonify(outcome.to_dict())


@patch_bp.route('/api/patch/rebalance', methods=['POST'])
def rebalance():
    data = request.get_json() or {}
    plan = _patch_manager.rebalance_nodes(
        _int_field(data, 'universe', 1), data.get('exclude_id')
    )
    result = plan.to_dict()
    result['success'] = True
    return jsonify(result)


@patch_bp.route('/api/patch/scan', methods=['GET'])
def scan():
    """Fixtures overlapping fixtures and nodes overlapping nodes, per universe."""
    _patch_manager.refresh()
    conflicts = _patch_manager.scan_conflicts()
    return jsonify({
        'success': True,
        'universes': {
            str(universe): [o.to_dict() for o in owners]
            for universe, owners in conflicts.items()
        },
        'total': sum(len(owners) for owners in conflicts.values()),
    })
