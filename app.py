import logging

from flask import Flask, request, jsonify
from flask_cors import CORS

from config import Config, configure_logging
from allocation import AllocationEngine
from api_client import BackendClient
from cache import TransferCache
from errors import AllocationInvariantError, BackendError, ReconcilerError
from reconciler import SettlementReconciler
from runner import BackgroundLoop
from utils import amount_to_thousands, current_date, thousands_to_amount, validate_expense_form

logger = logging.getLogger(__name__)

app = Flask(__name__)
app.config.from_object(Config)
CORS(app)

# Backend collaborators. Everything async runs on loop_runner's single loop,
# so reconcilers and the cache are shared safely between request threads.
backend = BackendClient()
loop_runner = BackgroundLoop()


async def _fetch_transfers(key):
    return await backend.fetch_transfers(key)


transfer_cache = TransferCache(_fetch_transfers)
reconcilers = {}


def get_reconciler(key) -> SettlementReconciler:
    """One reconciler per expense id (None for the group-wide list); call on the loop"""
    if key not in reconcilers:
        reconcilers[key] = SettlementReconciler(transfer_cache, backend, key)
    return reconcilers[key]


def build_engine(data: dict) -> AllocationEngine:
    """
    Drive an allocation engine from a form payload.
    participants may be plain ids or {"user_id", "amount"} objects;
    amounts are only used when equal_split is false. With in_thousands
    set, every amount is entered in thousands (50 means 50000).
    """
    in_thousands = bool(data.get('in_thousands'))

    def amount_of(raw):
        if in_thousands and raw not in (None, ''):
            return thousands_to_amount(raw)
        return raw

    engine = AllocationEngine()

    if data.get('payer_id') not in (None, ''):
        engine.set_payer(int(data['payer_id']))

    entries = [p if isinstance(p, dict) else {'user_id': p} for p in data.get('participants') or []]
    engine.set_participants(int(e['user_id']) for e in entries)
    engine.set_total(amount_of(data.get('amount')))

    if not data.get('equal_split', True):
        for entry in entries:
            engine.set_manual_share(int(entry['user_id']), amount_of(entry.get('amount')))

    return engine


def _engine_to_dict(engine: AllocationEngine) -> dict:
    return {
        'mode': engine.mode.value,
        'payer_id': engine.payer_id,
        'total': float(engine.total) if engine.total is not None else None,
        'total_thousands': amount_to_thousands(engine.total),
        'shares': [
            {
                'user_id': s.participant_id,
                'amount': float(s.amount) if s.amount is not None else None,
                'thousands': amount_to_thousands(s.amount),
                'overridden': s.overridden
            }
            for s in engine.participant_shares()
        ],
        'allocated_total': float(engine.allocated_total),
        'difference': float(engine.difference)
    }


def _transfers_response(reconciler: SettlementReconciler) -> dict:
    return {
        'state': reconciler.state.value,
        'transfers': [t.to_dict() for t in reconciler.current_view()],
        'completed_count': reconciler.completed_count(),
        'all_completed': reconciler.all_completed()
    }


def _backend_error(e: BackendError, what: str):
    logger.error("Error %s: %s", what, e)
    if e.status == 404:
        return jsonify({'error': 'Not found'}), 404
    return jsonify({'error': f'Backend error: {e}'}), 502


@app.route('/api/users', methods=['GET'])
def get_users():
    """Group members, for payer and participant pickers"""
    try:
        users = loop_runner.run(backend.get_users())
    except BackendError as e:
        return _backend_error(e, "loading users")

    return jsonify({
        'success': True,
        'users': [u.to_dict() for u in users]
    }), 200


@app.route('/api/allocations/preview', methods=['POST'])
def preview_allocation():
    """Compute shares for a form without submitting it"""
    data = request.get_json(silent=True) or {}
    try:
        engine = build_engine(data)
    except (AllocationInvariantError, ValueError, KeyError, TypeError) as e:
        return jsonify({'error': f'Invalid allocation: {e}'}), 400

    return jsonify({
        'success': True,
        'allocation': _engine_to_dict(engine),
        'validation': engine.validate().to_dict()
    }), 200


def _submit(data: dict, expense_id=None):
    try:
        engine = build_engine(data)
    except (AllocationInvariantError, ValueError, KeyError, TypeError) as e:
        return jsonify({'error': f'Invalid allocation: {e}'}), 400

    name = data.get('name', '')
    result = validate_expense_form(name, engine)
    if not result:
        return jsonify({'error': result.message, 'validation': result.to_dict()}), 400

    expense = engine.to_expense(name, data.get('date') or current_date(), expense_id=expense_id)
    try:
        saved = loop_runner.run(backend.submit_expense(expense))
    except BackendError as e:
        return _backend_error(e, "saving expense")

    return jsonify({'success': True, 'expense': saved.to_dict()}), 201 if expense_id is None else 200


@app.route('/api/expenses', methods=['POST'])
def create_expense():
    """Validate and create a new expense"""
    return _submit(request.get_json(silent=True) or {})


@app.route('/api/expenses', methods=['GET'])
def get_expenses():
    """All stored expenses"""
    try:
        expenses = loop_runner.run(backend.get_expenses())
    except BackendError as e:
        return _backend_error(e, "loading expenses")

    return jsonify({
        'success': True,
        'expenses': [e.to_dict() for e in expenses]
    }), 200


@app.route('/api/expenses/<int:expense_id>', methods=['GET'])
def get_expense(expense_id):
    """A stored expense plus the allocation state its edit form starts from"""
    try:
        expense = loop_runner.run(backend.fetch_expense(expense_id))
    except BackendError as e:
        return _backend_error(e, f"loading expense {expense_id}")

    engine = AllocationEngine.from_expense(expense)
    return jsonify({
        'success': True,
        'expense': expense.to_dict(),
        'allocation': _engine_to_dict(engine)
    }), 200


@app.route('/api/expenses/<int:expense_id>', methods=['PUT'])
def update_expense(expense_id):
    """Validate and update an existing expense"""
    return _submit(request.get_json(silent=True) or {}, expense_id=expense_id)


@app.route('/api/expenses/<int:expense_id>', methods=['DELETE'])
def delete_expense(expense_id):
    """Delete an expense"""
    try:
        loop_runner.run(backend.delete_expense(expense_id))
    except BackendError as e:
        return _backend_error(e, f"deleting expense {expense_id}")

    return jsonify({
        'success': True,
        'message': 'Expense deleted successfully'
    }), 200


async def _load_view(key):
    await transfer_cache.refresh(key)
    return _transfers_response(get_reconciler(key))


async def _toggle(key, transfer_id, paid):
    reconciler = get_reconciler(key)
    if key not in transfer_cache:
        await transfer_cache.refresh(key)
    success = await reconciler.toggle_paid(transfer_id, paid)
    return success, _transfers_response(reconciler)


def _list_transfers(key):
    try:
        view = loop_runner.run(_load_view(key))
    except BackendError as e:
        return _backend_error(e, f"loading transfers for {key!r}")

    return jsonify({'success': True, **view}), 200


def _toggle_payment(key, transfer_id):
    data = request.get_json(silent=True) or {}
    if not isinstance(data.get('paid'), bool):
        return jsonify({'error': 'Field "paid" must be true or false'}), 400

    try:
        success, view = loop_runner.run(_toggle(key, transfer_id, data['paid']))
    except BackendError as e:
        return _backend_error(e, f"loading transfers for {key!r}")
    except ReconcilerError as e:
        return jsonify({'error': str(e)}), 404

    body = {'success': success, **view}
    if not success:
        body['error'] = 'Could not update payment status'
    return jsonify(body), 200 if success else 502


@app.route('/api/expenses/<int:expense_id>/transfers', methods=['GET'])
def get_expense_transfers(expense_id):
    """Settlement transfers for one expense"""
    return _list_transfers(expense_id)


@app.route('/api/expenses/<int:expense_id>/transfers/<int:transfer_id>/payment', methods=['POST'])
def set_expense_transfer_payment(expense_id, transfer_id):
    """Mark one of an expense's transfers as paid or unpaid"""
    return _toggle_payment(expense_id, transfer_id)


@app.route('/api/transfers', methods=['GET'])
def get_group_transfers():
    """Settlement transfers for the whole group"""
    return _list_transfers(None)


@app.route('/api/transfers/<int:transfer_id>/payment', methods=['POST'])
def set_group_transfer_payment(transfer_id):
    """Mark a group-wide transfer as paid or unpaid"""
    return _toggle_payment(None, transfer_id)


@app.errorhandler(404)
def not_found(error):
    return jsonify({'error': 'Endpoint not found'}), 404


@app.errorhandler(500)
def internal_error(error):
    return jsonify({'error': 'Internal server error'}), 500


if __name__ == '__main__':
    configure_logging()
    logger.info("Starting Expense Splitter client on port %s", Config.PORT)
    logger.info("Backend: %s", Config.API_BASE_URL)
    app.run(host='0.0.0.0', port=Config.PORT, debug=Config.DEBUG, threaded=True)
