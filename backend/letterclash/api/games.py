from flask import Blueprint, jsonify, request, current_app
from letterclash.exceptions import RoomNotFound
from letterclash.services.games.inputs import sanitize_letter, to_number
import math

games = Blueprint('games', __name__)


def _state():
    return current_app.extensions['letterclash']


@games.route('/evaluate-turn', methods=['POST'])
def evaluate_turn():
    """
    Scores a turn without a room, using the same evaluator rooms use.
    """
    data = request.get_json(silent=True) or {}
    if not isinstance(data, dict):
        return jsonify({'ok': False, 'error': 'Expected a JSON object.'}), 400

    letter = sanitize_letter(data.get('letter'))
    if not letter:
        return jsonify({'ok': False, 'error': 'Invalid letter.'}), 400

    strategies = _state()['strategies']
    strategy_name = data.get('strategy')
    if strategy_name is None:
        scoring = _state()['scoring']
    elif strategy_name in strategies:
        scoring = strategies[strategy_name]
    else:
        return jsonify({'ok': False, 'error': f"Unknown strategy. Use one of: {', '.join(sorted(strategies))}."}), 400

    answers = data.get('answers') if isinstance(data.get('answers'), dict) else {}
    round_seconds = int(current_app.config.get('ROUND_TIME_SECONDS', 60))
    elapsed_seconds = max(0, min(round_seconds, to_number(data.get('elapsedSeconds'), 0)))
    streak_before = max(0, int(math.floor(to_number(data.get('streakBefore'), 0))))

    evaluation = scoring.evaluate(letter, answers, elapsed_seconds, streak_before)
    current_app.logger.info(
        f"[evaluate] letter={letter} strategy={scoring.name} total={evaluation.total} valid={evaluation.valid_count}"
    )
    return jsonify({'ok': True, 'evaluation': evaluation.to_dict()})


@games.route('/rooms/<string:room_id>', methods=['GET'])
def get_room_state(room_id):
    """
    Returns the current snapshot of a room, as broadcast in room:update.
    """
    gateway = _state()['gateway']
    try:
        payload = gateway.snapshot(room_id)
    except RoomNotFound as exc:
        return jsonify({'ok': False, 'error': exc.message}), 404
    payload['roundSeconds'] = int(current_app.config.get('ROUND_TIME_SECONDS', 60))
    return jsonify(payload)
