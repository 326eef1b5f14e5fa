from flask import Blueprint, jsonify, request, current_app
from crossplay.identity import current_player
from crossplay.services.errors import MalformedGridError, NetworkError, NotFoundError
from crossplay.services.history import record_completion
from crossplay.services.puzzles import get_puzzle, sanitize


puzzles = Blueprint('puzzles', __name__)


def _puzzle_response(puzzle_id=None, date=None):
    try:
        puzzle = get_puzzle(puzzle_id=puzzle_id, date=date)
        return jsonify(sanitize(puzzle))
    except NotFoundError as exc:
        return jsonify(exc.to_dict()), 404
    except MalformedGridError as exc:
        current_app.logger.error(f"[puzzle-malformed] id={puzzle_id} date={date}: {exc}")
        return jsonify(exc.to_dict()), 422
    except NetworkError as exc:
        return jsonify(exc.to_dict()), 503


@puzzles.route('/daily', methods=['GET'])
def get_daily_puzzle():
    return _puzzle_response(date=request.args.get('date'))


@puzzles.route('/<string:puzzle_id>', methods=['GET'])
def get_puzzle_by_id(puzzle_id):
    return _puzzle_response(puzzle_id=puzzle_id)


@puzzles.route('/history', methods=['POST'])
def post_history():
    data = request.get_json(silent=True) or {}
    puzzle_id = data.get('puzzle_id')
    if not puzzle_id:
        return jsonify({'error': 'puzzle_id is required'}), 400
    try:
        time_taken = int(data.get('time_taken_seconds') or 0)
        move_count = int(data.get('move_count') or 0)
        hints_used = int(data.get('hints_used') or 0)
    except (TypeError, ValueError):
        return jsonify({'error': 'time_taken_seconds, move_count and hints_used must be integers'}), 400

    player = current_player()
    entry = record_completion(
        current_app._get_current_object(),
        puzzle_id=puzzle_id,
        player_id=player.id,
        time_taken_seconds=time_taken,
        move_count=move_count,
        solved=bool(data.get('solved')),
        hints_used=hints_used,
    )
    if entry is None:
        return jsonify({'error': 'History is temporarily unavailable'}), 503
    return jsonify(entry.to_dict()), 201
