from flask import Blueprint, jsonify, request, current_app
from crossplay.identity import current_player
from crossplay.services.errors import MalformedGridError, NetworkError, NotFoundError
from crossplay.services.history import record_completion_async
from crossplay.services.puzzles import build_grid, get_puzzle, sanitize
from crossplay.services.session import LOCAL, Cursor, SolveSession
import threading
import uuid


solo = Blueprint('solo', __name__)

_solo_lock = threading.Lock()

# op -> argument coercions
_MOVES = {
    'select_cell': (int, int),
    'select_clue': (int, str),
    'step': (int, int),
    'type_letter': (str,),
    'backspace': (),
    'delete': (),
    'reveal_cell': (),
    'reveal_word': (int, str),
    'reveal_all': (),
    'check_word': (int, str),
    'check_all': (),
}


def _sessions() -> dict:
    return current_app.extensions['crossplay.solo']


def _serialize(result):
    if isinstance(result, Cursor):
        return result.to_dict()
    if isinstance(result, list):
        return [list(p) for p in result]
    return result


def _owned(session_id, player_id):
    entry = _sessions().get(session_id)
    if entry is None or entry['player_id'] != player_id:
        return None
    return entry


@solo.route('', methods=['POST'])
@solo.route('/', methods=['POST'])
def start_solo():
    data = request.get_json(silent=True) or {}
    try:
        puzzle = get_puzzle(puzzle_id=data.get('puzzle_id'), date=data.get('date'))
        grid = build_grid(puzzle)
    except NotFoundError as exc:
        return jsonify(exc.to_dict()), 404
    except MalformedGridError as exc:
        return jsonify(exc.to_dict()), 422
    except NetworkError as exc:
        return jsonify(exc.to_dict()), 503

    player = current_player()
    session = SolveSession(grid, puzzle_id=puzzle['id'])
    session_id = uuid.uuid4().hex
    limit = int(current_app.config.get('SOLO_SESSION_LIMIT', 500))
    with _solo_lock:
        sessions = _sessions()
        # Drop the oldest sessions once the cap is reached
        while sessions and len(sessions) >= limit:
            evicted = next(iter(sessions))
            sessions.pop(evicted)
            current_app.logger.info(f"[solo-evict] session={evicted}")
        sessions[session_id] = {'session': session, 'player_id': player.id, 'recorded': False}
    current_app.logger.info(f"[solo-start] session={session_id} player={player.id} puzzle={puzzle['id']}")
    return jsonify({
        'session_id': session_id,
        'puzzle': sanitize(puzzle, grid),
        'state': session.snapshot(LOCAL),
    }), 201


@solo.route('/<string:session_id>', methods=['GET'])
def get_solo(session_id):
    entry = _owned(session_id, current_player().id)
    if entry is None:
        return jsonify({'error': 'Session not found'}), 404
    return jsonify({'session_id': session_id, 'state': entry['session'].snapshot(LOCAL)})


@solo.route('/<string:session_id>/moves', methods=['POST'])
def post_move(session_id):
    player = current_player()
    entry = _owned(session_id, player.id)
    if entry is None:
        return jsonify({'error': 'Session not found'}), 404
    data = request.get_json(silent=True) or {}
    op = data.get('op')
    if op not in _MOVES:
        return jsonify({'error': f'Unknown move {op!r}'}), 400
    raw_args = data.get('args') or []
    coercions = _MOVES[op]
    if not isinstance(raw_args, list) or len(raw_args) != len(coercions):
        return jsonify({'error': f'{op} takes {len(coercions)} argument(s)'}), 400
    try:
        args = [coerce(value) for coerce, value in zip(coercions, raw_args)]
    except (TypeError, ValueError):
        return jsonify({'error': f'Invalid arguments for {op}'}), 400

    session = entry['session']
    with _solo_lock:
        result = getattr(session, op)(*args)
        record = session.solved and not entry['recorded']
        if record:
            entry['recorded'] = True
    if record:
        record_completion_async(
            current_app._get_current_object(),
            puzzle_id=session.puzzle_id,
            player_id=player.id,
            time_taken_seconds=session.elapsed_seconds,
            move_count=session.move_count,
            solved=True,
            hints_used=session.hints_used,
        )
    return jsonify({'result': _serialize(result), 'state': session.snapshot(LOCAL)})
