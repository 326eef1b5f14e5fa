from flask import Blueprint, jsonify, request, current_app
from crossplay import get_synchronizer
from crossplay.identity import current_player
from crossplay.services.errors import (
    MalformedGridError,
    NetworkError,
    NotFoundError,
    NotHostError,
    PlayerNotInRoomError,
    RoomClosedError,
    RoomFullError,
    RoomNotFoundError,
)
from crossplay.services.puzzles import build_grid, get_puzzle, sanitize


rooms = Blueprint('rooms', __name__)

_ERROR_STATUS = {
    RoomNotFoundError: 404,
    RoomFullError: 409,
    RoomClosedError: 403,
    PlayerNotInRoomError: 403,
    NotHostError: 403,
}


def _result_response(result, player=None, status=200):
    if not result.ok:
        return jsonify(result.error.to_dict()), _ERROR_STATUS.get(type(result.error), 400)
    payload = {'room': result.room.to_dict() if result.room is not None else None}
    if player is not None:
        payload['player'] = player.to_dict()
    return jsonify(payload), status


@rooms.route('', methods=['POST'])
@rooms.route('/', methods=['POST'])
def create_room():
    data = request.get_json(silent=True) or {}
    try:
        puzzle = get_puzzle(puzzle_id=data.get('puzzle_id'), date=data.get('date'))
        grid = build_grid(puzzle)
    except NotFoundError as exc:
        return jsonify(exc.to_dict()), 404
    except MalformedGridError as exc:
        current_app.logger.error(f"[room-create] malformed puzzle={data.get('puzzle_id')}: {exc}")
        return jsonify(exc.to_dict()), 422
    except NetworkError as exc:
        return jsonify(exc.to_dict()), 503

    host = current_player(display_name=data.get('display_name'))
    result = get_synchronizer().create_room(host, grid, puzzle_id=puzzle['id'])
    if not result.ok:
        return _result_response(result)
    current_app.logger.info(f"[room-create] code={result.room.code} host={host.id}")
    return jsonify({
        'room': result.room.to_dict(),
        'player': host.to_dict(),
        'puzzle': sanitize(puzzle, grid),
    }), 201


@rooms.route('/join', methods=['POST'])
def join_room():
    data = request.get_json(silent=True) or {}
    code = (data.get('room_code') or data.get('code') or '').strip()
    if not code:
        return jsonify({'error': 'room_code is required'}), 400
    player = current_player(display_name=data.get('display_name'))
    result = get_synchronizer().join(code, player)
    return _result_response(result, player=player)


@rooms.route('/<string:code>/leave', methods=['POST'])
def leave_room(code):
    player = current_player()
    return _result_response(get_synchronizer().leave(code, player.id))


@rooms.route('/<string:code>/ready', methods=['POST'])
def set_ready(code):
    data = request.get_json(silent=True) or {}
    player = current_player()
    ready = data.get('ready', True)
    return _result_response(get_synchronizer().set_ready(code, player.id, bool(ready)))


@rooms.route('/<string:code>/close', methods=['POST'])
def close_room(code):
    player = current_player()
    return _result_response(get_synchronizer().close_room(code, player.id))


@rooms.route('/<string:code>/state', methods=['GET'])
def get_room_state(code):
    player = current_player()
    synchronizer = get_synchronizer()
    room = synchronizer.get_room(code)
    is_member = room is not None and room.has_player(player.id)
    snapshot = synchronizer.snapshot(code, player.id if is_member else None)
    if snapshot is None:
        return jsonify(RoomNotFoundError().to_dict()), 404
    return jsonify(snapshot)
