from flask_socketio import join_room, leave_room, emit
from crossplay import socketio, get_synchronizer
from crossplay.identity import current_player
from crossplay.services.events import Event
from flask import current_app, request
from typing import Dict, Any


def _room_name(code: str) -> str:
    return f"room:{code.upper()}"


def broadcast_event(code: str, event: Event) -> None:
    """Synchronizer listener: fan an event out to every socket in the room."""
    # Use socketio.emit since this may be called from a background task
    socketio.emit(event.type, event.to_dict(), to=_room_name(code), namespace='/ws')


def handle_connect():
    emit('connected', {'message': 'Connected to /ws'})


def handle_disconnect(reason=None):
    ctx = _sid_to_ctx.pop(_get_sid(), None)
    if not ctx:
        return
    current_app.logger.info(f"[socket-disconnect] code={ctx['room_code']} player={ctx['player_id']} reason={reason}")
    get_synchronizer().disconnect(ctx['room_code'], ctx['player_id'])


def _bind(code: str, player_id: str) -> None:
    join_room(_room_name(code))
    _sid_to_ctx[_get_sid()] = {'room_code': code.upper(), 'player_id': player_id}


def _emit_state(code: str, player_id: str) -> None:
    emit('room_state', get_synchronizer().snapshot(code, player_id) or {})


def handle_join_room(data):
    data = data or {}
    code = (data.get('room_code') or '').strip()
    if not code:
        emit('error', {'message': 'room_code is required'})
        return
    player = current_player(display_name=data.get('display_name'))
    _bind(code, player.id)
    result = get_synchronizer().join(code, player)
    if not result.ok:
        leave_room(_room_name(code))
        _sid_to_ctx.pop(_get_sid(), None)
        emit('error', result.error.to_dict())
        return
    _emit_state(code, player.id)


def handle_reconnect_room(data):
    data = data or {}
    code = (data.get('room_code') or '').strip()
    if not code:
        emit('error', {'message': 'room_code is required'})
        return
    player = current_player()
    _bind(code, player.id)
    result = get_synchronizer().reconnect(code, player)
    if not result.ok:
        leave_room(_room_name(code))
        _sid_to_ctx.pop(_get_sid(), None)
        emit('error', result.error.to_dict())
        return
    _emit_state(code, player.id)


def handle_leave_room(data=None):
    ctx = _sid_to_ctx.pop(_get_sid(), None)
    if not ctx:
        emit('error', {'message': 'Not in a room'})
        return
    leave_room(_room_name(ctx['room_code']))
    get_synchronizer().leave(ctx['room_code'], ctx['player_id'])
    emit('left', {'room_code': ctx['room_code']})


def handle_set_ready(data):
    ctx = _context()
    if not ctx:
        return
    result = get_synchronizer().set_ready(ctx['room_code'], ctx['player_id'], bool((data or {}).get('ready', True)))
    if not result.ok:
        emit('error', result.error.to_dict())


def handle_send_message(data):
    ctx = _context()
    if not ctx:
        return
    message = get_synchronizer().send_message(ctx['room_code'], ctx['player_id'], (data or {}).get('text'))
    if message is None:
        emit('error', {'message': 'Message not sent'})


def handle_send_reaction(data):
    ctx = _context()
    if not ctx:
        return
    data = data or {}
    reaction = get_synchronizer().send_reaction(ctx['room_code'], ctx['player_id'],
                                                data.get('clue_id'), data.get('emoji'))
    if reaction is None:
        emit('error', {'message': 'Reaction not sent'})


def handle_ping(data):
    emit('pong', data or {})

# ---- Solving operations ----

def handle_select_cell(data):
    _apply('select_cell', data, ('row', int), ('col', int))


def handle_select_clue(data):
    _apply('select_clue', data, ('number', int), ('direction', str))


def handle_step(data):
    _apply('step', data, ('delta_row', int), ('delta_col', int))


def handle_type_letter(data):
    _apply('type_letter', data, ('letter', str))


def handle_backspace(data=None):
    _apply('backspace', data)


def handle_delete(data=None):
    _apply('delete', data)


def handle_reveal_cell(data=None):
    _apply('reveal_cell', data)


def handle_reveal_word(data):
    _apply('reveal_word', data, ('number', int), ('direction', str))


def handle_reveal_all(data=None):
    _apply('reveal_all', data)

# ---- Socket context helpers ----

_sid_to_ctx: Dict[str, Dict[str, Any]] = {}

def _get_sid() -> str:
    # type: ignore: request.sid exists in Socket.IO context
    return request.sid  # type: ignore

def _context():
    ctx = _sid_to_ctx.get(_get_sid())
    if not ctx:
        emit('error', {'message': 'Join a room first'})
    return ctx

def _apply(op: str, data, *fields) -> None:
    """Run a solve operation for this socket's player. Results arrive as broadcasts."""
    ctx = _context()
    if not ctx:
        return
    data = data or {}
    try:
        args = [coerce(data[name]) for name, coerce in fields]
    except (KeyError, TypeError, ValueError):
        emit('error', {'message': f"{op} requires {', '.join(name for name, _ in fields)}"})
        return
    get_synchronizer().apply(ctx['room_code'], ctx['player_id'], op, *args)


_HANDLERS = {
    'connect': handle_connect,
    'disconnect': handle_disconnect,
    'join_room': handle_join_room,
    'reconnect_room': handle_reconnect_room,
    'leave_room': handle_leave_room,
    'set_ready': handle_set_ready,
    'select_cell': handle_select_cell,
    'select_clue': handle_select_clue,
    'step': handle_step,
    'type_letter': handle_type_letter,
    'backspace': handle_backspace,
    'delete': handle_delete,
    'reveal_cell': handle_reveal_cell,
    'reveal_word': handle_reveal_word,
    'reveal_all': handle_reveal_all,
    'send_message': handle_send_message,
    'send_reaction': handle_send_reaction,
    'ping': handle_ping,
}


def register_socketio_handlers(testing: bool = False) -> None:
    """Register Socket.IO event handlers.

    Always register on namespace '/ws'. When testing is True, also mirror
    handlers on the default namespace '/' to accommodate the test harness.
    """
    for name, handler in _HANDLERS.items():
        socketio.on_event(name, handler, namespace='/ws')

    if testing:
        # Test-only mirror on default namespace
        for name, handler in _HANDLERS.items():
            socketio.on_event(name, handler, namespace='/')
