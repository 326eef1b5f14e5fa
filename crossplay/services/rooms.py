"""Room registry: live rooms by join code, membership and ready flags.

Room-level failures are returned inside a :class:`RoomResult` rather than
raised, so a bad code or a full room never unwinds past the registry.
"""

import logging
import random
import time
from dataclasses import dataclass, field
from functools import wraps
from typing import Callable, Dict, List, Optional

from .errors import (
    NotHostError,
    PlayerNotInRoomError,
    RoomClosedError,
    RoomError,
    RoomFullError,
    RoomNotFoundError,
)

logger = logging.getLogger(__name__)

CODE_ALPHABET = 'ABCDEFGHJKLMNPQRSTUVWXYZ23456789'
MAX_CODE_ATTEMPTS = 50

WAITING = 'waiting'
STARTING = 'starting'
IN_PROGRESS = 'in_progress'
ENDED = 'ended'

PLAYER_COLORS = [
    '#FF6B6B', '#4ECDC4', '#45B7D1', '#96CEB4',
    '#FFEAA7', '#DDA0DD', '#98D8C8', '#F7DC6F',
]


@dataclass
class Player:
    id: str
    display_name: str
    ready: bool = False
    color: str = ''

    def to_dict(self):
        return {
            'id': self.id,
            'display_name': self.display_name,
            'ready': self.ready,
            'color': self.color,
        }


@dataclass
class Room:
    code: str
    host_id: str
    puzzle_id: Optional[str] = None
    status: str = WAITING
    players: Dict[str, Player] = field(default_factory=dict)  # join order
    created_at: float = field(default_factory=time.time)

    def has_player(self, player_id) -> bool:
        return player_id in self.players

    def player_list(self) -> List[Player]:
        return list(self.players.values())

    def all_ready(self) -> bool:
        return bool(self.players) and all(p.ready for p in self.players.values())

    def to_dict(self):
        return {
            'code': self.code,
            'host_id': self.host_id,
            'puzzle_id': self.puzzle_id,
            'status': self.status,
            'players': [p.to_dict() for p in self.players.values()],
        }


@dataclass
class RoomResult:
    room: Optional[Room] = None
    error: Optional[RoomError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> Room:
        if self.error is not None:
            raise self.error
        return self.room


def _room_result(method):
    """Run a registry operation, folding RoomError into a failed RoomResult."""
    @wraps(method)
    def wrapper(self, *args, **kwargs):
        try:
            return RoomResult(room=method(self, *args, **kwargs))
        except RoomError as exc:
            logger.info(f"[room-reject] op={method.__name__} error={type(exc).__name__} args={args}")
            return RoomResult(error=exc)
    return wrapper


def generate_room_code(length=6, rng=random) -> str:
    return ''.join(rng.choice(CODE_ALPHABET) for _ in range(length))


class RoomRegistry:
    def __init__(self, max_players=8, code_length=6, code_factory: Optional[Callable[[], str]] = None):
        self.max_players = max_players
        self._code_factory = code_factory or (lambda: generate_room_code(code_length, random.SystemRandom()))
        self._rooms: Dict[str, Room] = {}

    def _new_code(self) -> str:
        for _ in range(MAX_CODE_ATTEMPTS):
            code = self._code_factory().upper()
            if code not in self._rooms:
                return code
        raise RoomError('Could not allocate a unique room code')

    def _lookup(self, code) -> Room:
        room = self._rooms.get((code or '').upper())
        if room is None:
            raise RoomNotFoundError()
        return room

    @staticmethod
    def _member(room: Room, player_id) -> Player:
        player = room.players.get(player_id)
        if player is None:
            raise PlayerNotInRoomError()
        return player

    def is_full(self, room: Room) -> bool:
        return len(room.players) >= self.max_players

    def _admit(self, room: Room, player: Player) -> None:
        if self.is_full(room):
            raise RoomFullError()
        player.ready = False
        player.color = PLAYER_COLORS[len(room.players) % len(PLAYER_COLORS)]
        room.players[player.id] = player

    # ---- lookups ----

    def get_room(self, code) -> Optional[Room]:
        return self._rooms.get((code or '').upper())

    def live_codes(self) -> List[str]:
        return list(self._rooms)

    def evict(self, code) -> Optional[Room]:
        return self._rooms.pop((code or '').upper(), None)

    # ---- operations ----

    @_room_result
    def create_room(self, host: Player, puzzle_id=None) -> Room:
        code = self._new_code()
        room = Room(code=code, host_id=host.id, puzzle_id=puzzle_id)
        self._admit(room, host)
        self._rooms[code] = room
        logger.info(f"[room-create] code={code} host={host.id} puzzle={puzzle_id}")
        return room

    @_room_result
    def join_room(self, code, player: Player) -> Room:
        room = self._lookup(code)
        if room.has_player(player.id):
            return room
        if room.status != WAITING:
            raise RoomClosedError()
        self._admit(room, player)
        logger.info(f"[room-join] code={room.code} player={player.id} count={len(room.players)}")
        return room

    @_room_result
    def readmit(self, code, player: Player) -> Room:
        """Put a former member back regardless of status, capacity permitting."""
        room = self._lookup(code)
        if not room.has_player(player.id):
            self._admit(room, player)
        return room

    @_room_result
    def leave_room(self, code, player_id) -> Room:
        room = self._lookup(code)
        self._member(room, player_id)
        del room.players[player_id]
        if not room.players:
            room.status = ENDED
            self._rooms.pop(room.code, None)
            logger.info(f"[room-evict] code={room.code} reason=empty")
            return room
        if room.host_id == player_id:
            room.host_id = next(iter(room.players))
            logger.info(f"[room-host] code={room.code} host={room.host_id}")
        logger.info(f"[room-leave] code={room.code} player={player_id} count={len(room.players)}")
        return room

    @_room_result
    def set_ready(self, code, player_id, ready: bool) -> Room:
        room = self._lookup(code)
        self._member(room, player_id).ready = bool(ready)
        return room

    @_room_result
    def close_room(self, code, player_id) -> Room:
        room = self._lookup(code)
        self._member(room, player_id)
        if room.host_id != player_id:
            raise NotHostError()
        room.status = ENDED
        self._rooms.pop(room.code, None)
        logger.info(f"[room-evict] code={room.code} reason=closed")
        return room
