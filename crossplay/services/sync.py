"""Room synchronizer: the single authority for every live room.

All mutations of a room (membership, ready flags, the shared solve session)
go through one re-entrant lock per room, so every client observes them in
the same order. Each mutation is published as an :class:`Event` on the
room's channel and handed to registered listeners (the Socket.IO
broadcaster in the running app).
"""

import logging
import threading
import time
import uuid
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Set

from .errors import RoomClosedError, RoomFullError, RoomNotFoundError
from .events import Event, RoomChannel, Subscription
from .grid import Grid
from .rooms import ENDED, IN_PROGRESS, STARTING, WAITING, Player, Room, RoomRegistry, RoomResult
from .session import SolveSession

logger = logging.getLogger(__name__)

SOLVING_OPS = frozenset({
    'select_cell', 'select_clue', 'step',
    'type_letter', 'backspace', 'delete', 'set_cell',
    'reveal_cell', 'reveal_word', 'reveal_all',
})

MESSAGE_HISTORY = 50
MESSAGE_MAX_LENGTH = 500
REACTION_MAX_LENGTH = 16


@dataclass
class _RoomContext:
    grid: Grid
    channel: RoomChannel
    lock: threading.RLock = field(default_factory=threading.RLock)
    session: Optional[SolveSession] = None
    start_token: int = 0
    grace_deadline: Optional[float] = None
    members: Set[str] = field(default_factory=set)
    messages: List[dict] = field(default_factory=list)
    reactions: Dict[tuple, str] = field(default_factory=dict)


class RoomSynchronizer:
    def __init__(self, registry: Optional[RoomRegistry] = None, min_players=2,
                 start_countdown=0, reconnect_grace=60, clock=time.monotonic,
                 spawn: Optional[Callable] = None, sleep: Callable = time.sleep):
        self.registry = registry or RoomRegistry()
        self.min_players = min_players
        self.start_countdown = start_countdown
        self.reconnect_grace = reconnect_grace
        self._clock = clock
        self._spawn = spawn
        self._sleep = sleep
        self._lock = threading.Lock()
        self._contexts: Dict[str, _RoomContext] = {}
        self._retained: Dict[str, _RoomContext] = {}
        self._listeners: List[Callable[[str, Event], None]] = []
        self._completion_handlers: List[Callable] = []

    # ---- wiring ----

    def add_listener(self, listener: Callable[[str, Event], None]) -> None:
        self._listeners.append(listener)

    def on_completion(self, handler: Callable) -> None:
        """Register ``handler(room, session, players)`` for solved rooms."""
        self._completion_handlers.append(handler)

    def _context(self, code) -> Optional[_RoomContext]:
        with self._lock:
            return self._contexts.get((code or '').upper())

    def _publish(self, ctx: _RoomContext, type_: str, **payload) -> Optional[Event]:
        event = ctx.channel.publish(type_, **payload)
        if event is None:
            return None
        for listener in list(self._listeners):
            try:
                listener(ctx.channel.code, event)
            except Exception:
                logger.exception(f"[broadcast-fail] code={ctx.channel.code} event={type_}")
        return event

    def _room_changed(self, ctx: _RoomContext, room: Room) -> None:
        self._publish(ctx, 'room_updated', room=room.to_dict())

    # ---- lifecycle ----

    def create_room(self, host: Player, grid: Grid, puzzle_id=None) -> RoomResult:
        with self._lock:
            result = self.registry.create_room(host, puzzle_id)
            if not result.ok:
                return result
            ctx = _RoomContext(grid=grid, channel=RoomChannel(result.room.code))
            self._contexts[result.room.code] = ctx
        with ctx.lock:
            self._room_changed(ctx, result.room)
        return result

    def join(self, code, player: Player) -> RoomResult:
        ctx = self._context(code)
        if ctx is None:
            return RoomResult(error=RoomNotFoundError())
        with ctx.lock:
            room = self.registry.get_room(code)
            if room is None:
                return RoomResult(error=RoomNotFoundError())
            already_in = room.has_player(player.id)
            if room.status == STARTING and not already_in:
                # a rejected join must leave the pending countdown alone
                if self.registry.is_full(room):
                    logger.info(f"[room-reject] op=join code={room.code} player={player.id} error=RoomFullError")
                    return RoomResult(error=RoomFullError())
                self._rearm(ctx, room, reason='join')
            result = self.registry.join_room(code, player)
            if not result.ok:
                return result
            if not already_in:
                self._publish(ctx, 'player_joined', player=player.to_dict())
            self._evaluate(ctx, room)
            self._room_changed(ctx, room)
            return result

    def leave(self, code, player_id, reason='left') -> RoomResult:
        """Remove a player. Leaving twice, or after the room is gone, is a no-op."""
        ctx = self._context(code)
        if ctx is None:
            return RoomResult()
        with ctx.lock:
            room = self.registry.get_room(code)
            if room is None or not room.has_player(player_id):
                return RoomResult(room=room)
            previous = room.status
            result = self.registry.leave_room(code, player_id)
            if not result.ok:
                return result
            if ctx.session is not None:
                ctx.session.drop_cursor(player_id)
            self._publish(ctx, 'player_left', player_id=player_id, reason=reason)

            if not room.players:
                self._release(room.code, ctx, keep_session=previous in (IN_PROGRESS, ENDED))
                return result

            if previous == STARTING:
                self._rearm(ctx, room, reason=reason)
                self._evaluate(ctx, room)
            elif previous == WAITING:
                self._evaluate(ctx, room)
            elif previous == IN_PROGRESS and len(room.players) < self.min_players:
                self._end(ctx, room, reason='not_enough_players')
            self._room_changed(ctx, room)
            return result

    def disconnect(self, code, player_id) -> RoomResult:
        return self.leave(code, player_id, reason='disconnected')

    def set_ready(self, code, player_id, ready: bool) -> RoomResult:
        ctx = self._context(code)
        if ctx is None:
            return RoomResult(error=RoomNotFoundError())
        with ctx.lock:
            result = self.registry.set_ready(code, player_id, ready)
            if not result.ok:
                return result
            room = result.room
            self._publish(ctx, 'player_ready', player_id=player_id, ready=bool(ready))
            if room.status == STARTING and not ready:
                self._rearm(ctx, room, reason='unready')
            else:
                self._evaluate(ctx, room)
            self._room_changed(ctx, room)
            return result

    def reconnect(self, code, player: Player) -> RoomResult:
        """Bring a dropped player back into an ended room during its grace window."""
        ctx = self._context(code)
        if ctx is None or ctx.session is None:
            return RoomResult(error=RoomNotFoundError())
        with ctx.lock:
            room = self.registry.get_room(code)
            if room is None:
                return RoomResult(error=RoomNotFoundError())
            if room.has_player(player.id):
                return RoomResult(room=room)
            expired = ctx.grace_deadline is not None and self._clock() >= ctx.grace_deadline
            if room.status != ENDED or ctx.session.solved or expired or player.id not in ctx.members:
                return RoomResult(error=RoomClosedError())
            result = self.registry.readmit(code, player)
            if not result.ok:
                return result
            self._publish(ctx, 'player_joined', player=player.to_dict(), reconnected=True)
            if len(room.players) >= self.min_players:
                room.status = IN_PROGRESS
                ctx.grace_deadline = None
                self._publish(ctx, 'game_resumed', state=ctx.session.snapshot())
                logger.info(f"[room-resume] code={room.code} players={len(room.players)}")
            self._room_changed(ctx, room)
            return result

    def close_room(self, code, player_id) -> RoomResult:
        ctx = self._context(code)
        if ctx is None:
            return RoomResult(error=RoomNotFoundError())
        with ctx.lock:
            result = self.registry.close_room(code, player_id)
            if not result.ok:
                return result
            self._publish(ctx, 'room_ended', reason='closed')
            self._release(result.room.code, ctx, keep_session=False)
            return result

    # ---- start gate ----

    def _evaluate(self, ctx: _RoomContext, room: Room) -> None:
        if room.status != WAITING:
            return
        if len(room.players) < self.min_players or not room.all_ready():
            return
        room.status = STARTING
        ctx.start_token += 1
        token = ctx.start_token
        logger.info(f"[start-armed] code={room.code} token={token} countdown={self.start_countdown}s")
        self._publish(ctx, 'room_starting', countdown=self.start_countdown)
        if self.start_countdown <= 0:
            self._begin(ctx, room)
        elif self._spawn is not None:
            self._spawn(self._countdown, room.code, token)

    def _rearm(self, ctx: _RoomContext, room: Room, reason: str) -> None:
        room.status = WAITING
        ctx.start_token += 1
        logger.info(f"[start-rearm] code={room.code} reason={reason}")
        self._publish(ctx, 'start_cancelled', reason=reason)

    def _countdown(self, code, token) -> None:
        self._sleep(self.start_countdown)
        self.advance(code, token)

    def advance(self, code, token=None) -> bool:
        """Finish a pending start countdown. Stale tokens are ignored."""
        ctx = self._context(code)
        if ctx is None:
            return False
        with ctx.lock:
            room = self.registry.get_room(code)
            if room is None or room.status != STARTING or (token is not None and token != ctx.start_token):
                logger.info(f"[start-abort] code={code} token={token}")
                return False
            self._begin(ctx, room)
            self._room_changed(ctx, room)
            return True

    def _begin(self, ctx: _RoomContext, room: Room) -> None:
        room.status = IN_PROGRESS
        ctx.members = set(room.players)
        ctx.session = SolveSession(ctx.grid, puzzle_id=room.puzzle_id, clock=self._clock)
        ctx.session.subscribe(lambda kind, payload: self._publish(ctx, kind, **payload))
        logger.info(f"[game-start] code={room.code} players={len(room.players)}")
        self._publish(ctx, 'game_started', state=ctx.session.snapshot())

    # ---- ending ----

    def _end(self, ctx: _RoomContext, room: Room, reason: str) -> None:
        room.status = ENDED
        ctx.grace_deadline = self._clock() + self.reconnect_grace
        logger.info(f"[room-end] code={room.code} reason={reason} grace={self.reconnect_grace}s")
        self._publish(ctx, 'room_ended', reason=reason, grace_seconds=self.reconnect_grace)
        if self._spawn is not None:
            self._spawn(self._purge_later, ctx.grace_deadline)

    def _complete(self, ctx: _RoomContext, room: Room) -> None:
        players = room.player_list()
        self._end(ctx, room, reason='solved')
        self._room_changed(ctx, room)
        for handler in list(self._completion_handlers):
            try:
                handler(room, ctx.session, players)
            except Exception:
                logger.exception(f"[completion-fail] code={room.code}")
        ctx.channel.close()

    def _release(self, code: str, ctx: _RoomContext, keep_session: bool) -> None:
        """Drop a room that left the registry, optionally retaining its session."""
        retain = keep_session and ctx.session is not None and not ctx.session.solved
        with self._lock:
            if self._contexts.get(code) is ctx:
                del self._contexts[code]
            if retain:
                if ctx.grace_deadline is None:
                    ctx.grace_deadline = self._clock() + self.reconnect_grace
                self._retained[code] = ctx
        if not retain:
            ctx.channel.close()
            return
        logger.info(f"[session-retain] code={code} until={ctx.grace_deadline}")
        if self._spawn is not None:
            self._spawn(self._purge_later, ctx.grace_deadline)

    def _purge_later(self, deadline: float) -> None:
        self._sleep(max(0.0, deadline - self._clock()))
        self.purge_expired()

    def purge_expired(self) -> List[str]:
        """Discard ended rooms and retained sessions whose grace window has passed."""
        now = self._clock()
        purged = []
        with self._lock:
            for store in (self._contexts, self._retained):
                for code, ctx in list(store.items()):
                    if ctx.grace_deadline is None or now < ctx.grace_deadline:
                        continue
                    if store is self._contexts:
                        room = self.registry.get_room(code)
                        if room is not None and room.status != ENDED:
                            continue
                        self.registry.evict(code)
                    del store[code]
                    ctx.channel.close()
                    purged.append(code)
        for code in purged:
            logger.info(f"[session-purge] code={code}")
        return purged

    # ---- gameplay ----

    def apply(self, code, player_id, op: str, *args):
        """Run a solve operation on the room's shared session.

        Returns the operation's result, or ``None`` when the operation is
        dropped (unknown room, non-member, or the room is not in progress).
        """
        if op not in SOLVING_OPS:
            logger.warning(f"[op-unknown] code={code} op={op}")
            return None
        ctx = self._context(code)
        if ctx is None:
            return None
        with ctx.lock:
            room = self.registry.get_room(code)
            if room is None or room.status != IN_PROGRESS or not room.has_player(player_id) or ctx.session is None:
                logger.debug(f"[op-drop] code={code} player={player_id} op={op}")
                return None
            result = getattr(ctx.session, op)(*args, player_id=player_id)
            if ctx.session.solved:
                self._complete(ctx, room)
            return result

    def send_message(self, code, player_id, text) -> Optional[dict]:
        ctx = self._context(code)
        if ctx is None:
            return None
        with ctx.lock:
            room = self.registry.get_room(code)
            if room is None or not room.has_player(player_id):
                return None
            text = (text or '').strip()[:MESSAGE_MAX_LENGTH]
            if not text:
                return None
            message = {
                'id': uuid.uuid4().hex,
                'player_id': player_id,
                'display_name': room.players[player_id].display_name,
                'text': text,
                'created_at': time.time(),
            }
            ctx.messages = (ctx.messages + [message])[-MESSAGE_HISTORY:]
            self._publish(ctx, 'new_message', **message)
            return message

    def send_reaction(self, code, player_id, clue_id, emoji) -> Optional[dict]:
        """React to a clue. A player keeps one reaction per clue; a new one replaces it."""
        ctx = self._context(code)
        if ctx is None:
            return None
        with ctx.lock:
            room = self.registry.get_room(code)
            if room is None or not room.has_player(player_id):
                return None
            if not any(w.clue_id == clue_id for w in ctx.grid.words):
                return None
            emoji = emoji.strip() if isinstance(emoji, str) else ''
            if not emoji or len(emoji) > REACTION_MAX_LENGTH:
                return None
            ctx.reactions[(player_id, clue_id)] = emoji
            reaction = {'player_id': player_id, 'clue_id': clue_id, 'emoji': emoji}
            self._publish(ctx, 'reaction_added', **reaction)
            return reaction

    # ---- views ----

    def get_room(self, code) -> Optional[Room]:
        return self.registry.get_room(code)

    def session(self, code) -> Optional[SolveSession]:
        code = (code or '').upper()
        with self._lock:
            ctx = self._contexts.get(code) or self._retained.get(code)
        return ctx.session if ctx is not None else None

    def _snapshot(self, ctx: _RoomContext, code: str, player_id=None) -> dict:
        room = self.registry.get_room(code) if self._contexts.get(code) is ctx else None
        state = None
        if ctx.session is not None:
            # only members get a cursor of their own; anyone else sees them all
            viewer = player_id if room is not None and room.has_player(player_id) else None
            state = ctx.session.snapshot(viewer)
        return {
            'room': room.to_dict() if room is not None else None,
            'grid': ctx.grid.to_dict(),
            'state': state,
            'messages': list(ctx.messages),
            'reactions': [
                {'player_id': pid, 'clue_id': clue_id, 'emoji': emoji}
                for (pid, clue_id), emoji in ctx.reactions.items()
            ],
            'seq': ctx.channel.last_seq,
        }

    def snapshot(self, code, player_id=None) -> Optional[dict]:
        code = (code or '').upper()
        with self._lock:
            ctx = self._contexts.get(code) or self._retained.get(code)
        if ctx is None:
            return None
        with ctx.lock:
            return self._snapshot(ctx, code, player_id)

    def subscribe(self, code, player_id=None) -> Optional[Subscription]:
        """Subscribe to a room's events, starting with a ``room_state`` snapshot."""
        ctx = self._context(code)
        if ctx is None:
            return None
        code = ctx.channel.code
        with ctx.lock:
            initial = Event(type='room_state', payload=self._snapshot(ctx, code, player_id),
                            seq=ctx.channel.last_seq, room_code=code)
            return ctx.channel.subscribe(initial)
