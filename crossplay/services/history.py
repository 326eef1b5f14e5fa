"""Completion history: fire-and-forget writes that never block gameplay."""

from sqlalchemy.exc import SQLAlchemyError

from crossplay import db, socketio
from crossplay.models import PuzzleHistory


def record_completion(app, puzzle_id, player_id, time_taken_seconds, move_count, solved,
                      hints_used=0, room_code=None):
    """Insert a history row, retrying on store errors. Never raises."""
    attempts = max(1, int(app.config.get('COMPLETION_RETRY_ATTEMPTS', 3)))
    for attempt in range(1, attempts + 1):
        try:
            entry = PuzzleHistory(
                player_id=player_id,
                puzzle_id=puzzle_id,
                room_code=room_code,
                time_taken_seconds=int(time_taken_seconds or 0),
                move_count=int(move_count or 0),
                hints_used=int(hints_used or 0),
                solved=bool(solved),
            )
            db.session.add(entry)
            db.session.commit()
            app.logger.info(f"[history] player={player_id} puzzle={puzzle_id} solved={solved} room={room_code}")
            return entry
        except SQLAlchemyError as exc:
            db.session.rollback()
            app.logger.warning(f"[history-retry] attempt={attempt}/{attempts} player={player_id}: {exc}")
    app.logger.error(f"[history-drop] player={player_id} puzzle={puzzle_id}")
    return None


def record_completion_async(app, **kwargs):
    def _runner():
        with app.app_context():
            record_completion(app, **kwargs)

    # In tests, record inline for determinism
    if app.config.get('TESTING'):
        _runner()
    else:
        socketio.start_background_task(_runner)


def completion_recorder(app):
    """Synchronizer completion handler that records one row per player."""
    def _handler(room, session, players):
        for player in players:
            record_completion_async(
                app,
                puzzle_id=session.puzzle_id,
                player_id=player.id,
                time_taken_seconds=session.elapsed_seconds,
                move_count=session.move_count,
                solved=session.solved,
                hints_used=session.hints_used,
                room_code=room.code,
            )
    return _handler


def history_for(player_id, limit=20):
    return (PuzzleHistory.query
            .filter_by(player_id=player_id)
            .order_by(PuzzleHistory.created_at.desc(), PuzzleHistory.id.desc())
            .limit(limit)
            .all())
