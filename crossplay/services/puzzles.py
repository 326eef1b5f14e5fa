"""Puzzle source: loads stored puzzles and turns them into playable grids."""

import logging
from datetime import date as date_cls

from sqlalchemy.exc import SQLAlchemyError

from crossplay import db
from crossplay.models import Puzzle
from .errors import NetworkError, NotFoundError
from .grid import Grid, parse

logger = logging.getLogger(__name__)


def _iso(day) -> str:
    if day is None:
        return date_cls.today().isoformat()
    if isinstance(day, date_cls):
        return day.isoformat()
    return str(day)


def get_puzzle(puzzle_id=None, date=None) -> dict:
    """Fetch a puzzle by id, or the puzzle published for ``date`` (default today).

    Raises NotFoundError when nothing matches and NetworkError when the
    store cannot be reached.
    """
    try:
        if puzzle_id:
            puzzle = Puzzle.query.filter_by(id=puzzle_id).first()
        else:
            puzzle = Puzzle.query.filter_by(date=_iso(date)).first()
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.warning(f"[puzzle-store] lookup failed id={puzzle_id} date={date}: {exc}")
        raise NetworkError('Puzzle store unavailable') from exc
    if puzzle is None:
        raise NotFoundError('Puzzle not found')
    return puzzle.to_dict()


def build_grid(puzzle: dict) -> Grid:
    return parse(puzzle['grid'], {
        'across': puzzle.get('clues_across') or [],
        'down': puzzle.get('clues_down') or [],
    })


def sanitize(puzzle: dict, grid: Grid = None) -> dict:
    """Client view of a puzzle: layout and clues, no answers."""
    if grid is None:
        grid = build_grid(puzzle)
    return {
        'id': puzzle.get('id'),
        'date': puzzle.get('date'),
        'title': puzzle.get('title'),
        'author': puzzle.get('author'),
        'difficulty': puzzle.get('difficulty'),
        'grid': grid.to_dict(include_answers=False),
    }


def sample_puzzle(day=None) -> dict:
    """A 5x5 word square used to seed a fresh database."""
    return {
        'date': _iso(day),
        'title': 'Warm Up',
        'author': 'Crossplay',
        'difficulty': 'easy',
        'grid': ['HEART', 'EMBER', 'ABUSE', 'RESIN', 'TREND'],
        'clues_across': [
            {'number': 1, 'text': 'Organ that keeps the beat', 'answer': 'HEART'},
            {'number': 6, 'text': 'Glowing remnant of a fire', 'answer': 'EMBER'},
            {'number': 7, 'text': 'Misuse', 'answer': 'ABUSE'},
            {'number': 8, 'text': 'Sticky tree secretion', 'answer': 'RESIN'},
            {'number': 9, 'text': 'Direction of fashion', 'answer': 'TREND'},
        ],
        'clues_down': [
            {'number': 1, 'text': 'Suit with a red symbol', 'answer': 'HEART'},
            {'number': 2, 'text': 'Last bit of a campfire', 'answer': 'EMBER'},
            {'number': 3, 'text': 'Mistreat', 'answer': 'ABUSE'},
            {'number': 4, 'text': 'Varnish ingredient', 'answer': 'RESIN'},
            {'number': 5, 'text': 'Something that is catching on', 'answer': 'TREND'},
        ],
    }
