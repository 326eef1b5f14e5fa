"""Solve session: cursor, direction and entered-letter state for one puzzle.

A session owns the entered letters of one puzzle instance. Letters are
shared; cursors are kept per player id so the same session can back a solo
game (``LOCAL``) or a multiplayer room where every player navigates on
their own. Every mutation recomputes progress and checks completion.
"""

import time
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Set, Tuple

from .grid import ACROSS, DOWN, Grid, Position, Word, other_direction

LOCAL = 'local'

ACTIVE = 'active'
SOLVED = 'solved'

Listener = Callable[[str, dict], None]


@dataclass
class Cursor:
    row: int
    col: int
    direction: str

    @property
    def position(self) -> Position:
        return (self.row, self.col)

    def to_dict(self):
        return {'row': self.row, 'col': self.col, 'direction': self.direction}


def _percent(filled: int, total: int) -> int:
    if not total:
        return 0
    return int(filled * 100 / total + 0.5)


class SolveSession:
    def __init__(self, grid: Grid, puzzle_id=None, clock=time.monotonic):
        self.grid = grid
        self.puzzle_id = puzzle_id
        self._clock = clock
        self.entries: Dict[Position, str] = {}
        self.revealed: Set[Position] = set()
        self.cursors: Dict[str, Cursor] = {}
        self.completed_words: Set[Tuple[int, str]] = set()
        self.status = ACTIVE
        self.progress = 0
        self.move_count = 0
        self.hints_used = 0
        self.started_at = clock()
        self.solved_at: Optional[float] = None
        self._total = grid.playable_count
        self._listeners: List[Listener] = []

    # ---- events ----

    def subscribe(self, listener: Listener) -> Listener:
        self._listeners.append(listener)
        return listener

    def unsubscribe(self, listener: Listener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _emit(self, kind: str, **payload) -> None:
        for listener in list(self._listeners):
            listener(kind, payload)

    # ---- derived state ----

    @property
    def solved(self) -> bool:
        return self.status == SOLVED

    @property
    def filled_count(self) -> int:
        return len(self.entries)

    @property
    def total_count(self) -> int:
        return self._total

    @property
    def elapsed_seconds(self) -> int:
        end = self.solved_at if self.solved_at is not None else self._clock()
        return int(end - self.started_at)

    def entry(self, row: int, col: int) -> Optional[str]:
        return self.entries.get((row, col))

    # ---- cursors ----

    def cursor(self, player_id=LOCAL) -> Cursor:
        cursor = self.cursors.get(player_id)
        if cursor is None:
            word = self.grid.first_word()
            if word is not None:
                row, col = word.start
                cursor = Cursor(row, col, word.direction)
            else:
                row, col = next(iter(self.grid.playable_positions()))
                cursor = Cursor(row, col, ACROSS)
            self.cursors[player_id] = cursor
        return cursor

    def drop_cursor(self, player_id) -> None:
        self.cursors.pop(player_id, None)

    def current_word(self, player_id=LOCAL) -> Optional[Word]:
        cursor = self.cursor(player_id)
        return self.grid.word_at(cursor.row, cursor.col, cursor.direction)

    def _place(self, player_id, row: int, col: int, direction: str) -> Cursor:
        supported = self.grid.directions_at(row, col)
        if supported and direction not in supported:
            direction = supported[0]
        cursor = Cursor(row, col, direction)
        self.cursors[player_id] = cursor
        self._emit('cursor_moved', player_id=player_id, **cursor.to_dict())
        return cursor

    # ---- navigation ----

    def select_cell(self, row: int, col: int, player_id=LOCAL) -> Optional[Cursor]:
        """Move the cursor to a cell, or toggle direction if it is already there.

        Returns the new cursor, or ``None`` when nothing changed.
        """
        if self.grid.is_blocked(row, col):
            return None
        cursor = self.cursor(player_id)
        supported = self.grid.directions_at(row, col)
        if cursor.position == (row, col):
            toggled = other_direction(cursor.direction)
            if toggled not in supported:
                return None
            return self._place(player_id, row, col, toggled)
        direction = cursor.direction
        if supported and direction not in supported:
            direction = supported[0]
        return self._place(player_id, row, col, direction)

    def select_clue(self, number: int, direction: str, player_id=LOCAL) -> Optional[Cursor]:
        word = self.grid.word(number, direction)
        if word is None:
            return None
        row, col = word.start
        return self._place(player_id, row, col, direction)

    def step(self, delta_row: int, delta_col: int, player_id=LOCAL) -> Optional[Cursor]:
        """Arrow-key move: one cell along an axis, skipping blocked cells."""
        if (abs(delta_row) + abs(delta_col)) != 1:
            return None
        cursor = self.cursor(player_id)
        direction = ACROSS if delta_col else DOWN
        row, col = cursor.row + delta_row, cursor.col + delta_col
        while self.grid.in_bounds(row, col) and self.grid.is_blocked(row, col):
            row, col = row + delta_row, col + delta_col
        if not self.grid.in_bounds(row, col):
            return None
        return self._place(player_id, row, col, direction)

    # ---- letters ----

    def _write(self, position: Position, value: Optional[str], player_id, revealed=False) -> None:
        if value:
            self.entries[position] = value
        else:
            self.entries.pop(position, None)
        if revealed:
            self.revealed.add(position)
        else:
            self.move_count += 1
        row, col = position
        self._emit('cell_updated', row=row, col=col, value=value or '',
                   player_id=player_id, revealed=revealed)

    def type_letter(self, ch: str, player_id=LOCAL) -> Optional[Cursor]:
        if not isinstance(ch, str) or len(ch) != 1 or not ch.isalnum():
            return None
        cursor = self.cursor(player_id)
        position = cursor.position
        if position in self.revealed:
            return None
        self._write(position, ch.upper(), player_id)
        word = self.current_word(player_id)
        if word is not None:
            idx = word.index_of(position)
            if idx + 1 < len(word):
                cursor = self._place(player_id, *word.positions[idx + 1], cursor.direction)
        self._after_mutation([position])
        return cursor

    def backspace(self, player_id=LOCAL) -> Optional[Cursor]:
        cursor = self.cursor(player_id)
        position = cursor.position
        if position in self.revealed:
            return None
        if self.entries.get(position):
            self._write(position, None, player_id)
            self._after_mutation([position])
            return cursor
        word = self.current_word(player_id)
        if word is None:
            return None
        idx = word.index_of(position)
        if idx == 0:
            return None
        previous = word.positions[idx - 1]
        cursor = self._place(player_id, *previous, cursor.direction)
        if previous not in self.revealed and self.entries.get(previous):
            self._write(previous, None, player_id)
            self._after_mutation([previous])
        return cursor

    def delete(self, player_id=LOCAL) -> Optional[Cursor]:
        cursor = self.cursor(player_id)
        position = cursor.position
        if position in self.revealed or not self.entries.get(position):
            return None
        self._write(position, None, player_id)
        self._after_mutation([position])
        return cursor

    def set_cell(self, row: int, col: int, value: Optional[str], player_id=LOCAL) -> bool:
        """Write a cell directly, as a replica applying a broadcast update."""
        if self.grid.is_blocked(row, col) or (row, col) in self.revealed:
            return False
        if value:
            if not isinstance(value, str) or len(value) != 1 or not value.isalnum():
                return False
            value = value.upper()
        self._write((row, col), value or None, player_id)
        self._after_mutation([(row, col)])
        return True

    # ---- hints ----

    def _reveal(self, positions, player_id) -> List[Position]:
        changed = []
        for position in positions:
            letter = self.grid.cell(*position).letter
            if letter is None:
                continue
            if self.entries.get(position) != letter or position not in self.revealed:
                self._write(position, letter, player_id, revealed=True)
                changed.append(position)
        self.hints_used += 1
        self._after_mutation(list(positions))
        return changed

    def reveal_cell(self, player_id=LOCAL) -> List[Position]:
        return self._reveal([self.cursor(player_id).position], player_id)

    def reveal_word(self, number: int, direction: str, player_id=LOCAL) -> Optional[List[Position]]:
        word = self.grid.word(number, direction)
        if word is None:
            return None
        return self._reveal(word.positions, player_id)

    def reveal_all(self, player_id=LOCAL) -> List[Position]:
        return self._reveal(list(self.grid.playable_positions()), player_id)

    def _wrong(self, positions) -> List[Position]:
        wrong = []
        for position in positions:
            entered = self.entries.get(position)
            letter = self.grid.cell(*position).letter
            if entered and letter is not None and entered.upper() != letter:
                wrong.append(position)
        return wrong

    def check_word(self, number: int, direction: str) -> Optional[List[Position]]:
        word = self.grid.word(number, direction)
        if word is None:
            return None
        return self._wrong(word.positions)

    def check_all(self) -> List[Position]:
        return self._wrong(self.grid.playable_positions())

    # ---- completion ----

    def _cell_correct(self, position: Position) -> bool:
        entered = self.entries.get(position)
        if not entered:
            return False
        letter = self.grid.cell(*position).letter
        # unknown reference letters accept any entry
        return letter is None or entered.upper() == letter

    def _after_mutation(self, positions) -> None:
        progress = _percent(self.filled_count, self._total)
        if progress != self.progress:
            self.progress = progress
            self._emit('progress', percent=progress, filled=self.filled_count, total=self._total)

        for row, col in positions:
            for direction in self.grid.directions_at(row, col):
                word = self.grid.word_at(row, col, direction)
                if all(self._cell_correct(p) for p in word.positions):
                    if word.key not in self.completed_words:
                        self.completed_words.add(word.key)
                        self._emit('word_completed', number=word.number, direction=word.direction,
                                   id=word.clue_id)
                else:
                    self.completed_words.discard(word.key)

        if self.status == ACTIVE and all(self._cell_correct(p) for p in self.grid.playable_positions()):
            self.status = SOLVED
            self.solved_at = self._clock()
            self._emit('puzzle_completed', elapsed_seconds=self.elapsed_seconds,
                       move_count=self.move_count, hints_used=self.hints_used)

    def snapshot(self, player_id=None) -> dict:
        entries = [
            [None if cell.blocked else self.entries.get(cell.position, '') for cell in row]
            for row in self.grid.cells
        ]
        data = {
            'puzzle_id': self.puzzle_id,
            'status': self.status,
            'progress': self.progress,
            'filled': self.filled_count,
            'total': self._total,
            'elapsed_seconds': self.elapsed_seconds,
            'move_count': self.move_count,
            'hints_used': self.hints_used,
            'entries': entries,
            'revealed': sorted([list(p) for p in self.revealed]),
            'completed_words': sorted(f"{d}-{n}" for n, d in self.completed_words),
        }
        if player_id is not None:
            data['cursor'] = self.cursor(player_id).to_dict()
        else:
            data['cursors'] = {pid: c.to_dict() for pid, c in self.cursors.items()}
        return data
