"""Grid model: turns a raw cell grid into numbered across/down words.

Cells live in a 2-D arena and words refer to them by ``(row, col)`` index,
so there are no object cycles between cells and the words that contain
them. Everything here is pure: no I/O, no clocks.
"""

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Tuple

from .errors import MalformedGridError

ACROSS = 'across'
DOWN = 'down'
DIRECTIONS = (ACROSS, DOWN)

BLOCK = '#'
UNKNOWN_LETTERS = ('', '.', '?')

_STEP = {ACROSS: (0, 1), DOWN: (1, 0)}

Position = Tuple[int, int]


def other_direction(direction: str) -> str:
    return DOWN if direction == ACROSS else ACROSS


@dataclass
class Cell:
    row: int
    col: int
    blocked: bool = False
    letter: Optional[str] = None  # reference letter, None when blocked or unknown
    number: Optional[int] = None

    @property
    def position(self) -> Position:
        return (self.row, self.col)

    def to_dict(self, include_answers=False):
        data = {'blocked': self.blocked, 'number': self.number}
        if include_answers and not self.blocked:
            data['letter'] = self.letter
        return data


@dataclass(frozen=True)
class Word:
    number: int
    direction: str
    positions: Tuple[Position, ...]
    answer: str
    clue: str = ''

    @property
    def key(self) -> Tuple[int, str]:
        return (self.number, self.direction)

    @property
    def clue_id(self) -> str:
        return f"{self.direction}-{self.number}"

    @property
    def start(self) -> Position:
        return self.positions[0]

    def __len__(self):
        return len(self.positions)

    def index_of(self, position: Position) -> int:
        return self.positions.index(position)

    def to_dict(self, include_answers=False):
        data = {
            'id': self.clue_id,
            'number': self.number,
            'direction': self.direction,
            'clue': self.clue,
            'length': len(self.positions),
            'cells': [list(p) for p in self.positions],
        }
        if include_answers:
            data['answer'] = self.answer
        return data


@dataclass
class Grid:
    width: int
    height: int
    cells: List[List[Cell]]
    words: Tuple[Word, ...] = ()
    _by_key: Dict[Tuple[int, str], Word] = field(default_factory=dict, repr=False)
    _membership: Dict[Position, Dict[str, Word]] = field(default_factory=dict, repr=False)

    def __post_init__(self):
        for word in self.words:
            self._by_key[word.key] = word
            for position in word.positions:
                self._membership.setdefault(position, {})[word.direction] = word

    def in_bounds(self, row: int, col: int) -> bool:
        return 0 <= row < self.height and 0 <= col < self.width

    def cell(self, row: int, col: int) -> Cell:
        return self.cells[row][col]

    def is_blocked(self, row: int, col: int) -> bool:
        return not self.in_bounds(row, col) or self.cells[row][col].blocked

    def word(self, number: int, direction: str) -> Optional[Word]:
        return self._by_key.get((number, direction))

    def word_at(self, row: int, col: int, direction: str) -> Optional[Word]:
        return self._membership.get((row, col), {}).get(direction)

    def directions_at(self, row: int, col: int) -> Tuple[str, ...]:
        """Directions in which the cell belongs to a word, across first."""
        words = self._membership.get((row, col), {})
        return tuple(d for d in DIRECTIONS if d in words)

    def playable_positions(self) -> Iterable[Position]:
        for row in self.cells:
            for cell in row:
                if not cell.blocked:
                    yield cell.position

    @property
    def playable_count(self) -> int:
        return sum(1 for _ in self.playable_positions())

    def first_word(self) -> Optional[Word]:
        if not self.words:
            return None
        return min(self.words, key=lambda w: (w.number, w.direction != ACROSS))

    def words_in(self, direction: str) -> List[Word]:
        return [w for w in self.words if w.direction == direction]

    def to_dict(self, include_answers=False):
        return {
            'width': self.width,
            'height': self.height,
            'cells': [[c.to_dict(include_answers) for c in row] for row in self.cells],
            'across': [w.to_dict(include_answers) for w in self.words_in(ACROSS)],
            'down': [w.to_dict(include_answers) for w in self.words_in(DOWN)],
        }


def _parse_cell(row: int, col: int, raw) -> Cell:
    if isinstance(raw, dict):
        if raw.get('blocked') or raw.get('letter') is None:
            return Cell(row, col, blocked=True)
        raw = raw['letter']
    if raw is None or raw == BLOCK:
        return Cell(row, col, blocked=True)
    if not isinstance(raw, str):
        raise MalformedGridError(f"Cell ({row}, {col}) has unsupported value {raw!r}")
    text = raw.strip()
    if text in UNKNOWN_LETTERS:
        return Cell(row, col)
    if len(text) != 1:
        raise MalformedGridError(f"Cell ({row}, {col}) holds {text!r}, expected one character")
    return Cell(row, col, letter=text.upper())


def _starts_word(cells: List[List[Cell]], row: int, col: int, direction: str) -> bool:
    dr, dc = _STEP[direction]
    height, width = len(cells), len(cells[0])
    prev_r, prev_c = row - dr, col - dc
    next_r, next_c = row + dr, col + dc
    if prev_r >= 0 and prev_c >= 0 and not cells[prev_r][prev_c].blocked:
        return False
    return next_r < height and next_c < width and not cells[next_r][next_c].blocked


def _run(cells: List[List[Cell]], row: int, col: int, direction: str) -> Tuple[Position, ...]:
    dr, dc = _STEP[direction]
    height, width = len(cells), len(cells[0])
    positions = []
    while row < height and col < width and not cells[row][col].blocked:
        positions.append((row, col))
        row, col = row + dr, col + dc
    return tuple(positions)


def _apply_clues(cells, runs, clues) -> Dict[Tuple[int, str], str]:
    """Attach clue text and fill unknown letters from clue answers."""
    texts = {}
    for direction in DIRECTIONS:
        for clue in (clues or {}).get(direction) or []:
            key = (int(clue['number']), direction)
            if key not in runs:
                raise MalformedGridError(
                    f"Clue {key[0]} {direction} does not match a word of at least 2 cells"
                )
            texts[key] = clue.get('text') or clue.get('clue') or ''
            answer = ''.join((clue.get('answer') or '').split()).upper()
            if not answer:
                continue
            positions = runs[key]
            if len(answer) != len(positions):
                raise MalformedGridError(
                    f"Answer for {key[0]} {direction} has {len(answer)} letters, word has {len(positions)}"
                )
            for (r, c), letter in zip(positions, answer):
                cell = cells[r][c]
                if cell.letter is None:
                    cell.letter = letter
                elif cell.letter != letter:
                    raise MalformedGridError(
                        f"Answer for {key[0]} {direction} conflicts with grid at ({r}, {c})"
                    )
    return texts


def parse(raw, clues=None) -> Grid:
    """Build a :class:`Grid` from raw rows.

    ``raw`` is a sequence of rows; a row may be a string (``"AB#"``) or a
    sequence of raw cells. ``clues`` optionally maps ``across``/``down`` to
    lists of ``{'number', 'text', 'answer'}``.

    Raises :class:`MalformedGridError` when the rows are ragged, the grid is
    empty, or a clue names a word that does not exist.
    """
    if not raw:
        raise MalformedGridError('Grid has no rows')
    rows = [list(r) for r in raw]
    width = len(rows[0])
    if width == 0:
        raise MalformedGridError('Grid has no columns')
    for idx, row in enumerate(rows):
        if len(row) != width:
            raise MalformedGridError(f"Row {idx} has {len(row)} cells, expected {width}")

    cells = [[_parse_cell(r, c, value) for c, value in enumerate(row)] for r, row in enumerate(rows)]
    if not any(not cell.blocked for row in cells for cell in row):
        raise MalformedGridError('Grid has no playable cells')

    runs = {}
    number = 0
    for r, row in enumerate(cells):
        for c, cell in enumerate(row):
            if cell.blocked:
                continue
            starts = [d for d in DIRECTIONS if _starts_word(cells, r, c, d)]
            if not starts:
                continue
            number += 1
            cell.number = number
            for direction in starts:
                runs[(number, direction)] = _run(cells, r, c, direction)

    texts = _apply_clues(cells, runs, clues)

    words = []
    for direction in DIRECTIONS:
        for (num, d), positions in sorted(runs.items()):
            if d != direction:
                continue
            answer = ''.join(cells[r][c].letter or '?' for r, c in positions)
            words.append(Word(num, d, positions, answer, texts.get((num, d), '')))

    return Grid(width=width, height=len(cells), cells=cells, words=tuple(words))
