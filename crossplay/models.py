from crossplay import db, bcrypt
from flask_login import UserMixin
from datetime import datetime, timezone
import json
import uuid


def _utcnow():
    return datetime.now(timezone.utc)


class User(UserMixin, db.Model):
    __tablename__ = 'user'
    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(64), unique=True, nullable=False, index=True)
    display_name = db.Column(db.String(64), nullable=False)
    password_hash = db.Column(db.String(256), nullable=False)

    def set_password(self, password):
        self.password_hash = bcrypt.generate_password_hash(password).decode('utf-8')

    def check_password(self, password):
        return bcrypt.check_password_hash(self.password_hash, password)

    @property
    def player_id(self):
        return f"user-{self.id}"

    def to_dict(self):
        return {
            'id': self.id,
            'player_id': self.player_id,
            'username': self.username,
            'display_name': self.display_name,
        }


class Puzzle(db.Model):
    __tablename__ = 'puzzle'
    id = db.Column(db.String(64), primary_key=True, default=lambda: uuid.uuid4().hex)
    date = db.Column(db.String(10), unique=True, nullable=True, index=True)  # YYYY-MM-DD, null for archive-only
    title = db.Column(db.String(128), nullable=False, default='')
    author = db.Column(db.String(128), nullable=False, default='')
    difficulty = db.Column(db.String(16), nullable=False, default='medium')  # easy, medium, hard
    grid = db.Column(db.Text, nullable=False)  # JSON-encoded list of rows
    clues_across = db.Column(db.Text, nullable=True)  # JSON-encoded list of clues
    clues_down = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    @classmethod
    def from_dict(cls, data):
        return cls(
            id=data.get('id') or uuid.uuid4().hex,
            date=data.get('date'),
            title=data.get('title', ''),
            author=data.get('author', ''),
            difficulty=data.get('difficulty', 'medium'),
            grid=json.dumps(data['grid']),
            clues_across=json.dumps(data.get('clues_across') or []),
            clues_down=json.dumps(data.get('clues_down') or []),
        )

    def to_dict(self):
        return {
            'id': self.id,
            'date': self.date,
            'title': self.title,
            'author': self.author,
            'difficulty': self.difficulty,
            'grid': json.loads(self.grid),
            'clues_across': json.loads(self.clues_across) if self.clues_across else [],
            'clues_down': json.loads(self.clues_down) if self.clues_down else [],
        }


class PuzzleHistory(db.Model):
    __tablename__ = 'puzzle_history'
    id = db.Column(db.Integer, primary_key=True)
    player_id = db.Column(db.String(64), nullable=False, index=True)
    puzzle_id = db.Column(db.String(64), nullable=True)
    room_code = db.Column(db.String(16), nullable=True)  # null for solo play
    time_taken_seconds = db.Column(db.Integer, nullable=False, default=0)
    move_count = db.Column(db.Integer, nullable=False, default=0)
    hints_used = db.Column(db.Integer, nullable=False, default=0)
    solved = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'player_id': self.player_id,
            'puzzle_id': self.puzzle_id,
            'room_code': self.room_code,
            'time_taken_seconds': self.time_taken_seconds,
            'move_count': self.move_count,
            'hints_used': self.hints_used,
            'solved': self.solved,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }
