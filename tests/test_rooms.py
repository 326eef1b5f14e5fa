import random

import pytest

from crossplay.services.errors import (
    NotHostError,
    PlayerNotInRoomError,
    RoomClosedError,
    RoomError,
    RoomFullError,
    RoomNotFoundError,
)
from crossplay.services.rooms import (
    CODE_ALPHABET,
    ENDED,
    IN_PROGRESS,
    WAITING,
    Player,
    RoomRegistry,
    generate_room_code,
)


def _codes(*codes):
    it = iter(codes)
    return lambda: next(it)


@pytest.fixture()
def registry():
    return RoomRegistry(max_players=3, code_factory=_codes('ab12', 'CD34', 'EF56'))


def test_generate_room_code_uses_alphabet():
    code = generate_room_code(6, random.Random(7))
    assert len(code) == 6
    assert all(ch in CODE_ALPHABET for ch in code)


def test_create_room_adds_host(registry):
    result = registry.create_room(Player('h', 'Host'), puzzle_id='p1')
    assert result.ok
    room = result.room
    assert room.code == 'AB12'
    assert room.host_id == 'h'
    assert room.status == WAITING
    assert [p.id for p in room.player_list()] == ['h']
    assert room.players['h'].color


def test_codes_do_not_collide():
    registry = RoomRegistry(code_factory=_codes('AAAA', 'AAAA', 'BBBB'))
    first = registry.create_room(Player('a', 'A')).room
    second = registry.create_room(Player('b', 'B')).room
    assert (first.code, second.code) == ('AAAA', 'BBBB')
    assert sorted(registry.live_codes()) == ['AAAA', 'BBBB']


def test_code_allocation_gives_up():
    registry = RoomRegistry(code_factory=lambda: 'SAME')
    assert registry.create_room(Player('a', 'A')).ok
    result = registry.create_room(Player('b', 'B'))
    assert not result.ok
    assert isinstance(result.error, RoomError)


def test_join_is_case_insensitive_and_idempotent(registry):
    registry.create_room(Player('h', 'Host'))
    assert registry.join_room('ab12', Player('g', 'Guest')).ok
    again = registry.join_room('AB12', Player('g', 'Guest'))
    assert again.ok
    assert len(again.room.players) == 2


def test_join_unknown_room(registry):
    result = registry.join_room('ZZZZ', Player('g', 'Guest'))
    assert not result.ok
    assert isinstance(result.error, RoomNotFoundError)
    with pytest.raises(RoomNotFoundError):
        result.unwrap()


def test_join_full_room(registry):
    registry.create_room(Player('h', 'Host'))
    registry.join_room('AB12', Player('a', 'A'))
    registry.join_room('AB12', Player('b', 'B'))
    result = registry.join_room('AB12', Player('c', 'C'))
    assert isinstance(result.error, RoomFullError)


def test_join_room_not_waiting(registry):
    room = registry.create_room(Player('h', 'Host')).room
    room.status = IN_PROGRESS
    result = registry.join_room('AB12', Player('g', 'Guest'))
    assert isinstance(result.error, RoomClosedError)


def test_leave_promotes_next_host(registry):
    registry.create_room(Player('h', 'Host'))
    registry.join_room('AB12', Player('a', 'A'))
    registry.join_room('AB12', Player('b', 'B'))
    room = registry.leave_room('AB12', 'h').unwrap()
    assert room.host_id == 'a'
    assert [p.id for p in room.player_list()] == ['a', 'b']


def test_last_leave_evicts_room(registry):
    registry.create_room(Player('h', 'Host'))
    room = registry.leave_room('AB12', 'h').unwrap()
    assert room.status == ENDED
    assert registry.get_room('AB12') is None


def test_leave_by_stranger(registry):
    registry.create_room(Player('h', 'Host'))
    result = registry.leave_room('AB12', 'nobody')
    assert isinstance(result.error, PlayerNotInRoomError)


def test_set_ready_and_all_ready(registry):
    registry.create_room(Player('h', 'Host'))
    registry.join_room('AB12', Player('a', 'A'))
    registry.set_ready('AB12', 'h', True)
    room = registry.get_room('AB12')
    assert not room.all_ready()
    registry.set_ready('AB12', 'a', True)
    assert room.all_ready()
    assert isinstance(registry.set_ready('AB12', 'x', True).error, PlayerNotInRoomError)


def test_close_room_is_host_only(registry):
    registry.create_room(Player('h', 'Host'))
    registry.join_room('AB12', Player('a', 'A'))
    assert isinstance(registry.close_room('AB12', 'a').error, NotHostError)
    room = registry.close_room('AB12', 'h').unwrap()
    assert room.status == ENDED
    assert registry.get_room('AB12') is None


def test_room_to_dict_keeps_join_order(registry):
    registry.create_room(Player('h', 'Host'))
    registry.join_room('AB12', Player('a', 'A'))
    data = registry.get_room('AB12').to_dict()
    assert data['code'] == 'AB12'
    assert [p['id'] for p in data['players']] == ['h', 'a']
    assert data['players'][0]['color'] != data['players'][1]['color']
