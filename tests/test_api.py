from crossplay import db
from crossplay.models import Puzzle, PuzzleHistory
from crossplay.services.errors import NetworkError


def _create_room(client, **body):
    res = client.post('/api/rooms', json=dict({'puzzle_id': 'sample'}, **body))
    assert res.status_code == 201
    return res.get_json()


def _started_room(flask_app, host, guest):
    created = _create_room(host)
    code = created['room']['code']
    guest.post('/api/rooms/join', json={'room_code': code})
    host.post(f'/api/rooms/{code}/ready', json={'ready': True})
    res = guest.post(f'/api/rooms/{code}/ready', json={'ready': True})
    assert res.get_json()['room']['status'] == 'in_progress'
    return code, created['player']['id']


# ---- auth ----

def test_register_login_logout(client):
    res = client.post('/api/auth/register', json={'username': 'ada', 'password': 'pw'})
    assert res.status_code == 201
    user = res.get_json()['user']
    assert user['player_id'] == f"user-{user['id']}"
    assert client.get('/api/auth/check_login').status_code == 200
    assert client.post('/api/auth/logout').get_json()['success'] is True
    assert client.get('/api/auth/check_login').status_code == 401

    assert client.post('/api/auth/login', json={'username': 'ada', 'password': 'nope'}).status_code == 401
    res = client.post('/api/auth/login', json={'username': 'ada', 'password': 'pw'})
    assert res.get_json()['user']['username'] == 'ada'


def test_register_rejects_duplicates(client):
    client.post('/api/auth/register', json={'username': 'ada', 'password': 'pw'})
    res = client.post('/api/auth/register', json={'username': 'ada', 'password': 'pw'})
    assert res.status_code == 400


def test_guest_identity_is_stable(client):
    first = client.post('/api/auth/guest', json={}).get_json()['player']
    assert first['id'].startswith('guest-')
    assert first['display_name'].startswith('Guest_')
    second = client.post('/api/auth/guest', json={'display_name': 'Kit'}).get_json()['player']
    assert second['id'] == first['id']
    assert second['display_name'] == 'Kit'


# ---- puzzles ----

def test_daily_puzzle_hides_answers(client):
    res = client.get('/api/puzzles/daily')
    assert res.status_code == 200
    data = res.get_json()
    assert data['id'] == 'sample'
    assert data['grid']['width'] == 5
    assert 'answer' not in data['grid']['across'][0]
    assert 'letter' not in data['grid']['cells'][0][0]


def test_puzzle_lookup_errors(flask_app, client):
    assert client.get('/api/puzzles/sample').status_code == 200
    assert client.get('/api/puzzles/missing').status_code == 404
    assert client.get('/api/puzzles/daily?date=1999-01-01').status_code == 404

    db.session.add(Puzzle.from_dict({'id': 'broken', 'grid': ['ABC', 'AB']}))
    db.session.commit()
    res = client.get('/api/puzzles/broken')
    assert res.status_code == 422
    assert res.get_json()['kind'] == 'MalformedGridError'


def test_post_history(client):
    res = client.post('/api/puzzles/history', json={
        'puzzle_id': 'sample', 'time_taken_seconds': 42, 'move_count': 30, 'solved': True,
    })
    assert res.status_code == 201
    assert res.get_json()['time_taken_seconds'] == 42
    assert client.post('/api/puzzles/history', json={}).status_code == 400
    assert client.post('/api/puzzles/history', json={'puzzle_id': 'sample', 'move_count': 'x'}).status_code == 400

    history = client.get('/api/auth/history').get_json()
    assert [h['puzzle_id'] for h in history] == ['sample']


# ---- rooms ----

def test_create_and_join_room(flask_app, client):
    created = _create_room(client, display_name='Host')
    code = created['room']['code']
    assert len(code) == 6
    assert created['player']['display_name'] == 'Host'
    assert 'answer' not in created['puzzle']['grid']['across'][0]

    guest = flask_app.test_client()
    res = guest.post('/api/rooms/join', json={'room_code': code.lower()})
    assert res.status_code == 200
    assert [p['display_name'] for p in res.get_json()['room']['players']][0] == 'Host'
    assert len(res.get_json()['room']['players']) == 2


def test_join_errors(flask_app, client, synchronizer):
    assert client.post('/api/rooms/join', json={}).status_code == 400
    assert client.post('/api/rooms/join', json={'room_code': 'ZZZZZZ'}).status_code == 404

    code = _create_room(client)['room']['code']
    synchronizer.registry.max_players = 1
    res = flask_app.test_client().post('/api/rooms/join', json={'room_code': code})
    assert res.status_code == 409
    assert res.get_json()['kind'] == 'RoomFullError'


def test_create_room_collaborator_failures(flask_app, client, monkeypatch):
    assert client.post('/api/rooms', json={'puzzle_id': 'missing'}).status_code == 404

    db.session.add(Puzzle.from_dict({'id': 'broken', 'grid': ['AB', 'A']}))
    db.session.commit()
    assert client.post('/api/rooms', json={'puzzle_id': 'broken'}).status_code == 422

    def unreachable(**kwargs):
        raise NetworkError()

    monkeypatch.setattr('crossplay.api.rooms.get_puzzle', unreachable)
    assert client.post('/api/rooms', json={'puzzle_id': 'sample'}).status_code == 503


def test_ready_starts_room_and_state(flask_app, client):
    guest = flask_app.test_client()
    code, _ = _started_room(flask_app, client, guest)
    state = client.get(f'/api/rooms/{code}/state').get_json()
    assert state['room']['status'] == 'in_progress'
    assert state['state']['cursor'] == {'row': 0, 'col': 0, 'direction': 'across'}
    assert 'letter' not in state['grid']['cells'][0][0]

    late = flask_app.test_client().post('/api/rooms/join', json={'room_code': code})
    assert late.status_code == 403


def test_leave_in_progress_ends_room(flask_app, client):
    guest = flask_app.test_client()
    code, _ = _started_room(flask_app, client, guest)
    res = guest.post(f'/api/rooms/{code}/leave')
    assert res.status_code == 200
    assert res.get_json()['room']['status'] == 'ended'


def test_close_room_host_only(flask_app, client):
    code = _create_room(client)['room']['code']
    guest = flask_app.test_client()
    guest.post('/api/rooms/join', json={'room_code': code})
    assert guest.post(f'/api/rooms/{code}/close').status_code == 403
    assert client.post(f'/api/rooms/{code}/close').status_code == 200
    assert client.get(f'/api/rooms/{code}/state').status_code == 404


def test_ready_for_stranger(flask_app, client):
    code = _create_room(client)['room']['code']
    res = flask_app.test_client().post(f'/api/rooms/{code}/ready', json={'ready': True})
    assert res.status_code == 403
    assert res.get_json()['kind'] == 'PlayerNotInRoomError'


def test_solved_room_records_every_player(flask_app, client, synchronizer):
    guest = flask_app.test_client()
    code, host_id = _started_room(flask_app, client, guest)
    synchronizer.apply(code, host_id, 'reveal_all')
    rows = PuzzleHistory.query.filter_by(room_code=code).all()
    assert len(rows) == 2
    assert all(r.solved and r.hints_used == 1 and r.puzzle_id == 'sample' for r in rows)
    assert client.get(f'/api/rooms/{code}/state').get_json()['room']['status'] == 'ended'


# ---- solo ----

def test_solo_session_flow(flask_app, client):
    res = client.post('/api/solo', json={})
    assert res.status_code == 201
    data = res.get_json()
    sid = data['session_id']
    assert data['state']['cursor'] == {'row': 0, 'col': 0, 'direction': 'across'}

    res = client.post(f'/api/solo/{sid}/moves', json={'op': 'type_letter', 'args': ['h']})
    body = res.get_json()
    assert body['result'] == {'row': 0, 'col': 1, 'direction': 'across'}
    assert body['state']['entries'][0][0] == 'H'
    assert body['state']['progress'] == 4

    res = client.post(f'/api/solo/{sid}/moves', json={'op': 'check_word', 'args': [1, 'across']})
    assert res.get_json()['result'] == []

    assert client.post(f'/api/solo/{sid}/moves', json={'op': 'explode'}).status_code == 400
    assert client.post(f'/api/solo/{sid}/moves', json={'op': 'select_cell', 'args': [1]}).status_code == 400
    assert client.post(f'/api/solo/{sid}/moves', json={'op': 'select_cell', 'args': ['a', 'b']}).status_code == 400

    assert flask_app.test_client().get(f'/api/solo/{sid}').status_code == 404
    assert client.get(f'/api/solo/{sid}').status_code == 200


def test_solo_completion_recorded_once(flask_app, client):
    sid = client.post('/api/solo', json={'puzzle_id': 'sample'}).get_json()['session_id']
    res = client.post(f'/api/solo/{sid}/moves', json={'op': 'reveal_all'})
    assert res.get_json()['state']['status'] == 'solved'
    client.post(f'/api/solo/{sid}/moves', json={'op': 'reveal_all'})
    rows = PuzzleHistory.query.all()
    assert len(rows) == 1
    assert rows[0].room_code is None
    assert rows[0].player_id.startswith('guest-')


def test_solo_sessions_are_capped(flask_app, client):
    sids = [client.post('/api/solo', json={}).get_json()['session_id'] for _ in range(4)]
    assert client.get(f'/api/solo/{sids[0]}').status_code == 404
    assert client.get(f'/api/solo/{sids[-1]}').status_code == 200
