NS = '/ws'
SCENARIO_A = {'name': 'Bob', 'place': 'Boston', 'animal': 'Bear', 'thing': 'Book'}


def send(sio_client, event, payload):
    return sio_client.emit(event, payload, namespace=NS, callback=True)


def last_update(sio_client):
    updates = [pkt for pkt in sio_client.get_received(NS) if pkt['name'] == 'room:update']
    assert updates, 'expected a room:update broadcast'
    return updates[-1]['args'][0]


def open_room(sio_factory, guests=1):
    host = sio_factory()
    created = send(host, 'room:create', {'name': 'Alice'})
    assert created['ok'] is True
    clients = [host]
    for i in range(guests):
        guest = sio_factory()
        joined = send(guest, 'room:join', {'roomId': created['roomId'].lower(), 'name': f'Guest {i}'})
        assert joined['ok'] is True
        clients.append(guest)
    return created['roomId'], clients


def test_connect_greets_client(sio_factory):
    sio_client = sio_factory()
    assert sio_client.is_connected(NS)
    received = sio_client.get_received(NS)
    assert any(pkt['name'] == 'connected' for pkt in received)


def test_create_and_join_broadcast(sio_factory):
    code, (host, guest) = open_room(sio_factory)
    state = last_update(host)
    assert state['id'] == code
    assert [p['name'] for p in state['players']] == ['Alice', 'Guest 0']
    assert last_update(guest)['players'][1]['name'] == 'Guest 0'


def test_join_errors(sio_factory):
    code, (host, guest) = open_room(sio_factory)
    stranger = sio_factory()
    assert send(stranger, 'room:join', {'roomId': 'ZZZZZ', 'name': 'X'}) == {'ok': False, 'error': 'Room not found.'}
    assert send(guest, 'room:join', {'roomId': code, 'name': 'Again'})['ok'] is False
    assert send(host, 'game:start', {'roomId': code})['ok'] is True
    late = send(stranger, 'room:join', {'roomId': code, 'name': 'Late'})
    assert late == {'ok': False, 'error': 'Game already started. Create a new room.'}


def test_only_host_controls_lobby(sio_factory):
    code, (host, guest) = open_room(sio_factory)
    assert send(guest, 'game:start', {'roomId': code}) == {'ok': False, 'error': 'Only host can start.'}
    assert send(guest, 'lobby:setRounds', {'roomId': code, 'roundsPerPlayer': 3})['ok'] is False
    assert send(host, 'lobby:setRounds', {'roomId': code, 'roundsPerPlayer': 3})['ok'] is True
    assert last_update(guest)['settings']['roundsPerPlayer'] == 3


def test_full_turn_over_socket(sio_factory, clock, client):
    code, (host, guest) = open_room(sio_factory)
    assert send(host, 'game:start', {'roomId': code, 'roundsPerPlayer': 1})['ok'] is True
    assert send(host, 'turn:start', {'roomId': code, 'letter': 'B'})['ok'] is True
    state = last_update(guest)['state']
    assert state['phase'] == 'answering'
    assert state['selectedLetter'] == 'B'
    assert state['answerDeadline'] - state['answerStartedAt'] == 60000

    clock.advance(10)
    assert send(host, 'turn:submit', {'roomId': code, 'answers': SCENARIO_A}) == {
        'ok': False, 'error': 'Only the active opponent can submit.'}
    assert send(guest, 'turn:submit', {'roomId': code, 'answers': SCENARIO_A})['ok'] is True
    result = last_update(host)['state']['lastResult']
    assert result['elapsedSeconds'] == 10
    assert result['scoreBreakdown']['total'] == 117

    assert send(guest, 'turn:continue', {'roomId': code})['ok'] is True
    assert client.get(f'/api/rooms/{code}').get_json()['state']['phase'] == 'setup'
    assert send(guest, 'turn:start', {'roomId': code, 'letter': 'c'})['ok'] is True
    assert send(host, 'turn:submit', {'roomId': code, 'answers': {}})['ok'] is True
    assert send(host, 'turn:continue', {'roomId': code})['ok'] is True
    assert last_update(guest)['state']['phase'] == 'finished'

    assert send(guest, 'game:restart', {'roomId': code}) == {'ok': False, 'error': 'Only host can restart.'}
    assert send(host, 'game:restart', {'roomId': code})['ok'] is True
    assert last_update(guest)['state']['phase'] == 'lobby'


def test_opponent_disconnect_times_out_turn(sio_factory):
    code, (host, guest) = open_room(sio_factory)
    send(host, 'game:start', {'roomId': code})
    send(host, 'turn:start', {'roomId': code, 'letter': 'B'})
    host.get_received(NS)
    guest.disconnect(namespace=NS)

    state = last_update(host)
    assert state['state']['phase'] == 'result'
    assert state['state']['lastResult']['timedOut'] is True
    assert state['players'][1]['connected'] is False


def test_last_player_leaving_removes_room(sio_factory, client):
    code, (host, guest) = open_room(sio_factory)
    assert client.get('/health').get_json()['rooms'] == 1
    guest.disconnect(namespace=NS)
    host.disconnect(namespace=NS)
    assert client.get('/health').get_json()['rooms'] == 0
    assert client.get(f'/api/rooms/{code}').status_code == 404


def test_creating_again_leaves_previous_room(sio_factory, client):
    code, (host, guest) = open_room(sio_factory)
    again = send(guest, 'room:create', {'name': 'Solo'})
    assert again['ok'] is True
    previous = client.get(f'/api/rooms/{code}').get_json()
    assert [p['name'] for p in previous['players']] == ['Alice']
    assert client.get('/health').get_json()['rooms'] == 2


def test_commands_need_a_known_room(sio_factory):
    sio_client = sio_factory()
    assert send(sio_client, 'turn:continue', {'roomId': 'ZZZZZ'}) == {'ok': False, 'error': 'Room not found.'}
    assert send(sio_client, 'game:start', None)['ok'] is False
