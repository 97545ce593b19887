import logging
import threading
from typing import Dict, Optional

from flask import current_app, request
from flask_socketio import emit, join_room, leave_room

from letterclash import socketio
from letterclash.exceptions import GameError, RoomNotFound

logger = logging.getLogger(__name__)

NAMESPACE = '/ws'
ROOM_UPDATE = 'room:update'


def ack_ok(**payload):
    return {'ok': True, **payload}


def ack_error(message):
    return {'ok': False, 'error': message}


def _payload(data) -> dict:
    return data if isinstance(data, dict) else {}


class ConnectionGateway:
    """Maps socket connections to rooms and routes commands to them.

    Each command resolves the room and the acting player, then runs under the
    room's lock so commands for one room never interleave. Errors come back
    as acknowledgements; nothing here raises to the transport.
    """

    def __init__(self, registry):
        self.registry = registry
        self._room_by_sid: Dict[str, str] = {}
        self._lock = threading.Lock()

    def room_for(self, sid) -> Optional[str]:
        return self._room_by_sid.get(sid)

    def snapshot(self, room_id):
        room = self.registry.get(room_id)
        with room.lock:
            return room.snapshot()

    # ---- membership ----

    def create_room(self, sid, data):
        data = _payload(data)
        self._detach(sid)
        room, player = self.registry.create(sid, data.get('name') or 'Host')
        self._bind(sid, room.code)
        return ack_ok(roomId=room.code, playerId=player.id)

    def join_room(self, sid, data):
        data = _payload(data)
        try:
            room = self.registry.get(data.get('roomId'))
            if self.room_for(sid) == room.code:
                raise GameError("You are already in this room.")
            player = room.join(sid, data.get('name') or 'Player')
        except GameError as exc:
            return self._rejected(sid, 'room:join', data, exc)
        self._detach(sid)
        self._bind(sid, room.code)
        return ack_ok(roomId=room.code, playerId=player.id)

    def disconnect(self, sid):
        with self._lock:
            code = self._room_by_sid.pop(sid, None)
        if not code:
            return
        try:
            room = self.registry.get(code)
        except RoomNotFound:
            return
        if room.disconnect(sid):
            self.registry.remove(code)

    # ---- room commands ----

    def set_rounds(self, sid, data):
        data = _payload(data)
        return self._dispatch(sid, 'lobby:setRounds', data,
                              lambda room, actor: room.set_rounds(actor, data.get('roundsPerPlayer')))

    def start_game(self, sid, data):
        data = _payload(data)
        return self._dispatch(sid, 'game:start', data,
                              lambda room, actor: room.start(actor, data.get('roundsPerPlayer')))

    def start_turn(self, sid, data):
        data = _payload(data)
        return self._dispatch(sid, 'turn:start', data,
                              lambda room, actor: room.start_turn(actor, data.get('letter'), data.get('opponentId')))

    def submit_turn(self, sid, data):
        data = _payload(data)
        return self._dispatch(sid, 'turn:submit', data,
                              lambda room, actor: room.submit(actor, data.get('answers') or {}))

    def continue_turn(self, sid, data):
        data = _payload(data)
        return self._dispatch(sid, 'turn:continue', data,
                              lambda room, actor: room.continue_turn(actor))

    def restart_game(self, sid, data):
        data = _payload(data)
        return self._dispatch(sid, 'game:restart', data,
                              lambda room, actor: room.restart(actor))

    # ---- helpers ----

    def _dispatch(self, sid, event, data, command):
        try:
            room = self.registry.get(data.get('roomId'))
            with room.lock:
                command(room, room.player_for_connection(sid))
        except GameError as exc:
            return self._rejected(sid, event, data, exc)
        return ack_ok()

    def _rejected(self, sid, event, data, exc):
        logger.info(f"[rejected] event={event} sid={sid} room={data.get('roomId')} error={exc.message}")
        return ack_error(exc.message)

    def _bind(self, sid, code):
        with self._lock:
            self._room_by_sid[sid] = code

    def _detach(self, sid):
        """Leave the previous room (if any) before entering another one."""
        self.disconnect(sid)


def broadcast_room(room):
    # Use socketio.emit since this may be called from a background task
    socketio.emit(ROOM_UPDATE, room.snapshot(), to=room.code, namespace=NAMESPACE)


# ---- Socket.IO handlers ----

def _get_sid() -> str:
    # type: ignore: request.sid exists in Socket.IO context
    return request.sid  # type: ignore


def _gateway() -> ConnectionGateway:
    return current_app.extensions['letterclash']['gateway']


def _enter(gateway, ack, previous):
    if not ack.get('ok'):
        return ack
    code = ack['roomId']
    if previous and previous != code:
        leave_room(previous)
    join_room(code)
    # The join broadcast went out before this socket was in the room
    emit(ROOM_UPDATE, gateway.snapshot(code))
    return ack


def handle_connect(auth=None):
    emit('connected', {'sid': _get_sid()})


def handle_disconnect(reason=None):
    sid = _get_sid()
    current_app.logger.info(f"[disconnect] sid={sid} reason={reason}")
    _gateway().disconnect(sid)


def handle_room_create(data=None):
    gateway = _gateway()
    previous = gateway.room_for(_get_sid())
    return _enter(gateway, gateway.create_room(_get_sid(), data), previous)


def handle_room_join(data=None):
    gateway = _gateway()
    previous = gateway.room_for(_get_sid())
    return _enter(gateway, gateway.join_room(_get_sid(), data), previous)


def handle_set_rounds(data=None):
    return _gateway().set_rounds(_get_sid(), data)


def handle_game_start(data=None):
    return _gateway().start_game(_get_sid(), data)


def handle_turn_start(data=None):
    return _gateway().start_turn(_get_sid(), data)


def handle_turn_submit(data=None):
    return _gateway().submit_turn(_get_sid(), data)


def handle_turn_continue(data=None):
    return _gateway().continue_turn(_get_sid(), data)


def handle_game_restart(data=None):
    return _gateway().restart_game(_get_sid(), data)


def register_socketio_handlers() -> None:
    """Register Socket.IO event handlers on namespace '/ws'."""
    socketio.on_event('connect', handle_connect, namespace=NAMESPACE)
    socketio.on_event('disconnect', handle_disconnect, namespace=NAMESPACE)
    socketio.on_event('room:create', handle_room_create, namespace=NAMESPACE)
    socketio.on_event('room:join', handle_room_join, namespace=NAMESPACE)
    socketio.on_event('lobby:setRounds', handle_set_rounds, namespace=NAMESPACE)
    socketio.on_event('game:start', handle_game_start, namespace=NAMESPACE)
    socketio.on_event('turn:start', handle_turn_start, namespace=NAMESPACE)
    socketio.on_event('turn:submit', handle_turn_submit, namespace=NAMESPACE)
    socketio.on_event('turn:continue', handle_turn_continue, namespace=NAMESPACE)
    socketio.on_event('game:restart', handle_game_restart, namespace=NAMESPACE)
