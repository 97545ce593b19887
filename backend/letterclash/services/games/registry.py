import logging
import threading
import time
from typing import Callable, Dict, Optional, Tuple

from letterclash.exceptions import RoomNotFound
from .inputs import ROOM_CODE_LENGTH, make_id, normalize_room_code
from .rooms import DEFAULT_ROUNDS_PER_PLAYER, Player, Room
from .scoring import ROUND_TIME_SECONDS

logger = logging.getLogger(__name__)


def generate_room_code():
    return make_id(ROOM_CODE_LENGTH)


class RoomRegistry:
    """All live rooms of this process, keyed by room code.

    Rooms are created by ``create`` and dropped by ``remove`` once their last
    connected player is gone. Nothing is persisted.
    """

    def __init__(self, scoring, scheduler, clock: Callable[[], float] = time.time,
                 round_seconds=ROUND_TIME_SECONDS, timer_grace=0.03,
                 default_rounds=DEFAULT_ROUNDS_PER_PLAYER,
                 listener: Optional[Callable[[Room], None]] = None,
                 code_factory: Callable[[], str] = generate_room_code):
        self.scoring = scoring
        self.scheduler = scheduler
        self.clock = clock
        self.round_seconds = round_seconds
        self.timer_grace = timer_grace
        self.default_rounds = default_rounds
        self.listener = listener
        self._code_factory = code_factory
        self._rooms: Dict[str, Room] = {}
        self._lock = threading.Lock()

    def create(self, host_connection_id, host_name) -> Tuple[Room, Player]:
        with self._lock:
            code = self._code_factory()
            while code in self._rooms:
                logger.warning(f"[room-create] code collision detected, regenerating: {code}")
                code = self._code_factory()
            room = Room(
                code,
                scoring=self.scoring,
                scheduler=self.scheduler,
                clock=self.clock,
                round_seconds=self.round_seconds,
                timer_grace=self.timer_grace,
                rounds_per_player=self.default_rounds,
                listener=self.listener,
            )
            self._rooms[code] = room
        host = room.join(host_connection_id, host_name or 'Host')
        logger.info(f"[room-create] room={code} host={host.id}")
        return room, host

    def get(self, room_id) -> Room:
        room = self._rooms.get(normalize_room_code(room_id))
        if room is None:
            raise RoomNotFound(room_id)
        return room

    def remove(self, room_id) -> None:
        with self._lock:
            room = self._rooms.pop(normalize_room_code(room_id), None)
        if room is not None:
            room.close()
            logger.info(f"[room-remove] room={room.code} remaining={len(self._rooms)}")

    def __contains__(self, room_id):
        return normalize_room_code(room_id) in self._rooms

    def __len__(self):
        return len(self._rooms)
