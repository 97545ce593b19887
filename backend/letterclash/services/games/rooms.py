"""Room state machine.

A room moves through ``lobby -> setup -> answering -> result`` and back to
``setup`` until every player has answered ``roundsPerPlayer`` times, then
``finished``. ``restart`` returns it to ``lobby``.

Commands validate everything before touching state, so a rejected command
(an ``IllegalAction``) leaves the room exactly as it was. All mutation,
including the deadline callback, happens under ``Room.lock``.
"""
import logging
import threading
import time
from typing import Callable, List, Optional

from letterclash.exceptions import IllegalAction
from .inputs import (
    PLAYER_ID_LENGTH,
    clamp_round_count,
    make_id,
    sanitize_letter,
    sanitize_name,
)
from .scoring import ROUND_TIME_SECONDS, EvaluationResult, round_half_up

logger = logging.getLogger(__name__)

LOBBY = 'lobby'
SETUP = 'setup'
ANSWERING = 'answering'
RESULT = 'result'
FINISHED = 'finished'

MIN_PLAYERS = 2
MAX_PLAYERS = 4
DEFAULT_ROUNDS_PER_PLAYER = 5


def _ms(timestamp):
    return None if timestamp is None else int(round(timestamp * 1000))


class Player:
    def __init__(self, name, connection_id, player_id=None):
        self.id = player_id or make_id(PLAYER_ID_LENGTH)
        self.name = name
        self.connection_id = connection_id
        self.connected = True
        self.reset_stats()

    def reset_stats(self):
        self.score = 0
        self.rounds_completed = 0
        self.turns_answered = 0
        self.full_completions = 0
        self.total_answer_time = 0
        self.streak = 0

    @property
    def average_time(self):
        if self.turns_answered == 0:
            return 0
        return round(self.total_answer_time / self.turns_answered, 1)

    def record_turn(self, evaluation: EvaluationResult):
        self.score += evaluation.total
        self.rounds_completed += 1
        self.turns_answered += 1
        self.total_answer_time += evaluation.elapsed_seconds
        if evaluation.full_clear:
            self.full_completions += 1
            self.streak += 1
        else:
            self.streak = 0

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'score': self.score,
            'roundsCompleted': self.rounds_completed,
            'turnsAnswered': self.turns_answered,
            'fullCompletions': self.full_completions,
            'averageTime': self.average_time,
            'connected': self.connected,
        }


class TurnResult:
    """Outcome of one answered (or timed out) turn, kept until the next one."""

    def __init__(self, selector_id, opponent_id, letter, evaluation: EvaluationResult):
        self.selector_id = selector_id
        self.opponent_id = opponent_id
        self.letter = letter
        self.evaluation = evaluation

    def to_dict(self):
        ev = self.evaluation.to_dict()
        return {
            'selectorId': self.selector_id,
            'opponentId': self.opponent_id,
            'letter': self.letter,
            'answers': ev['answers'],
            'validity': ev['validity'],
            'categoryDetails': ev['categoryDetails'],
            'elapsedSeconds': self.evaluation.elapsed_seconds,
            'timedOut': self.evaluation.timed_out,
            'scoreBreakdown': self.evaluation.breakdown(),
        }


class TurnState:
    def __init__(self):
        self.phase = LOBBY
        self.turn_number = 0
        self.last_result: Optional[TurnResult] = None
        self.selector_id = None
        self.clear_turn()

    def clear_turn(self):
        self.selected_letter = None
        self.opponent_id = None
        self.answer_started_at = None
        self.answer_deadline = None

    def to_dict(self):
        return {
            'phase': self.phase,
            'selectorId': self.selector_id,
            'selectedLetter': self.selected_letter,
            'opponentId': self.opponent_id,
            'answerStartedAt': _ms(self.answer_started_at),
            'answerDeadline': _ms(self.answer_deadline),
            'turnNumber': self.turn_number,
            'lastResult': self.last_result.to_dict() if self.last_result else None,
        }


class Room:
    """One game room: players, settings, turn state and its deadline timer."""

    def __init__(self, code, scoring, scheduler, clock: Callable[[], float] = time.time,
                 round_seconds=ROUND_TIME_SECONDS, timer_grace=0.03,
                 rounds_per_player=DEFAULT_ROUNDS_PER_PLAYER, listener=None):
        self.code = code
        self.scoring = scoring
        self.scheduler = scheduler
        self.clock = clock
        self.round_seconds = round_seconds
        self.timer_grace = timer_grace
        self.default_rounds = clamp_round_count(rounds_per_player, DEFAULT_ROUNDS_PER_PLAYER)
        self.rounds_per_player = self.default_rounds
        self.players: List[Player] = []
        self.host_id = None
        self.turn = TurnState()
        self.listener = listener
        self.lock = threading.RLock()
        self._timer = None
        # Counts armed deadlines for the life of the room; restart never resets it
        self._timer_generation = 0

    # ---- lookups ----

    def get_player(self, player_id) -> Optional[Player]:
        return next((p for p in self.players if p.id == player_id), None)

    def player_for_connection(self, connection_id) -> Optional[Player]:
        return next((p for p in self.players if p.connection_id == connection_id), None)

    @property
    def connected_players(self):
        return [p for p in self.players if p.connected]

    @property
    def is_full(self):
        return len(self.players) >= MAX_PLAYERS

    def all_players_done(self):
        return all(p.rounds_completed >= self.rounds_per_player for p in self.players)

    def eligible_opponents(self, selector_id):
        return [
            p for p in self.players
            if p.id != selector_id and p.connected and p.rounds_completed < self.rounds_per_player
        ]

    def find_next_selector(self, current_selector_id=None) -> Optional[Player]:
        """First connected player after the current selector who has someone to challenge."""
        if len(self.players) < MIN_PLAYERS:
            return None
        count = len(self.players)
        start = next((i for i, p in enumerate(self.players) if p.id == current_selector_id), -1)
        for offset in range(1, count + 1):
            candidate = self.players[(start + offset) % count]
            if candidate.connected and self.eligible_opponents(candidate.id):
                return candidate
        return None

    def snapshot(self):
        return {
            'id': self.code,
            'hostId': self.host_id,
            'settings': {'roundsPerPlayer': self.rounds_per_player},
            'state': self.turn.to_dict(),
            'players': [p.to_dict() for p in self.players],
        }

    # ---- guards ----

    @staticmethod
    def _require_member(actor):
        if actor is None:
            raise IllegalAction("You are not in this room.")

    def _require_host(self, actor, message):
        self._require_member(actor)
        if actor.id != self.host_id:
            raise IllegalAction(message)

    # ---- commands ----

    def join(self, connection_id, name) -> Player:
        with self.lock:
            if self.turn.phase != LOBBY:
                raise IllegalAction("Game already started. Create a new room.")
            if self.is_full:
                raise IllegalAction("Room is full.")
            player = Player(sanitize_name(name, 'Host' if not self.players else 'Player'), connection_id)
            while self.get_player(player.id):
                player.id = make_id(PLAYER_ID_LENGTH)
            self.players.append(player)
            if self.host_id is None:
                self.host_id = player.id
            logger.info(f"[room-join] room={self.code} player={player.id} count={len(self.players)}")
            self._publish()
            return player

    def set_rounds(self, actor, rounds_per_player):
        with self.lock:
            if self.turn.phase != LOBBY:
                raise IllegalAction("Rounds can only be changed in the lobby.")
            self._require_host(actor, "Only host can change rounds.")
            self.rounds_per_player = clamp_round_count(rounds_per_player, self.default_rounds)
            self._publish()

    def start(self, actor, rounds_per_player=None):
        with self.lock:
            if self.turn.phase != LOBBY:
                raise IllegalAction("Game is not in the lobby.")
            self._require_host(actor, "Only host can start.")
            if not MIN_PLAYERS <= len(self.players) <= MAX_PLAYERS:
                raise IllegalAction(f"Game needs {MIN_PLAYERS}-{MAX_PLAYERS} players.")

            self._cancel_timer()
            if rounds_per_player is not None:
                self.rounds_per_player = clamp_round_count(rounds_per_player, self.rounds_per_player)
            for player in self.players:
                player.reset_stats()
            self.turn.turn_number = 1
            self.turn.last_result = None
            self.turn.clear_turn()
            selector = self.find_next_selector(None)
            if selector is None:
                self._finish()
            else:
                self.turn.phase = SETUP
                self.turn.selector_id = selector.id
            logger.info(
                f"[game-start] room={self.code} players={len(self.players)} "
                f"rounds={self.rounds_per_player} selector={self.turn.selector_id}"
            )
            self._publish()

    def start_turn(self, actor, letter, opponent_id=None):
        with self.lock:
            if self.turn.phase != SETUP:
                raise IllegalAction("Round setup is not active.")
            self._require_member(actor)
            if actor.id != self.turn.selector_id:
                raise IllegalAction("It is not your turn to choose.")
            chosen_letter = sanitize_letter(letter)
            if chosen_letter is None:
                raise IllegalAction("Choose a valid letter A-Z.")

            opponents = self.eligible_opponents(actor.id)
            if len(self.players) == 2:
                opponent = opponents[0] if opponents else None
            else:
                opponent = next((p for p in opponents if p.id == opponent_id), None)
            if opponent is None:
                raise IllegalAction("Choose a valid opponent.")

            self._cancel_timer()
            now = self.clock()
            self.turn.phase = ANSWERING
            self.turn.selected_letter = chosen_letter
            self.turn.opponent_id = opponent.id
            self.turn.answer_started_at = now
            self.turn.answer_deadline = now + self.round_seconds
            self.turn.turn_number += 1
            turn_number = self.turn.turn_number
            self._timer_generation += 1
            generation = self._timer_generation
            self._timer = self.scheduler.schedule(
                self.round_seconds + self.timer_grace,
                lambda: self._expire(generation),
                label=f"room={self.code} turn={turn_number}",
            )
            logger.info(
                f"[turn-start] room={self.code} turn={turn_number} letter={chosen_letter} "
                f"selector={actor.id} opponent={opponent.id}"
            )
            self._publish()

    def submit(self, actor, answers):
        with self.lock:
            if self.turn.phase != ANSWERING:
                raise IllegalAction("No active answer turn.")
            self._require_member(actor)
            if actor.id != self.turn.opponent_id:
                raise IllegalAction("Only the active opponent can submit.")
            self._finalize(actor, answers if isinstance(answers, dict) else {}, timed_out=False)
            self._publish()

    def continue_turn(self, actor):
        with self.lock:
            if self.turn.phase != RESULT:
                raise IllegalAction("No result screen active.")
            self._require_member(actor)
            self._advance()
            self._publish()

    def restart(self, actor):
        with self.lock:
            self._require_host(actor, "Only host can restart.")
            self._cancel_timer()
            # Back in the lobby, departed players are dropped as lobby leavers are
            self.players = [p for p in self.players if p.connected]
            for player in self.players:
                player.reset_stats()
            self.turn = TurnState()
            logger.info(f"[game-restart] room={self.code} players={len(self.players)}")
            self._publish()

    def disconnect(self, connection_id) -> bool:
        """Apply recovery rules for a dropped connection.

        Returns True when no connected player is left and the room should be
        discarded.
        """
        with self.lock:
            player = self.player_for_connection(connection_id)
            if player is None:
                return not self.connected_players

            index = self.players.index(player)
            if self.turn.phase == LOBBY:
                self.players.remove(player)
            else:
                player.connected = False
            logger.info(f"[room-leave] room={self.code} player={player.id} phase={self.turn.phase}")

            if self.host_id == player.id:
                self.host_id = self._next_connected_from(index)
                logger.info(f"[host-transfer] room={self.code} host={self.host_id}")

            if not self.connected_players:
                self.close()
                return True

            if self.turn.phase == SETUP and (
                self.turn.selector_id == player.id
                or not self.eligible_opponents(self.turn.selector_id)
            ):
                self._advance()
            elif self.turn.phase == ANSWERING and self.turn.opponent_id == player.id:
                self._finalize(player, {}, timed_out=True)

            self._publish()
            return False

    def close(self):
        with self.lock:
            self._cancel_timer()

    # ---- internals ----

    def _next_connected_from(self, index):
        count = len(self.players)
        for offset in range(count):
            candidate = self.players[(index + offset) % count]
            if candidate.connected:
                return candidate.id
        return None

    def _finish(self):
        self.turn.phase = FINISHED
        self.turn.selector_id = None
        self.turn.clear_turn()

    def _advance(self):
        """Leave the result (or a dead setup) for the next selector, or finish."""
        self._cancel_timer()
        selector = None if self.all_players_done() else self.find_next_selector(self.turn.selector_id)
        if selector is None:
            self._finish()
            logger.info(f"[game-finish] room={self.code} turn={self.turn.turn_number}")
            return
        self.turn.phase = SETUP
        self.turn.selector_id = selector.id
        self.turn.clear_turn()

    def _finalize(self, opponent: Player, answers, timed_out):
        now = self.clock()
        started = self.turn.answer_started_at if self.turn.answer_started_at is not None else now
        elapsed = max(0, min(self.round_seconds, round_half_up(now - started)))
        evaluation = self.scoring.evaluate(
            self.turn.selected_letter, answers, elapsed, opponent.streak, timed_out=timed_out
        )
        opponent.record_turn(evaluation)
        self.turn.last_result = TurnResult(
            self.turn.selector_id, opponent.id, self.turn.selected_letter, evaluation
        )
        self.turn.phase = RESULT
        self.turn.answer_started_at = None
        self.turn.answer_deadline = None
        self._cancel_timer()
        logger.info(
            f"[turn-result] room={self.code} turn={self.turn.turn_number} opponent={opponent.id} "
            f"total={evaluation.total} valid={evaluation.valid_count} timed_out={timed_out}"
        )

    def _expire(self, generation):
        with self.lock:
            if self.turn.phase != ANSWERING or self._timer_generation != generation:
                logger.info(
                    f"[timer-abort] room={self.code} expected_generation={generation} "
                    f"actual_generation={self._timer_generation} phase={self.turn.phase}"
                )
                return
            opponent = self.get_player(self.turn.opponent_id)
            self._finalize(opponent, {}, timed_out=True)
            self._publish()

    def _cancel_timer(self):
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _publish(self):
        if self.listener is not None:
            self.listener(self)
