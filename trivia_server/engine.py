"""Room lifecycle engine.

Every inbound action goes through ``RoomEngine.dispatch``. Handlers check all
of their guards before touching a room and finish mutating it before their
first ``await``, so on a single event loop no other action or timer callback
can observe a half-applied change.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from trivia_server.errors import (
    Full,
    GameError,
    InvalidPayload,
    InvalidState,
    NotFound,
    Unauthorized,
    UpstreamFailure,
)
from trivia_server.game_logic import (
    calculate_score,
    clamp_question_count,
    normalize_question_time,
    normalize_room_code,
)
from trivia_server.identity import IdentityResolver
from trivia_server.models import (
    DEFAULT_DIFFICULTY,
    DEFAULT_QUESTION_COUNT,
    DEFAULT_TOPIC,
    NO_ANSWER,
    Player,
    Room,
    RoomStatus,
)
from trivia_server.room_store import RoomStore
from trivia_server.round_timer import RoundTimer

logger = logging.getLogger(__name__)

Outgoing = Tuple[str, str, Any]  # (room code, event, payload)


@dataclass
class Action:
    kind: str
    caller_id: str
    payload: Dict[str, Any] = field(default_factory=dict)


def _is_number(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _text(value) -> Optional[str]:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


class RoomEngine:
    def __init__(self, store: RoomStore, timer: RoundTimer, identity: IdentityResolver,
                 generator, gateway, max_players: int = 10):
        self.store = store
        self.timer = timer
        self.identity = identity
        self.generator = generator
        self.gateway = gateway
        self.max_players = max_players
        self.handlers = {
            'createRoom': self.create_room,
            'joinRoom': self.join_room,
            'rejoinRoom': self.rejoin_room,
            'updateSettings': self.update_settings,
            'generateQuestions': self.generate_questions,
            'startQuiz': self.start_quiz,
            'selectAnswer': self.select_answer,
            'nextQuestion': self.next_question,
            'playAgain': self.play_again,
            'leaveRoom': self.leave_room,
            'disconnect': self.disconnect,
        }

    async def dispatch(self, action: Action):
        handler = self.handlers.get(action.kind)
        if handler is None:
            await self.gateway.reply(action.caller_id, 'error', {'message': f"Unknown action {action.kind}"})
            return
        payload = action.payload if isinstance(action.payload, dict) else {}
        try:
            await handler(action.caller_id, payload)
        except GameError as e:
            logger.info(f"🚫 {action.kind} rejected for {action.caller_id}: {e.message}")
            await self.gateway.reply(action.caller_id, 'error', {'message': e.message})
        except Exception:
            logger.exception(f"❌ {action.kind} failed for {action.caller_id}")
            await self.gateway.reply(action.caller_id, 'error', {'message': 'Something went wrong'})

    def shutdown(self):
        self.timer.cancel_all()

    # ---- guards ----

    def _room_of(self, caller_id: str) -> Room:
        room = self.store.room_for(caller_id)
        if room is None:
            raise NotFound("Room not found")
        return room

    def _require_admin(self, room: Room, caller_id: str):
        if room.admin_id != caller_id:
            raise Unauthorized("Not authorized")

    def _require_lobby(self, room: Room):
        if not room.is_lobby_like:
            raise InvalidState("Room settings can only change in the lobby")

    # ---- membership ----

    def _admit(self, room: Room, caller_id: str, client_id: Optional[str], name: str) -> Player:
        player = Player(
            connection_id=caller_id,
            client_id=client_id or f"{caller_id}-{int(time.time() * 1000)}",
            name=name,
            # Anyone arriving in a rematch lobby is already waiting for the next match
            ready=room.rematch,
        )
        room.players.append(player)
        self.identity.attach(caller_id, room.code)
        logger.info(f"👤 {name} joined room {room.code}")
        return player

    def _remove_player(self, connection_id: str, code: str) -> List[Outgoing]:
        """Drop a connection's player from a room. The index entry is already released."""
        room = self.store.get(code)
        if room is None:
            return []
        player = room.find_player(connection_id)
        if player is None:
            return []

        room.players.remove(player)
        logger.info(f"👋 {player.name} left room {code}")
        if not room.players:
            self.store.delete(code)
            self.timer.cancel(code)
            logger.info(f"🗑️ Room {code} closed")
            return []

        if room.admin_id == connection_id:
            room.admin_id = room.players[0].connection_id
            logger.info(f"👑 Room {code} admin passed to {room.players[0].name}")

        outgoing: List[Outgoing] = []
        if room.status == RoomStatus.QUIZ and self.timer.is_active(code) and room.all_answered():
            self.timer.cancel(code)
            outgoing.append((code, 'allAnswered', room.snapshot()))
        outgoing.append((code, 'roomUpdated', room.snapshot()))
        return outgoing

    def _leave_previous(self, caller_id: str, code: str) -> Tuple[Optional[str], List[Outgoing]]:
        previous = self.store.room_code_for(caller_id)
        if previous is None or previous == code:
            return None, []
        self.identity.release(caller_id)
        return previous, self._remove_player(caller_id, previous)

    async def _publish_all(self, outgoing: List[Outgoing]):
        for code, event, payload in outgoing:
            await self.gateway.publish(code, event, payload)

    async def _enter(self, caller_id: str, room: Room, client_id: Optional[str], name: str):
        player = self.identity.resolve(room, client_id, caller_id)
        if player is None and len(room.players) >= self.max_players:
            raise Full()

        previous, outgoing = self._leave_previous(caller_id, room.code)
        replaced = None
        if player is None:
            player = self._admit(room, caller_id, client_id, name)
        else:
            replaced = self.identity.rebind(room, player, caller_id)
        snapshot = room.snapshot()

        if previous:
            await self.gateway.leave(caller_id, previous)
        if replaced and replaced != caller_id:
            # The superseded socket must stop receiving this room's broadcasts
            await self.gateway.leave(replaced, room.code)
        await self._publish_all(outgoing)
        await self.gateway.join(caller_id, room.code)
        await self.gateway.publish(room.code, 'roomUpdated', snapshot)
        await self.gateway.reply(caller_id, 'roomJoined', {'room': snapshot, 'playerId': player.connection_id})

    # ---- actions ----

    async def create_room(self, caller_id: str, payload: Dict[str, Any]):
        name = _text(payload.get('playerName'))
        if name is None:
            raise InvalidPayload("Player name is required")

        question_count = payload.get('questionCount')
        question_count = clamp_question_count(question_count) if _is_number(question_count) else DEFAULT_QUESTION_COUNT
        code = self.store.new_code()

        previous, outgoing = self._leave_previous(caller_id, code)
        client_id = _text(payload.get('clientId')) or f"{caller_id}-{int(time.time() * 1000)}"
        room = Room(
            code=code,
            admin_id=caller_id,
            topic=_text(payload.get('topic')) or DEFAULT_TOPIC,
            difficulty=_text(payload.get('difficulty')) or DEFAULT_DIFFICULTY,
            question_count=question_count,
            total_questions=question_count,
        )
        if _is_number(payload.get('questionTime')):
            room.question_time = normalize_question_time(payload['questionTime'])
        self.store.add(room)
        self._admit(room, caller_id, client_id, name)
        snapshot = room.snapshot()
        logger.info(f"🎮 Room created: {code} by {name}")

        if previous:
            await self.gateway.leave(caller_id, previous)
        await self._publish_all(outgoing)
        await self.gateway.join(caller_id, code)
        await self.gateway.reply(caller_id, 'roomCreated', {
            'room': snapshot,
            'playerId': caller_id,
            'clientId': client_id,
        })

    async def join_room(self, caller_id: str, payload: Dict[str, Any]):
        code = normalize_room_code(payload.get('roomCode'))
        room = self.store.get(code)
        if room is None:
            raise NotFound("Room not found")
        name = _text(payload.get('playerName')) or 'Player'
        await self._enter(caller_id, room, _text(payload.get('clientId')), name)

    async def rejoin_room(self, caller_id: str, payload: Dict[str, Any]):
        code = normalize_room_code(payload.get('roomCode'))
        client_id = _text(payload.get('clientId'))
        if not code or not client_id:
            raise InvalidPayload("Invalid rejoin payload")
        room = self.store.get(code)
        if room is None:
            raise NotFound("Room not found")
        name = _text(payload.get('playerName')) or 'Player'
        await self._enter(caller_id, room, client_id, name)

    async def update_settings(self, caller_id: str, payload: Dict[str, Any]):
        room = self._room_of(caller_id)
        self._require_admin(room, caller_id)
        self._require_lobby(room)

        topic = payload.get('topic')
        if topic is not None and _text(topic) is None:
            raise InvalidPayload("Topic must be a non-empty string")
        difficulty = payload.get('difficulty')
        if difficulty is not None and _text(difficulty) is None:
            raise InvalidPayload("Difficulty must be a non-empty string")

        if topic is not None:
            room.topic = _text(topic)
        if difficulty is not None:
            room.difficulty = _text(difficulty)
        if _is_number(payload.get('questionCount')):
            room.question_count = clamp_question_count(payload['questionCount'])
            room.total_questions = room.question_count
        if _is_number(payload.get('questionTime')):
            room.question_time = normalize_question_time(payload['questionTime'])

        # Any settings change makes the current question set stale
        room.invalidate_questions()
        await self.gateway.publish(room.code, 'roomUpdated', room.snapshot())

    async def generate_questions(self, caller_id: str, payload: Dict[str, Any]):
        room = self._room_of(caller_id)
        self._require_admin(room, caller_id)
        self._require_lobby(room)
        if room.generating:
            raise InvalidState("Questions are already being generated")

        code = room.code
        version = room.settings_version
        topic, difficulty, count = room.topic, room.difficulty, room.question_count
        room.generating = True
        logger.info(f"🧠 Generating {count} questions for room {code} ({topic}, {difficulty})")

        try:
            await self.gateway.publish(code, 'generatingQuestions', {'roomCode': code})
            questions = await self.generator.generate(topic, difficulty, count)
        except GameError:
            raise
        except Exception as e:
            logger.exception(f"❌ Question generation crashed for room {code}")
            raise UpstreamFailure() from e
        finally:
            if self.store.get(code) is room:
                room.generating = False

        if self.store.get(code) is not room:
            logger.info(f"Room {code} closed while generating, dropping questions")
            return
        if room.settings_version != version or not room.is_lobby_like:
            raise InvalidState("Settings changed while generating, please generate again")
        if len(questions) != count:
            raise UpstreamFailure(f"Expected {count} questions, got {len(questions)}")

        room.questions = list(questions)
        room.questions_ready = True
        snapshot = room.snapshot()
        await self.gateway.publish(code, 'questionsGenerated', snapshot)
        await self.gateway.publish(code, 'roomUpdated', snapshot)

    async def start_quiz(self, caller_id: str, payload: Dict[str, Any]):
        room = self._room_of(caller_id)
        if not room.questions_ready or not room.questions:
            raise InvalidState("Generate questions first")
        self._require_admin(room, caller_id)
        if not room.is_lobby_like:
            raise InvalidState("Quiz already running")
        if room.rematch and not all(p.ready for p in room.players):
            raise InvalidState("Waiting for all players to be ready")

        for player in room.players:
            player.reset_for_match()
        room.rematch = False
        room.status = RoomStatus.QUIZ
        room.current_question = 0
        self.timer.start(room)
        snapshot = room.snapshot()
        logger.info(f"🚀 Quiz started in room {room.code}")

        await self.gateway.publish(room.code, 'quizStarted', snapshot)
        await self.gateway.publish(room.code, 'roomUpdated', snapshot)

    def _elapsed(self, room: Room, payload: Dict[str, Any]) -> float:
        limit = float(room.question_time)
        remaining = payload.get('timeRemaining')
        if _is_number(remaining):
            # Client-reported clock, trusted as-is apart from clamping
            elapsed = limit - remaining
        elif room.question_started_at is not None:
            # Loop time runs at the timer's scale, round time does not
            elapsed = (asyncio.get_running_loop().time() - room.question_started_at) / self.timer.time_scale
        else:
            elapsed = limit
        return round(min(max(elapsed, 0.0), limit), 2)

    async def select_answer(self, caller_id: str, payload: Dict[str, Any]):
        room = self._room_of(caller_id)
        if room.status != RoomStatus.QUIZ:
            raise InvalidState("Quiz is not running")
        player = room.find_player(caller_id)
        if player is None:
            raise NotFound("Player not found")
        if player.answered:
            raise InvalidState("Answer already submitted")
        question = room.current()
        if question is None:
            raise InvalidState("No active question")

        answer = payload.get('answerIndex', payload.get('answer'))
        if answer is None or answer == NO_ANSWER:
            answer = None
        elif not isinstance(answer, int) or isinstance(answer, bool) or not 0 <= answer < len(question.options):
            raise InvalidPayload("Invalid answer")

        elapsed = self._elapsed(room, payload)
        points = calculate_score(answer, question.correct_answer, elapsed, room.question_time)
        player.answered = True
        player.selected_answer = NO_ANSWER if answer is None else answer
        player.answer_time = elapsed
        player.round_points = points
        player.score += points

        everyone_answered = room.all_answered()
        if everyone_answered:
            self.timer.cancel(room.code)
        snapshot = room.snapshot()

        await self.gateway.publish(room.code, 'playerSubmitted', {
            'playerId': player.connection_id,
            'playerName': player.name,
        })
        if everyone_answered:
            await self.gateway.publish(room.code, 'allAnswered', snapshot)
        await self.gateway.publish(room.code, 'roomUpdated', snapshot)

    async def next_question(self, caller_id: str, payload: Dict[str, Any]):
        room = self._room_of(caller_id)
        self._require_admin(room, caller_id)
        if room.status != RoomStatus.QUIZ:
            raise InvalidState("Quiz is not running")

        for player in room.players:
            player.reset_for_question()
        room.current_question += 1

        if room.current_question >= len(room.questions):
            room.current_question = len(room.questions)
            room.status = RoomStatus.FINISHED
            self.timer.cancel(room.code)
            snapshot = room.snapshot()
            logger.info(f"🏁 Quiz finished in room {room.code}")
            await self.gateway.publish(room.code, 'quizFinished', snapshot)
        else:
            self.timer.start(room)
            snapshot = room.snapshot()
            await self.gateway.publish(room.code, 'questionUpdated', snapshot)
        await self.gateway.publish(room.code, 'roomUpdated', snapshot)

    async def play_again(self, caller_id: str, payload: Dict[str, Any]):
        room = self._room_of(caller_id)
        player = room.find_player(caller_id)
        if player is None:
            raise NotFound("Player not found")
        if room.status != RoomStatus.FINISHED:
            raise InvalidState("Quiz has not finished yet")

        room.rematch = True
        # New match, new questions
        room.invalidate_questions()
        player.ready = True
        self.timer.cancel(room.code)
        snapshot = room.snapshot()

        await self.gateway.reply(caller_id, 'goToLobby', snapshot)
        await self.gateway.publish(room.code, 'roomUpdated', snapshot)

    async def leave_room(self, caller_id: str, payload: Dict[str, Any]):
        code = self.identity.release(caller_id)
        if code is None:
            return
        outgoing = self._remove_player(caller_id, code)
        await self.gateway.leave(caller_id, code)
        await self._publish_all(outgoing)

    async def disconnect(self, caller_id: str, payload: Dict[str, Any]):
        code = self.identity.release(caller_id)
        if code is None:
            return
        await self._publish_all(self._remove_player(caller_id, code))
