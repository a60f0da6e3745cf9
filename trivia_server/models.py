from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

NO_ANSWER = -1
DEFAULT_TOPIC = "General Knowledge"
DEFAULT_DIFFICULTY = "medium"
DEFAULT_QUESTION_COUNT = 5
DEFAULT_QUESTION_TIME = 30


class RoomStatus(str, Enum):
    WAITING = 'waiting'
    QUIZ = 'quiz'
    FINISHED = 'finished'


class Question(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str
    question: str
    options: List[str] = Field(min_length=4, max_length=4)
    correct_answer: int = Field(ge=0, le=3)  # Index of correct option (0-3)
    difficulty: str = DEFAULT_DIFFICULTY


class Player(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    connection_id: str = Field(alias='id')
    client_id: str
    name: str
    score: int = 0
    answered: bool = False
    selected_answer: Optional[int] = None
    answer_time: Optional[float] = None
    round_points: int = 0
    ready: bool = False

    def reset_for_question(self):
        self.answered = False
        self.selected_answer = None
        self.answer_time = None
        self.round_points = 0

    def reset_for_match(self):
        self.reset_for_question()
        self.score = 0
        self.ready = False


class Room(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    code: str
    admin_id: str
    status: RoomStatus = RoomStatus.WAITING
    rematch: bool = False
    players: List[Player] = Field(default_factory=list)
    questions: List[Question] = Field(default_factory=list)
    questions_ready: bool = False
    current_question: int = 0
    topic: str = DEFAULT_TOPIC
    difficulty: str = DEFAULT_DIFFICULTY
    question_count: int = DEFAULT_QUESTION_COUNT
    total_questions: int = DEFAULT_QUESTION_COUNT
    question_time: int = DEFAULT_QUESTION_TIME
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    # Server-side bookkeeping, never sent to clients
    settings_version: int = Field(default=0, exclude=True)
    generating: bool = Field(default=False, exclude=True)
    question_started_at: Optional[float] = Field(default=None, exclude=True)

    @property
    def is_lobby_like(self) -> bool:
        return self.status == RoomStatus.WAITING or (
            self.status == RoomStatus.FINISHED and self.rematch
        )

    def find_player(self, connection_id: str) -> Optional[Player]:
        return next((p for p in self.players if p.connection_id == connection_id), None)

    def all_answered(self) -> bool:
        return bool(self.players) and all(p.answered for p in self.players)

    def current(self) -> Optional[Question]:
        if 0 <= self.current_question < len(self.questions):
            return self.questions[self.current_question]
        return None

    def invalidate_questions(self):
        self.questions = []
        self.questions_ready = False
        self.settings_version += 1

    def snapshot(self) -> Dict[str, Any]:
        """Camel-cased room state as broadcast to clients."""
        return self.model_dump(mode='json', by_alias=True)
