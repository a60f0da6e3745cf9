"""
Shared fixtures: an in-memory broadcast gateway that records everything it is
asked to deliver, and a question generator that can be told to fail or hold.
"""
import asyncio
import itertools
from typing import Optional

import pytest
import pytest_asyncio

from trivia_server.engine import Action, RoomEngine
from trivia_server.errors import UpstreamFailure
from trivia_server.identity import IdentityResolver
from trivia_server.models import Question
from trivia_server.room_store import RoomStore
from trivia_server.round_timer import RoundTimer


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------

class FakeGateway:
    def __init__(self):
        self.published: list[tuple] = []  # (room_code, event, payload)
        self.replies: list[tuple] = []    # (connection_id, event, payload)
        self.groups: dict[str, set] = {}

    async def publish(self, room_code, event, payload=None):
        self.published.append((room_code, event, payload))

    async def reply(self, connection_id, event, payload=None):
        self.replies.append((connection_id, event, payload))

    async def join(self, connection_id, room_code):
        self.groups.setdefault(room_code, set()).add(connection_id)

    async def leave(self, connection_id, room_code):
        self.groups.get(room_code, set()).discard(connection_id)

    def events(self, name: str) -> list:
        """Payloads of every published event with the given name."""
        return [p for _, e, p in self.published if e == name]

    def replies_to(self, connection_id: str, name: str) -> list:
        return [p for c, e, p in self.replies if c == connection_id and e == name]

    def errors(self, connection_id: str) -> list[str]:
        return [p['message'] for p in self.replies_to(connection_id, 'error')]

    def clear(self):
        self.published.clear()
        self.replies.clear()


def make_questions(count: int, difficulty: str = 'easy') -> list[Question]:
    return [
        Question(
            id=f"q{i}",
            question=f"Question {i + 1}?",
            options=["A", "B", "C", "D"],
            correct_answer=0,
            difficulty=difficulty,
        )
        for i in range(count)
    ]


class FakeGenerator:
    def __init__(self):
        self.calls: list[tuple] = []
        self.fail = False
        self.short_by = 0
        self.gate: Optional[asyncio.Event] = None

    async def generate(self, topic, difficulty, count):
        self.calls.append((topic, difficulty, count))
        if self.gate is not None:
            await self.gate.wait()
        if self.fail:
            raise UpstreamFailure()
        return make_questions(count - self.short_by, difficulty)


def sequential_codes():
    counter = itertools.count(1)
    return lambda length: f"ROOM{next(counter):02d}"[:length].ljust(length, '0')


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def generator():
    return FakeGenerator()


@pytest.fixture
def store():
    return RoomStore(code_length=6, code_factory=sequential_codes())


@pytest.fixture
def time_scale():
    return 1.0


@pytest_asyncio.fixture
async def timer(store, gateway, time_scale):
    round_timer = RoundTimer(store, gateway, time_scale=time_scale)
    yield round_timer
    round_timer.cancel_all()


@pytest_asyncio.fixture
async def engine(store, timer, gateway, generator):
    room_engine = RoomEngine(store, timer, IdentityResolver(store), generator, gateway, max_players=10)
    yield room_engine
    room_engine.shutdown()


@pytest.fixture
def act(engine):
    async def _act(kind, caller, **payload):
        await engine.dispatch(Action(kind=kind, caller_id=caller, payload=payload))
    return _act
