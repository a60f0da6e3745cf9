import asyncio
import logging
from dataclasses import dataclass
from typing import Dict, Optional

from trivia_server.models import NO_ANSWER, Room, RoomStatus
from trivia_server.room_store import RoomStore

logger = logging.getLogger(__name__)


@dataclass
class _Slot:
    task: asyncio.Task
    seconds: int
    question_index: int


class RoundTimer:
    """
    One countdown per room, keyed by room code.

    The expiry callback never holds on to a Room instance: it looks the room
    up again when it fires and does nothing if the room is gone or has moved
    on to another question.
    """

    def __init__(self, store: RoomStore, gateway, time_scale: float = 1.0):
        self.store = store
        self.gateway = gateway
        self.time_scale = time_scale
        self._slots: Dict[str, _Slot] = {}

    def start(self, room: Room):
        self.cancel(room.code)
        loop = asyncio.get_running_loop()
        seconds = int(room.question_time)
        room.question_started_at = loop.time()
        task = loop.create_task(
            self._run(room.code, room.current_question, seconds * self.time_scale)
        )
        self._slots[room.code] = _Slot(task, seconds, room.current_question)
        logger.info(f"⏱️ [timer-set] room={room.code} question={room.current_question} duration={seconds}s")

    def cancel(self, code: str) -> bool:
        slot = self._slots.pop(code, None)
        if slot is None:
            return False
        if slot.task is not asyncio.current_task():
            slot.task.cancel()
        logger.debug(f"[timer-cancel] room={code} question={slot.question_index}")
        return True

    def is_active(self, code: str) -> bool:
        return code in self._slots

    def duration(self, code: str) -> Optional[int]:
        slot = self._slots.get(code)
        return slot.seconds if slot else None

    def cancel_all(self):
        for code in list(self._slots):
            self.cancel(code)

    async def _run(self, code: str, question_index: int, delay: float):
        await asyncio.sleep(delay)
        slot = self._slots.get(code)
        if slot is None or slot.task is not asyncio.current_task():
            return
        del self._slots[code]
        try:
            await self.expire(code, question_index)
        except Exception:
            logger.exception(f"[timer-error] room={code} question={question_index}")

    async def expire(self, code: str, question_index: int):
        """Close the round: unanswered players are recorded as no-answer."""
        room = self.store.get(code)
        if room is None:
            logger.info(f"[timer-abort] room={code} no longer exists")
            return
        if room.status != RoomStatus.QUIZ or room.current_question != question_index:
            logger.info(f"[timer-abort] room={code} moved on from question {question_index}")
            return

        for player in room.players:
            if not player.answered:
                player.answered = True
                player.selected_answer = NO_ANSWER
                player.answer_time = float(room.question_time)
                player.round_points = 0

        logger.info(f"⏰ [timer-fire] room={code} question={question_index}")
        snapshot = room.snapshot()
        await self.gateway.publish(code, 'timeUp', snapshot)
        await self.gateway.publish(code, 'allAnswered', snapshot)
        await self.gateway.publish(code, 'roomUpdated', snapshot)
