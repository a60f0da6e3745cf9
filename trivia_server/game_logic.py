import math
import random
import string
from typing import Optional

from trivia_server.models import DEFAULT_QUESTION_TIME

BASE_POINTS = 10
MAX_TIME_BONUS = 10
MIN_QUESTION_COUNT = 1
MAX_QUESTION_COUNT = 20
ALLOWED_QUESTION_TIMES = (10, 15, 20, 25, 30)
ROOM_CODE_ALPHABET = string.ascii_uppercase + string.digits


def calculate_score(answer_index: Optional[int], correct_index: int,
                    seconds_elapsed: float, time_limit: float) -> int:
    """
    Points for a single answer.

    Correct answer: 10 base points plus a time bonus of up to 10 points,
    proportional to the time left on the clock.
    Wrong or missing answer: 0 points.
    """
    if answer_index is None or answer_index != correct_index or time_limit <= 0:
        return 0

    seconds_remaining = min(max(time_limit - seconds_elapsed, 0), time_limit)
    bonus = math.floor(seconds_remaining * MAX_TIME_BONUS / time_limit)
    return BASE_POINTS + bonus


def clamp_question_count(value) -> int:
    return max(MIN_QUESTION_COUNT, min(MAX_QUESTION_COUNT, int(value)))


def normalize_question_time(value) -> int:
    return int(value) if value in ALLOWED_QUESTION_TIMES else DEFAULT_QUESTION_TIME


def normalize_room_code(raw) -> str:
    return str(raw or '').strip().upper()


def generate_room_code(length: int = 6) -> str:
    return ''.join(random.choices(ROOM_CODE_ALPHABET, k=length))
