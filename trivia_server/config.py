import os
from dataclasses import dataclass, field
from typing import List, Optional

from dotenv import load_dotenv


def _split_origins(raw: str) -> List[str]:
    return [o.strip() for o in raw.split(",") if o.strip()]


@dataclass
class Settings:
    cors_origins: List[str] = field(default_factory=lambda: ["http://localhost:3000"])
    host: str = "0.0.0.0"
    port: int = 3001
    log_level: str = "INFO"
    max_players: int = 10
    room_code_length: int = 6
    question_api_key: Optional[str] = None
    question_base_url: Optional[str] = None
    question_model: str = "gemini-2.0-flash"
    question_timeout: float = 30.0
    question_max_retries: int = 1
    questions_file: Optional[str] = None
    # Multiplies every round duration; tests and local demos shrink it
    timer_scale: float = 1.0

    @classmethod
    def from_env(cls) -> "Settings":
        load_dotenv()
        return cls(
            cors_origins=_split_origins(os.getenv("CORS_ORIGINS", "http://localhost:3000")),
            host=os.getenv("HOST", "0.0.0.0"),
            port=int(os.getenv("PORT", "3001")),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            max_players=int(os.getenv("MAX_PLAYERS", "10")),
            room_code_length=int(os.getenv("ROOM_CODE_LENGTH", "6")),
            question_api_key=os.getenv("QUESTION_API_KEY") or None,
            question_base_url=os.getenv("QUESTION_BASE_URL") or None,
            question_model=os.getenv("QUESTION_MODEL", "gemini-2.0-flash"),
            question_timeout=float(os.getenv("QUESTION_TIMEOUT", "30")),
            question_max_retries=int(os.getenv("QUESTION_MAX_RETRIES", "1")),
            questions_file=os.getenv("QUESTIONS_FILE") or None,
            timer_scale=float(os.getenv("TIMER_SCALE", "1.0")),
        )
