from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

load_dotenv()

_DEFAULT_SEED_FILE = Path(__file__).resolve().parents[1] / "data" / "sample_survey.json"
_TRUTHY = {"1", "true", "yes", "on"}
_FALSY = {"0", "false", "no", "off"}


def _strip_or_none(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    cleaned = value.strip()
    return cleaned or None


def _parse_bool(name: str, default: bool) -> bool:
    raw = _strip_or_none(os.getenv(name))
    if raw is None:
        return default
    lowered = raw.lower()
    if lowered in _TRUTHY:
        return True
    if lowered in _FALSY:
        return False
    raise RuntimeError(f"{name} must be a boolean flag, got {raw!r}")


def _parse_int(name: str, default: int, *, minimum: int = 1) -> int:
    raw = _strip_or_none(os.getenv(name))
    if raw is None:
        return default
    try:
        value = int(raw)
    except ValueError as exc:
        raise RuntimeError(f"{name} must be an integer, got {raw!r}") from exc
    if value < minimum:
        raise RuntimeError(f"{name} must be >= {minimum}, got {value}")
    return value


@dataclass(frozen=True)
class RunnerSettings:
    randomize_options: bool
    max_selections: int
    results_refresh_seconds: int


@dataclass(frozen=True)
class ApiSettings:
    host: str
    port: int


class Settings:

    def __init__(self) -> None:
        db_path = _strip_or_none(os.getenv("SURVEY_DB_PATH")) or "data/surveys.sqlite"
        self.database_path = Path(db_path).expanduser().resolve()

        seed_path = _strip_or_none(os.getenv("SURVEY_SEED_FILE"))
        self.seed_file_path = Path(seed_path).expanduser().resolve() if seed_path else _DEFAULT_SEED_FILE

        self.default_survey_id = _strip_or_none(os.getenv("SURVEY_DEFAULT_ID"))
        self.log_level = (_strip_or_none(os.getenv("SURVEY_LOG_LEVEL")) or "INFO").upper()

        self.runner = RunnerSettings(
            randomize_options=_parse_bool("SURVEY_RANDOMIZE_OPTIONS", True),
            max_selections=_parse_int("SURVEY_MAX_SELECTIONS", 3),
            results_refresh_seconds=_parse_int("SURVEY_RESULTS_REFRESH_SECONDS", 30),
        )

        self.api = ApiSettings(
            host=_strip_or_none(os.getenv("SURVEY_API_HOST")) or "127.0.0.1",
            port=_parse_int("SURVEY_API_PORT", 8000),
        )


settings = Settings()
