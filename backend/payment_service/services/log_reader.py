from __future__ import annotations

import json
from enum import Enum
from pathlib import Path
from typing import Any

from starlette.concurrency import run_in_threadpool

from ..config import settings


class LogKind(str, Enum):
    metrics = "metrics.log"
    errors = "errors.log"
    warnings = "warnings.log"
    dead_letters = "dead_letters.log"


class LogReadError(RuntimeError):
    def __init__(self, reason: str) -> None:
        super().__init__(f"Erreur lors de la lecture du fichier : {reason}")
        self.message = str(self)


def parse_ndjson(text: str) -> list[Any]:
    return [json.loads(line) for line in text.split("\n") if line.strip()]


def log_path(kind: LogKind, storage_dir: str | None = None) -> Path:
    return Path(storage_dir or settings.storage_dir) / kind.value


async def read_log_file(path: Path) -> list[Any]:
    """Read an NDJSON log file; blank lines are skipped, any other line must be JSON."""
    try:
        text = await run_in_threadpool(path.read_text, encoding="utf-8")
        return parse_ndjson(text)
    except (OSError, ValueError) as exc:
        reason = exc.strerror if isinstance(exc, OSError) and exc.strerror else str(exc)
        raise LogReadError(reason) from exc
