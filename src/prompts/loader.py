from __future__ import annotations

from functools import lru_cache
from pathlib import Path

PROMPT_DIR = Path(__file__).resolve().parent


@lru_cache(maxsize=8)
def _read_prompt(filename: str) -> str:
    path = PROMPT_DIR / filename
    if not path.exists():
        raise RuntimeError(f"Prompt file not found: {filename}")
    return path.read_text(encoding="utf-8").strip()


def load_prompt(filename: str, **values: str) -> str:
    """Load a prompt template shipped with the codebase and fill its placeholders."""

    template = _read_prompt(filename)
    if not values:
        return template
    return template.format(**values)
