# config.py
# Runtime options. Defaults are read from the environment (and a local .env)
# when a StepOptions object is built, never at call time.

import os
from typing import Literal

from dotenv import load_dotenv
from pydantic import BaseModel, Field

load_dotenv()

MAX_TASK_CHARS = 2000

DEFAULT_MODEL = "gpt-4o-mini"
DEFAULT_DEEPSEEK_MODEL = "deepseek-chat"
DEFAULT_DEEPSEEK_BASE_URL = "https://api.deepseek.com"
DEFAULT_MAX_TURNS = 10


def _debug_from_env() -> bool:
    return os.getenv("AUTO_PLAYWRIGHT_DEBUG") == "true"


class StepOptions(BaseModel):
    """Options for one task execution."""

    debug: bool = Field(
        default_factory=_debug_from_env,
        description="Print planner turns and dispatches. Defaults to AUTO_PLAYWRIGHT_DEBUG=true.",
    )
    model: str | None = Field(default=None, description="Planner model; provider default when unset.")
    provider: Literal["openai", "deepseek"] = "openai"

    openai_api_key: str | None = None
    openai_base_url: str | None = None
    openai_default_query: dict[str, object] | None = None
    openai_default_headers: dict[str, str] | None = None

    deepseek_api_key: str | None = None
    deepseek_base_url: str | None = None

    cache_path: str | None = Field(
        default=None,
        description="Existing directory holding cache files. Caching is off when unset.",
    )
    max_turns: int = Field(default=DEFAULT_MAX_TURNS, ge=1)

    def resolved_model(self) -> str:
        if self.model:
            return self.model
        return DEFAULT_DEEPSEEK_MODEL if self.provider == "deepseek" else DEFAULT_MODEL
