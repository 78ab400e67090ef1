"""Runtime configuration for task graph persistence and remote calls."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

SUPPORTED_LLM_BACKENDS = ("openai", "echo")


@dataclass(slots=True)
class RemoteCallSettings:
    """Retry policy for calls to the generative backend."""

    max_attempts: int = 3
    base_delay_seconds: float = 1.0
    backoff_multiplier: float = 2.0
    jitter_ratio: float = 0.1


@dataclass(slots=True)
class LlmSettings:
    """Generative backend connection settings."""

    backend: str = "openai"
    base_url: str = "https://api.openai.com/v1"
    model: str = "gpt-4o-mini"
    api_key: str = ""
    timeout_seconds: float = 60.0


@dataclass(slots=True)
class Settings:
    """Application settings grouped by concern."""

    db_path: Path = Path(".goal_graph.db")
    remote_call: RemoteCallSettings = field(default_factory=RemoteCallSettings)
    llm: LlmSettings = field(default_factory=LlmSettings)

    @classmethod
    def from_env(cls, db_path: Path | None = None) -> Settings:
        """Load settings from environment with defaults suitable for local runs."""

        return cls(
            db_path=db_path or Path(os.getenv("GOAL_GRAPH_DB_PATH", ".goal_graph.db")),
            remote_call=RemoteCallSettings(
                max_attempts=_env_int("GOAL_GRAPH_REMOTE_MAX_ATTEMPTS", default=3),
                base_delay_seconds=_env_float("GOAL_GRAPH_REMOTE_BASE_DELAY_SECONDS", default=1.0),
                backoff_multiplier=_env_float("GOAL_GRAPH_REMOTE_BACKOFF_MULTIPLIER", default=2.0),
                jitter_ratio=_env_float("GOAL_GRAPH_REMOTE_JITTER_RATIO", default=0.1),
            ),
            llm=LlmSettings(
                backend=os.getenv("GOAL_GRAPH_LLM_BACKEND", "openai").strip().lower(),
                base_url=os.getenv("GOAL_GRAPH_LLM_BASE_URL", "https://api.openai.com/v1"),
                model=os.getenv("GOAL_GRAPH_LLM_MODEL", "gpt-4o-mini"),
                api_key=os.getenv("GOAL_GRAPH_LLM_API_KEY") or os.getenv("OPENAI_API_KEY", ""),
                timeout_seconds=_env_float("GOAL_GRAPH_LLM_TIMEOUT_SECONDS", default=60.0),
            ),
        )

    def validate(self) -> None:
        """Raise configuration error for out-of-range retry or backend settings."""

        remote = self.remote_call
        if remote.max_attempts < 1:
            raise ValueError("GOAL_GRAPH_REMOTE_MAX_ATTEMPTS must be >= 1.")
        if remote.base_delay_seconds < 0:
            raise ValueError("GOAL_GRAPH_REMOTE_BASE_DELAY_SECONDS must be >= 0.")
        if remote.backoff_multiplier < 1:
            raise ValueError("GOAL_GRAPH_REMOTE_BACKOFF_MULTIPLIER must be >= 1.")
        if not 0 <= remote.jitter_ratio <= 1:
            raise ValueError("GOAL_GRAPH_REMOTE_JITTER_RATIO must be between 0 and 1.")

        if self.llm.backend not in SUPPORTED_LLM_BACKENDS:
            raise ValueError(
                f"Unsupported GOAL_GRAPH_LLM_BACKEND: {self.llm.backend!r}. "
                f"Expected one of: {', '.join(SUPPORTED_LLM_BACKENDS)}.",
            )
        if self.llm.backend == "openai" and not self.llm.api_key:
            raise ValueError(
                "An API key is required for the openai backend. "
                "Set GOAL_GRAPH_LLM_API_KEY or OPENAI_API_KEY.",
            )
        if self.llm.timeout_seconds <= 0:
            raise ValueError("GOAL_GRAPH_LLM_TIMEOUT_SECONDS must be > 0.")


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return int(value.strip())
    except ValueError as error:
        raise ValueError(f"Invalid integer value for {name}: {value!r}") from error


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return float(value.strip())
    except ValueError as error:
        raise ValueError(f"Invalid float value for {name}: {value!r}") from error
