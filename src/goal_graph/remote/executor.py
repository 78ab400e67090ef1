"""Bounded retry with exponential backoff and jitter around a completion backend."""

from __future__ import annotations

import logging
import random
import threading
from collections.abc import Callable
from dataclasses import dataclass
from typing import Protocol

from goal_graph.config import RemoteCallSettings
from goal_graph.errors import RemoteCallCancelled, RemoteCallFailure
from goal_graph.remote.backend import CompletionBackend
from goal_graph.remote.failure_classifier import (
    RemoteFailureClassification,
    classify_remote_failure,
)

logger = logging.getLogger(__name__)


class Sleeper(Protocol):
    """Suspends the calling unit of work between attempts."""

    def wait(self, seconds: float, cancel_event: threading.Event) -> bool:
        """Wait up to ``seconds``; return ``False`` if ``cancel_event`` fired."""


class CancellableSleeper:
    """Blocks only the calling thread and wakes up early when its call is cancelled."""

    def wait(self, seconds: float, cancel_event: threading.Event) -> bool:
        if seconds <= 0:
            return not cancel_event.is_set()
        return not cancel_event.wait(seconds)


@dataclass(frozen=True, slots=True)
class RetryState:
    """Attempt about to run and the delay that precedes it."""

    attempt: int
    delay_seconds: float = 0.0
    base_delay_seconds: float = 0.0


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    """Attempt budget and backoff curve, independent of how waiting happens."""

    max_attempts: int = 3
    base_delay_seconds: float = 1.0
    backoff_multiplier: float = 2.0
    jitter_ratio: float = 0.1

    @classmethod
    def from_settings(cls, settings: RemoteCallSettings) -> RetryPolicy:
        return cls(
            max_attempts=settings.max_attempts,
            base_delay_seconds=settings.base_delay_seconds,
            backoff_multiplier=settings.backoff_multiplier,
            jitter_ratio=settings.jitter_ratio,
        )

    def first_state(self) -> RetryState:
        return RetryState(attempt=1)

    def base_delay(self, attempt: int) -> float:
        """Delay after failed ``attempt`` before jitter."""

        return self.base_delay_seconds * self.backoff_multiplier ** (attempt - 1)

    def next_state(self, state: RetryState, rng: random.Random) -> RetryState | None:
        """Advance after a retryable failure, or ``None`` once attempts are exhausted."""

        if state.attempt >= self.max_attempts:
            return None
        delay = self.base_delay(state.attempt)
        jitter = rng.uniform(0, delay * self.jitter_ratio)
        return RetryState(
            attempt=state.attempt + 1,
            delay_seconds=delay + jitter,
            base_delay_seconds=delay,
        )


class RemoteCallExecutor:
    """Executes labeled backend calls, retrying only rate-limit failures."""

    def __init__(
        self,
        backend: CompletionBackend,
        *,
        policy: RetryPolicy | None = None,
        sleeper: Sleeper | None = None,
        rng: random.Random | None = None,
        classifier: Callable[[BaseException], RemoteFailureClassification] = (
            classify_remote_failure
        ),
    ) -> None:
        self.backend = backend
        self.policy = policy or RetryPolicy()
        self.sleeper = sleeper or CancellableSleeper()
        self.classifier = classifier
        self._random = rng or random.Random()  # noqa: S311

    def execute(
        self,
        operation: str,
        prompt: str,
        *,
        cancel_event: threading.Event | None = None,
    ) -> str:
        """Run ``prompt`` against the backend under the retry policy.

        Setting ``cancel_event`` aborts this call's backoff wait only. A call
        made without one gets a fresh event.
        """

        if cancel_event is None:
            cancel_event = threading.Event()
        state = self.policy.first_state()
        last_error: Exception | None = None
        while True:
            if state.attempt > 1 and not self.sleeper.wait(
                state.delay_seconds,
                cancel_event,
            ):
                logger.warning(
                    "Retry wait for %s cancelled after %d attempt(s)",
                    operation,
                    state.attempt - 1,
                )
                raise RemoteCallCancelled(
                    operation=operation,
                    attempts=state.attempt - 1,
                    cause=last_error,
                ) from last_error

            logger.debug(
                "Executing %s (attempt %d/%d)",
                operation,
                state.attempt,
                self.policy.max_attempts,
            )
            try:
                return self.backend.complete(prompt)
            except Exception as exc:  # noqa: BLE001
                last_error = exc
                classification = self.classifier(exc)
                if not classification.retryable:
                    logger.error("Non-retryable error in %s: %s", operation, exc)
                    raise RemoteCallFailure(
                        operation=operation,
                        attempts=state.attempt,
                        cause=exc,
                    ) from exc

                next_state = self.policy.next_state(state, self._random)
                if next_state is None:
                    logger.error(
                        "Rate limit exceeded for %s after %d attempts",
                        operation,
                        state.attempt,
                    )
                    raise RemoteCallFailure(
                        operation=operation,
                        attempts=state.attempt,
                        cause=exc,
                    ) from exc

                logger.warning(
                    "Rate limit hit for %s. Retrying in %d ms (base %d ms, attempt %d/%d, rule=%s)",
                    operation,
                    round(next_state.delay_seconds * 1000),
                    round(next_state.base_delay_seconds * 1000),
                    state.attempt,
                    self.policy.max_attempts,
                    classification.matched_rule,
                )
                state = next_state
