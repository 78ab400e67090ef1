"""Resilient calls to the generative backend."""

from goal_graph.remote.backend import (
    BackendCallError,
    CompletionBackend,
    EchoBackend,
    OpenAiChatBackend,
    build_backend,
)
from goal_graph.remote.executor import RemoteCallExecutor, RetryPolicy, RetryState

__all__ = [
    "BackendCallError",
    "CompletionBackend",
    "EchoBackend",
    "OpenAiChatBackend",
    "RemoteCallExecutor",
    "RetryPolicy",
    "RetryState",
    "build_backend",
]
