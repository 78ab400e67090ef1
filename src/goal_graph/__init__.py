"""Goal decomposition into persisted task graphs with resilient LLM calls."""

__version__ = "0.1.0"
