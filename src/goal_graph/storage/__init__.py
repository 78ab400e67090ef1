"""Durable storage for goals, tasks and dependency edges."""
