"""Conversation job runner: bounded-concurrency execution of conversation jobs."""

__version__ = "0.1.0"
