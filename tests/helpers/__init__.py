"""Test helper utilities for acquisition pipeline tests."""

from .fake_runner import FakeProcessRunner, ScriptedStage
from .memory_store import InMemoryRunStore

__all__ = ["FakeProcessRunner", "ScriptedStage", "InMemoryRunStore"]
