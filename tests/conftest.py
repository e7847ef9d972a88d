"""
Shared pytest fixtures for morphic tests.

Every test runs against a clean registry and freshly loaded settings, with
the project root pointed at a temporary directory so no stray morphic.json
or MORPHIC_* variable leaks in.
"""

import pytest

from morphic.dsl import MorphRegistry, create_morph, make_context
from morphic.services import ConfigLoader, reset_settings


@pytest.fixture(autouse=True)
def isolated_engine(monkeypatch, tmp_path):
    """Reset registry and settings around each test."""
    for env_var in ConfigLoader.CONFIG_KEY_TO_ENV.values():
        monkeypatch.delenv(env_var, raising=False)
    monkeypatch.setenv("MORPHIC_PROJECT_ROOT", str(tmp_path))
    MorphRegistry.clear()
    reset_settings()
    yield
    MorphRegistry.clear()
    reset_settings()


@pytest.fixture
def counter_record():
    return {"count": 0}


@pytest.fixture
def add_one():
    return create_morph("AddOne", lambda r, ctx: {**r, "count": r["count"] + 1}, fusible=True)


@pytest.fixture
def add_two():
    return create_morph("AddTwo", lambda r, ctx: {**r, "count": r["count"] + 2}, fusible=True)


@pytest.fixture
def double():
    return create_morph("Double", lambda r, ctx: {**r, "value": r["value"] * 2})


@pytest.fixture
def enabled_context():
    return make_context("edit", enabled=True)


@pytest.fixture
def disabled_context():
    return make_context("edit", enabled=False)


class CallCounter:
    """Transform wrapper that counts invocations."""

    def __init__(self, fn):
        self.fn = fn
        self.calls = 0

    def __call__(self, value, context=None):
        self.calls += 1
        return self.fn(value, context)


@pytest.fixture
def call_counter():
    return CallCounter
