"""
Tests for tagged contexts and guard predicate combinators.
"""

from types import SimpleNamespace

import pytest

from morphic import PipelineConfigurationError
from morphic.dsl import (
    TaggedContext, all_of, any_of, context_equals, context_flag, context_kind,
    create_morph, create_pipeline, is_kind, kind_dispatch, make_context,
    negate, value_equals, value_field, when_kind,
)


# =============================================================================
# TaggedContext Tests
# =============================================================================

class TestTaggedContext:

    def test_fields_as_attributes_and_keys(self):
        ctx = make_context("edit", enabled=True, user="ana")
        assert ctx.kind == "edit"
        assert ctx.enabled is True
        assert ctx["user"] == "ana"
        assert ctx.get("missing", 1) == 1
        assert "user" in ctx

    def test_missing_attribute(self):
        ctx = make_context("edit")
        with pytest.raises(AttributeError, match="no field 'enabled'"):
            ctx.enabled

    def test_with_data_returns_new_context(self):
        ctx = make_context("edit", enabled=False)
        updated = ctx.with_data(enabled=True)
        assert updated.enabled is True
        assert ctx.enabled is False

    def test_with_kind(self):
        assert make_context("edit").with_kind("view").kind == "view"

    def test_empty_kind_rejected(self):
        with pytest.raises(PipelineConfigurationError):
            TaggedContext("")

    def test_context_kind(self):
        assert context_kind(make_context("edit")) == "edit"
        assert context_kind({"kind": "view"}) == "view"
        assert context_kind(SimpleNamespace(kind="list")) == "list"
        assert context_kind(None) is None
        assert context_kind({"mode": "x"}) is None

    def test_is_kind(self):
        assert is_kind(make_context("edit"), "edit", "view")
        assert not is_kind(make_context("list"), "edit", "view")


# =============================================================================
# Kind Dispatch Tests
# =============================================================================

class TestKindDispatch:

    @pytest.fixture
    def by_mode(self):
        edit = create_morph("Edit", lambda r, ctx: {**r, "mode": "edit"})
        view = create_morph("View", lambda r, ctx: {**r, "mode": "view"}, cost=3)
        return kind_dispatch("ByMode", {"edit": edit, "view": view})

    def test_routes_on_kind(self, by_mode):
        assert by_mode.apply({}, make_context("edit")) == {"mode": "edit"}
        assert by_mode.apply({}, make_context("view")) == {"mode": "view"}

    def test_identity_for_unmatched_kind(self, by_mode):
        record = {"id": 1}
        assert by_mode.apply(record, make_context("list")) is record
        assert by_mode.apply(record, None) is record

    def test_default_handler(self):
        fallback = create_morph("Fallback", lambda r, ctx: "fallback")
        dispatch = kind_dispatch("D", {"edit": create_morph("E", lambda r, ctx: "edit")}, default=fallback)
        assert dispatch.apply({}, make_context("other")) == "fallback"

    def test_metadata(self, by_mode):
        assert by_mode.cost == 3
        assert by_mode.pure is True
        assert by_mode.memoizable is False

    def test_requires_handlers(self):
        with pytest.raises(PipelineConfigurationError):
            kind_dispatch("Empty", {})

    def test_in_pipeline(self, by_mode):
        p = create_pipeline("P").pipe(by_mode).build()
        assert p.apply({}, {"kind": "view"}) == {"mode": "view"}


# =============================================================================
# Predicate Tests
# =============================================================================

class TestPredicates:

    def test_when_kind_guard(self, double):
        p = create_pipeline("P").conditionally(when_kind("edit"), double).build()
        assert p.apply({"value": 5}, make_context("edit")) == {"value": 10}
        assert p.apply({"value": 5}, make_context("view")) == {"value": 5}

    def test_context_flag(self):
        flag = context_flag("options.enabled")
        assert flag(None, {"options": {"enabled": True}}) is True
        assert flag(None, {"options": {}}) is False
        assert context_flag("enabled", default=True)(None, {}) is True

    def test_context_flag_on_tagged_context(self, enabled_context, disabled_context):
        assert context_flag("enabled")(None, enabled_context) is True
        assert context_flag("enabled")(None, disabled_context) is False

    def test_context_equals(self):
        assert context_equals("mode", "edit")(None, {"mode": "edit"})
        assert not context_equals("mode", "edit")(None, {})

    def test_value_predicates(self):
        assert value_field("active")({"active": 1}, None) is True
        assert value_equals("meta.kind", "a")({"meta": {"kind": "a"}}, None)

    def test_combinators(self):
        yes = lambda v, ctx: True
        no = lambda v, ctx: False
        assert all_of(yes, yes)(None, None)
        assert not all_of(yes, no)(None, None)
        assert any_of(no, yes)(None, None)
        assert not any_of(no, no)(None, None)
        assert negate(no)(None, None)
