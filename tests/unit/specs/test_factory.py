"""Unit tests for AppSpecFactory."""

from __future__ import annotations

import pytest

from keel.errors import DuplicateAppKeyError, UnknownAppKindError
from keel.specs import AppSpecFactory, build_spec_factory
from tests.fakes import StaticSpec


class TestAppSpecFactory:
    def test_get_returns_same_instance(self):
        factory = AppSpecFactory()
        spec = StaticSpec("redis")
        factory.register(spec)

        assert factory.get("redis") is spec
        assert factory.get("redis") is factory.get("redis")

    def test_unknown_key(self):
        factory = AppSpecFactory()

        with pytest.raises(UnknownAppKindError) as exc_info:
            factory.get("mysql")

        assert exc_info.value.key == "mysql"

    def test_duplicate_key_rejected(self):
        factory = AppSpecFactory()
        factory.register(StaticSpec("redis"))

        with pytest.raises(DuplicateAppKeyError):
            factory.register(StaticSpec("redis"))

        assert len(factory) == 1

    def test_empty_key_rejected(self):
        factory = AppSpecFactory()

        with pytest.raises(ValueError):
            factory.register(StaticSpec(""))

    def test_get_all_in_registration_order(self):
        factory = AppSpecFactory()
        for key in ("c", "a", "b"):
            factory.register(StaticSpec(key))

        assert [s.key for s in factory.get_all()] == ["c", "a", "b"]
        assert factory.keys() == ["c", "a", "b"]
        assert "a" in factory
        assert "z" not in factory


def test_bundled_specs_order():
    factory = build_spec_factory()

    assert factory.keys() == ["postgres", "echo"]
