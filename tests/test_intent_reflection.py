# FILE: tests/test_intent_reflection.py
"""
Tests for intent reflection strategies and their registry.
"""

import pytest

from change_assistant.core.change_models import PropertyEdit
from change_assistant.core.intent_reflection import (
    LiteralReflection, ReflectionRegistry, ReflectionStrategy, TailwindReflection,
    default_reflection_registry
)


def _edit(prop, before, after):
    return PropertyEdit(property=prop, before=before, after=after)


class TestLiteralReflection:
    def test_css_declaration(self):
        edit = _edit("font-size", "14px", "16px")
        assert LiteralReflection().is_reflected(edit, ".btn { font-size: 14px; }", ".btn { font-size: 16px; }")

    def test_camel_case_inline_style(self):
        edit = _edit("font-size", "14px", "16px")
        assert LiteralReflection().is_reflected(edit, "", "<p style={{ fontSize: '16px' }} />")

    def test_value_without_property_is_not_enough(self):
        edit = _edit("font-size", "14px", "16px")
        assert not LiteralReflection().is_reflected(edit, "", ".btn { padding: 16px; }")

    def test_empty_target_value_is_trivially_reflected(self):
        edit = _edit("box-shadow", "0 1px 2px black", "")
        assert LiteralReflection().is_reflected(edit, "", "")


class TestTailwindReflection:
    @pytest.fixture
    def strategy(self):
        return TailwindReflection()

    def test_scale_class(self, strategy):
        edit = _edit("font-size", "14px", "16px")
        assert strategy.is_reflected(edit, 'className="text-sm"', 'className="text-base"')

    def test_arbitrary_value(self, strategy):
        edit = _edit("font-size", "14px", "15px")
        assert strategy.is_reflected(edit, 'className="text-sm"', 'className="text-[15px]"')

    def test_introduced_family_utility_with_variant(self, strategy):
        edit = _edit("font-size", "14px", "17px")
        assert strategy.is_reflected(edit, 'className="text-sm"', 'className="text-sm md:text-lg"')

    def test_existing_utility_is_not_a_change(self, strategy):
        edit = _edit("font-size", "14px", "17px")
        assert not strategy.is_reflected(edit, 'className="text-lg"', 'className="text-lg p-2"')

    def test_font_weight_scale(self, strategy):
        edit = _edit("font-weight", "500", "600")
        assert strategy.is_reflected(edit, 'className="font-medium"', 'className="font-semibold"')

    def test_palette_background(self, strategy):
        edit = _edit("background-color", "#1F2937", "#3B82F6")
        assert strategy.is_reflected(edit, 'className="bg-gray-800"', 'className="bg-blue-500"')

    def test_unrelated_change(self, strategy):
        edit = _edit("background-color", "#1F2937", "#3B82F6")
        assert not strategy.is_reflected(edit, 'className="bg-gray-800"', 'className="bg-gray-800 px-5"')


class TestReflectionRegistry:
    def test_default_registry(self):
        registry = default_reflection_registry()

        assert isinstance(registry.for_approach("Tailwind"), TailwindReflection)
        assert isinstance(registry.for_approach(None), LiteralReflection)
        assert isinstance(registry.for_approach("styled-components"), LiteralReflection)
        assert registry.approaches == ("tailwind",)

    def test_register_custom_strategy(self):
        class AlwaysReflected(ReflectionStrategy):
            name = "always"

            def is_reflected(self, edit, original, proposed):
                return True

        registry = ReflectionRegistry()
        registry.register("css-modules", AlwaysReflected())

        strategy = registry.for_approach("css-modules")
        assert strategy.is_reflected(_edit("color", "red", "blue"), "", "")
        assert registry.approaches == ("css-modules",)
