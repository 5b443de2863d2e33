# src/change_assistant/core/intent_reflection.py
"""
Intent reflection strategies.

Decides whether a property edit shows up in proposed code. How a value is
written depends on the component's styling approach, so strategies are
registered per approach and looked up by the validation engine.
"""

from abc import ABC, abstractmethod
from typing import Dict, Optional, Set, Tuple
import re
import logging

from change_assistant.core.change_models import PropertyEdit

logger = logging.getLogger(__name__)


class ReflectionStrategy(ABC):
    """Checks one edit against proposed content."""

    name = "base"

    @abstractmethod
    def is_reflected(self, edit: PropertyEdit, original: str, proposed: str) -> bool:
        ...


class LiteralReflection(ReflectionStrategy):
    """Target value written next to the property (CSS, inline styles, CSS-in-JS)."""

    name = "literal"

    def is_reflected(self, edit: PropertyEdit, original: str, proposed: str) -> bool:
        after = edit.after.strip().lower()
        if not after:
            return True

        content = proposed.lower()
        if after not in content:
            return False
        return edit.property.lower() in content or edit.camel_property.lower() in content


TAILWIND_PALETTE = (
    'slate', 'gray', 'zinc', 'neutral', 'stone', 'red', 'orange', 'amber',
    'yellow', 'lime', 'green', 'emerald', 'teal', 'cyan', 'sky', 'blue',
    'indigo', 'violet', 'purple', 'fuchsia', 'pink', 'rose', 'white', 'black'
)

TAILWIND_FONT_SIZES = {
    '12px': 'text-xs', '0.75rem': 'text-xs',
    '14px': 'text-sm', '0.875rem': 'text-sm',
    '16px': 'text-base', '1rem': 'text-base',
    '18px': 'text-lg', '1.125rem': 'text-lg',
    '20px': 'text-xl', '1.25rem': 'text-xl',
    '24px': 'text-2xl', '1.5rem': 'text-2xl',
    '30px': 'text-3xl', '1.875rem': 'text-3xl',
    '36px': 'text-4xl', '2.25rem': 'text-4xl',
    '48px': 'text-5xl', '3rem': 'text-5xl',
}

TAILWIND_FONT_WEIGHTS = {
    '100': 'font-thin', '200': 'font-extralight', '300': 'font-light',
    '400': 'font-normal', '500': 'font-medium', '600': 'font-semibold',
    '700': 'font-bold', '800': 'font-extrabold', '900': 'font-black',
    'normal': 'font-normal', 'bold': 'font-bold',
}

# Utility prefixes used for arbitrary values, e.g. bg-[#3B82F6]
TAILWIND_ARBITRARY_PREFIXES: Dict[str, Tuple[str, ...]] = {
    'font-size': ('text-',),
    'color': ('text-',),
    'background-color': ('bg-',),
    'background': ('bg-',),
    'border-color': ('border-',),
    'border-radius': ('rounded-',),
    'padding': ('p-', 'px-', 'py-'),
    'margin': ('m-', 'mx-', 'my-'),
    'width': ('w-',),
    'height': ('h-',),
    'font-weight': ('font-',),
    'gap': ('gap-',),
}

_CLASS_TOKEN = re.compile(r'[A-Za-z0-9_\-\[\]#:./%]+')


def _utility_prefixes(prop: str) -> Tuple[str, ...]:
    """Prefixes of utilities that set a property family."""
    if prop == 'font-size':
        return tuple(sorted(set(TAILWIND_FONT_SIZES.values())))
    if prop == 'color':
        return tuple(f"text-{c}" for c in TAILWIND_PALETTE)
    if prop in ('background-color', 'background'):
        return tuple(f"bg-{c}" for c in TAILWIND_PALETTE)
    if prop == 'border-color':
        return tuple(f"border-{c}" for c in TAILWIND_PALETTE)
    if prop == 'font-weight':
        return tuple(sorted(set(TAILWIND_FONT_WEIGHTS.values())))
    return TAILWIND_ARBITRARY_PREFIXES.get(prop, ())


class TailwindReflection(LiteralReflection):
    """
    Utility-class aware reflection.

    Accepts, in order: a literal value, an arbitrary-value utility
    (text-[16px]), the scale utility for the value (text-base), or a
    utility of the right family that the proposed code newly introduces.
    """

    name = "tailwind"

    def is_reflected(self, edit: PropertyEdit, original: str, proposed: str) -> bool:
        if super().is_reflected(edit, original, proposed):
            return True

        prop = edit.property.lower()
        after = edit.after.strip()
        proposed_tokens = self._tokens(proposed)

        for prefix in TAILWIND_ARBITRARY_PREFIXES.get(prop, ()):
            if f"{prefix}[{after}]".lower() in proposed_tokens:
                return True

        scale_class = TAILWIND_FONT_SIZES.get(after) if prop == 'font-size' else None
        if prop == 'font-weight':
            scale_class = TAILWIND_FONT_WEIGHTS.get(after)
        if scale_class and scale_class in proposed_tokens:
            return True

        prefixes = _utility_prefixes(prop)
        if not prefixes:
            return False
        introduced = proposed_tokens - self._tokens(original)
        return any(token.split(':')[-1].startswith(prefixes) for token in introduced)

    @staticmethod
    def _tokens(content: str) -> Set[str]:
        return {t.lower() for t in _CLASS_TOKEN.findall(content)}


class ReflectionRegistry:
    """Maps a styling approach to its reflection strategy."""

    def __init__(self, default: Optional[ReflectionStrategy] = None):
        self.default = default or LiteralReflection()
        self._strategies: Dict[str, ReflectionStrategy] = {}

    def register(self, styling_approach: str, strategy: ReflectionStrategy) -> None:
        self._strategies[styling_approach.lower()] = strategy
        logger.debug(f"Registered {strategy.name} reflection for {styling_approach}")

    def for_approach(self, styling_approach: Optional[str]) -> ReflectionStrategy:
        if not styling_approach:
            return self.default
        return self._strategies.get(styling_approach.lower(), self.default)

    @property
    def approaches(self) -> Tuple[str, ...]:
        return tuple(sorted(self._strategies))


def default_reflection_registry() -> ReflectionRegistry:
    """Registry with the built-in strategies."""
    registry = ReflectionRegistry()
    registry.register('tailwind', TailwindReflection())
    return registry
