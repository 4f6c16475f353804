"""Naming rules used to derive sources, keys and relation field names."""

from collections.abc import Callable, Mapping
from typing import Any

import inflection

from docgraph.config import get_settings
from docgraph.exceptions import UnknownConvention

Convention = Callable[..., Any]


def _default_conventions() -> dict[str, Convention]:
    return {
        "source": lambda name: inflection.underscore(name),
        "key": lambda *args: get_settings().primary_key,
        "reference": lambda name: inflection.underscore(inflection.singularize(name)) + "_id",
        "references": lambda name: inflection.underscore(inflection.singularize(name)) + "_ids",
        "field": lambda name: inflection.underscore(inflection.singularize(name)),
        "multiple": lambda name: inflection.pluralize(name),
        "single": lambda name: inflection.singularize(name),
        "getter": lambda name: "get_" + inflection.underscore(name),
        "setter": lambda name: "set_" + inflection.underscore(name),
    }


class Conventions:
    """Lookup table of naming rules.

    Each rule is a plain callable mapping a name to a derived name, e.g. the
    ``reference`` rule turns ``"MyPost"`` into ``"my_post_id"``.
    """

    def __init__(self, conventions: Mapping[str, Convention] | None = None) -> None:
        self._conventions: dict[str, Convention] = _default_conventions()
        if conventions:
            self._conventions.update(conventions)

    def set(self, name: str, rule: Convention) -> Convention:
        self._conventions[name] = rule
        return rule

    def get(self, name: str | None = None) -> Any:
        """Return one rule, or a copy of the whole table when ``name`` is omitted.

        Raises:
            UnknownConvention: If no rule is registered under ``name``.
        """
        if name is None:
            return dict(self._conventions)
        if name not in self._conventions:
            raise UnknownConvention(name)
        return self._conventions[name]

    def apply(self, name: str, *args: Any) -> Any:
        return self.get(name)(*args)
