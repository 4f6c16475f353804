"""Process wide state scoped by model class.

Holds the registered model names along with the per model schema,
validator, default query and conventions caches. ``Model`` classes register
themselves here when they are defined; tests reset a model (or everything)
to keep runs independent.
"""

from typing import TYPE_CHECKING, Any

import structlog

from docgraph.exceptions import UnregisteredModel

if TYPE_CHECKING:
    from docgraph.conventions import Conventions
    from docgraph.schema import Schema
    from docgraph.validator import Validator


class ModelRegistry:
    """Model names and the per model caches.

    Caches are keyed by the model class, so subclasses never share the
    schema or validator of their parent.
    """

    def __init__(self, logger: structlog.stdlib.BoundLogger | None = None) -> None:
        self._logger = logger or structlog.get_logger(__name__)
        self._models: dict[str, type] = {}
        self._schemas: dict[type, "Schema"] = {}
        self._validators: dict[type, "Validator"] = {}
        self._queries: dict[type, dict[str, Any]] = {}
        self._conventions: dict[type, "Conventions"] = {}

    def register(self, name: str, model: type) -> None:
        """Register ``model`` under ``name``, replacing any previous model."""
        self._models[name] = model

    def unregister(self, name: str) -> None:
        """Remove ``name``. Unknown names are ignored."""
        self._models.pop(name, None)

    def get(self, name: str) -> type:
        """Return the model registered under ``name``.

        Raises:
            UnregisteredModel: If nothing is registered under ``name``.
        """
        if name not in self._models:
            raise UnregisteredModel(name)
        return self._models[name]

    def has(self, name: str) -> bool:
        """Check whether a model is registered under ``name``."""
        return name in self._models

    def names(self) -> list[str]:
        """Return the registered names, in registration order."""
        return list(self._models)

    def schema(self, model: type) -> "Schema | None":
        """Return the cached schema of ``model``, or ``None`` before it is built."""
        return self._schemas.get(model)

    def set_schema(self, model: type, schema: "Schema") -> None:
        self._schemas[model] = schema

    def validator(self, model: type) -> "Validator | None":
        """Return the cached validator of ``model``, or ``None`` before it is built."""
        return self._validators.get(model)

    def set_validator(self, model: type, validator: "Validator") -> None:
        self._validators[model] = validator

    def query(self, model: type) -> dict[str, Any]:
        """Return a copy of the default query options of ``model``."""
        return dict(self._queries.get(model, {}))

    def set_query(self, model: type, query: dict[str, Any]) -> None:
        """Replace the default query options of ``model``.

        Args:
            model: Model class.
            query: Options merged into every ``find``. A copy is stored.
        """
        self._queries[model] = dict(query)

    def conventions(self, model: type) -> "Conventions | None":
        """Return the naming conventions of ``model``, if any were set."""
        return self._conventions.get(model)

    def set_conventions(self, model: type, conventions: "Conventions") -> None:
        self._conventions[model] = conventions

    def reset(self, model: type | None = None) -> None:
        """Drop the cached state of ``model``, or of every model when omitted.

        Registered names are kept.
        """
        if model is None:
            self._schemas.clear()
            self._validators.clear()
            self._queries.clear()
            self._conventions.clear()
            self._logger.debug("registry_reset")
            return
        for cache in (self._schemas, self._validators, self._queries, self._conventions):
            cache.pop(model, None)


registry = ModelRegistry()
