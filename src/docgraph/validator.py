"""Rule based validation of entity data."""

import inspect
import re
from collections.abc import Awaitable, Callable, Mapping
from typing import Any

import structlog
from pydantic import BaseModel, ConfigDict

from docgraph.path import get_path, has_path

Handler = Callable[[Any, dict[str, Any], list[str]], bool | Awaitable[bool]]

REQUIRED_MESSAGE = "is required"

_INTEGER = re.compile(r"^[+-]?\d+$")


def _is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return value == ""
    if hasattr(value, "__len__"):
        return len(value) == 0
    return False


def _not_empty(value: Any, options: dict[str, Any], params: list[str]) -> bool:
    return not _is_empty(value)


def _required(value: Any, options: dict[str, Any], params: list[str]) -> bool:
    return value is not None


def _integer(value: Any, options: dict[str, Any], params: list[str]) -> bool:
    if isinstance(value, bool):
        return False
    if isinstance(value, int):
        return True
    return isinstance(value, str) and bool(_INTEGER.match(value))


def _boolean(value: Any, options: dict[str, Any], params: list[str]) -> bool:
    return value in (True, False, 0, 1, "0", "1", "true", "false")


def _length_max(value: Any, options: dict[str, Any], params: list[str]) -> bool:
    return value is None or len(str(value)) <= int(params[0])


def _length_min(value: Any, options: dict[str, Any], params: list[str]) -> bool:
    return value is not None and len(str(value)) >= int(params[0])


DEFAULT_HANDLERS: dict[str, Handler] = {
    "not:empty": _not_empty,
    "required": _required,
    "integer": _integer,
    "boolean": _boolean,
    "length:max": _length_max,
    "length:min": _length_min,
}

DEFAULT_MESSAGES: dict[str, str] = {
    "not:empty": "must not be a empty",
    "required": REQUIRED_MESSAGE,
    "integer": "must be an integer",
    "boolean": "must be a boolean",
    "length:max": "must not be longer than {0} characters",
    "length:min": "must be at least {0} characters long",
    "_default_": "is invalid",
}


class Rule(BaseModel):
    """A single rule attached to a field."""

    model_config = ConfigDict(frozen=True)

    name: str
    params: list[str] = []
    message: str | None = None
    on: list[str] = []


class Validator:
    """Checks plain data against per field rules.

    Rules are named handlers, optionally followed by ``:`` separated
    parameters (``"length:max:50"``). A missing field only fails when the
    validation runs with ``required=True``, in which case it is reported as
    ``"is required"`` and its other rules are skipped.

    Example:
        validator = Validator()
        validator.rule("name", "not:empty")
        await validator.validates({"name": ""})  # False
        validator.errors()  # {"name": ["must not be a empty"]}
    """

    def __init__(
        self,
        handlers: Mapping[str, Handler] | None = None,
        logger: structlog.stdlib.BoundLogger | None = None,
    ) -> None:
        self._logger = logger or structlog.get_logger(__name__)
        self._handlers: dict[str, Handler] = {**DEFAULT_HANDLERS, **(handlers or {})}
        self._messages: dict[str, str] = dict(DEFAULT_MESSAGES)
        self._rules: dict[str, list[Rule]] = {}
        self._errors: dict[str, list[str]] = {}

    def set_handler(self, name: str, handler: Handler, message: str | None = None) -> "Validator":
        self._handlers[name] = handler
        if message is not None:
            self._messages[name] = message
        return self

    def handler(self, name: str) -> Handler | None:
        return self._handlers.get(name)

    def rule(
        self,
        field: str,
        rules: str | list[str],
        message: str | None = None,
        *,
        on: str | list[str] | None = None,
    ) -> "Validator":
        """Attach one or several rules to ``field``.

        Args:
            field: Dotted field path.
            rules: Rule name, or list of rule names.
            message: Message reported instead of the rule default.
            on: Only run the rules for these events (``"create"``,
                ``"update"``).
        """
        events = [on] if isinstance(on, str) else list(on or [])
        for item in [rules] if isinstance(rules, str) else rules:
            name, params = self._parse(item)
            self._rules.setdefault(field, []).append(Rule(name=name, params=params, message=message, on=events))
        return self

    def _parse(self, rule: str) -> tuple[str, list[str]]:
        parts = rule.split(":")
        for size in range(len(parts), 0, -1):
            name = ":".join(parts[:size])
            if name in self._handlers:
                return name, parts[size:]
        return rule, []

    def rules(self, field: str | None = None) -> Any:
        if field is None:
            return {name: list(rules) for name, rules in self._rules.items()}
        return list(self._rules.get(field, []))

    async def validates(
        self,
        data: Mapping[str, Any],
        *,
        events: str | list[str] | None = None,
        required: bool = True,
        entity: Any = None,
    ) -> bool:
        """Run every rule against ``data`` and collect the failures.

        Returns:
            ``True`` when no rule failed. Failures are available from
            ``errors()`` until the next call.
        """
        self._errors = {}
        active = [events] if isinstance(events, str) else list(events or [])
        for field, rules in self._rules.items():
            rules = [rule for rule in rules if not rule.on or set(rule.on) & set(active)]
            if not rules:
                continue
            if not has_path(data, field):
                if required:
                    self._errors[field] = [REQUIRED_MESSAGE]
                continue
            value = get_path(data, field)
            options = {"entity": entity, "field": field, "data": data, "events": active}
            for rule in rules:
                handler = self._handlers.get(rule.name)
                if handler is None:
                    raise KeyError(f"Unexisting `{rule.name}` as validation handler.")
                result = handler(value, options, rule.params)
                if inspect.isawaitable(result):
                    result = await result
                if not result:
                    self._errors.setdefault(field, []).append(self._message(rule))
        return not self._errors

    def _message(self, rule: Rule) -> str:
        if rule.message is not None:
            return rule.message
        template = self._messages.get(rule.name, self._messages["_default_"])
        return template.format(*rule.params)

    def errors(self) -> dict[str, list[str]]:
        return {field: list(messages) for field, messages in self._errors.items()}
