"""Small helpers shared by the model layer."""

from __future__ import annotations

import time
from typing import Any, Callable, Iterable

GENERIC_RULE_MESSAGE = "Invalid value"


def is_empty(value: Any) -> bool:
    """True for None, "", [] and {}."""
    return value is None or (isinstance(value, (str, list, tuple, dict)) and len(value) == 0)


def evaluate(attr: Any, *args: Any) -> Any:
    """Return ``attr(*args)`` when callable, else ``attr`` itself."""
    if callable(attr):
        return attr(*args)
    return attr


def check_rules(value: Any, rules: Iterable[Callable[..., Any]], *args: Any) -> bool | str:
    """Run rules in order; return True or the first failure message."""
    for rule in rules:
        result = rule(value, *args)
        if result is True:
            continue
        if isinstance(result, str):
            return result
        if not result:
            return GENERIC_RULE_MESSAGE
    return True


def capitalize(name: str) -> str:
    """Uppercase the first character only (``projectList`` -> ``ProjectList``)."""
    return name[:1].upper() + name[1:]


def now_millis() -> int:
    return int(time.time() * 1000)
