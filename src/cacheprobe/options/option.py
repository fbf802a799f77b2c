import csv
import copy
import logging
import re
from enum import Enum
from typing import Any, Callable, Dict, List

from ..exceptions import OptionParseError

logger = logging.getLogger(__name__)

_TRUE_STRINGS = frozenset({"1", "t", "T", "TRUE", "true", "True"})
_FALSE_STRINGS = frozenset({"0", "f", "F", "FALSE", "false", "False"})
_INT_PATTERN = re.compile(r"[+-]?[0-9]+")
_INT64_MIN = -(2 ** 63)
_INT64_MAX = 2 ** 63 - 1


class OptionKind(str, Enum):
    """Primitive kind of an option value."""
    BOOL = "bool"
    INT = "int"
    STRING = "string"
    STRING_LIST = "string-list"


def _parse_bool(raw: str) -> bool:
    if raw in _TRUE_STRINGS:
        return True
    if raw in _FALSE_STRINGS:
        return False
    raise ValueError("invalid syntax, expected a boolean")


def _parse_int(raw: str) -> int:
    if not _INT_PATTERN.fullmatch(raw):
        raise ValueError("invalid syntax, expected a base-10 integer")
    value = int(raw)
    if not _INT64_MIN <= value <= _INT64_MAX:
        raise ValueError("value out of range")
    return value


def _parse_string(raw: str) -> str:
    return raw


def _parse_string_list(raw: str) -> List[str]:
    if raw == "":
        return []
    try:
        rows = list(csv.reader([raw], strict=True))
    except csv.Error as e:
        raise ValueError(f"invalid comma separated list: {e}")
    return rows[0] if rows else []


_PARSERS: Dict[OptionKind, Callable[[str], Any]] = {
    OptionKind.BOOL: _parse_bool,
    OptionKind.INT: _parse_int,
    OptionKind.STRING: _parse_string,
    OptionKind.STRING_LIST: _parse_string_list,
}

_ZERO_VALUES: Dict[OptionKind, Any] = {
    OptionKind.BOOL: False,
    OptionKind.INT: 0,
    OptionKind.STRING: "",
    OptionKind.STRING_LIST: [],
}

_PY_TYPES: Dict[OptionKind, tuple] = {
    OptionKind.BOOL: (bool,),
    OptionKind.INT: (int,),
    OptionKind.STRING: (str,),
    OptionKind.STRING_LIST: (list, tuple),
}


class Option:
    """
    One named, typed, settable unit of build configuration.

    `set()` parses a string the way the builder's own flag parser does. For
    string-list options it appends, so callers replacing a list value must
    `reset()` first.
    """

    def __init__(self, env: str, kind: OptionKind, attr: str, description: str = ""):
        self.env = env
        self.kind = OptionKind(kind)
        self.attr = attr
        self.description = description
        self.default = copy.copy(_ZERO_VALUES[self.kind])
        self.value = copy.copy(self.default)

    def set(self, raw: str) -> None:
        """Parse `raw` and apply it. The value is untouched when parsing fails."""
        try:
            parsed = _PARSERS[self.kind](raw)
        except ValueError as e:
            raise OptionParseError(self.env, raw, str(e)) from e
        if self.kind is OptionKind.STRING_LIST:
            self.value = self.value + parsed
        else:
            self.value = parsed

    def assign(self, value: Any) -> None:
        """Replace the value with an already-typed Python value."""
        # bool is an int subclass; reject it for INT options
        if not isinstance(value, _PY_TYPES[self.kind]) or (
            self.kind is OptionKind.INT and isinstance(value, bool)
        ):
            raise TypeError(f"{self.env} expects a {self.kind.value} value, got {type(value).__name__}")
        self.value = [str(v) for v in value] if self.kind is OptionKind.STRING_LIST else value

    def get(self) -> Any:
        return copy.copy(self.value)

    def reset(self) -> None:
        self.value = copy.copy(self.default)

    def string(self) -> str:
        if self.kind is OptionKind.STRING_LIST:
            return ",".join(self.value)
        if self.kind is OptionKind.BOOL:
            return "true" if self.value else "false"
        return str(self.value)

    def is_zero(self) -> bool:
        return self.value == self.default

    def copy(self) -> "Option":
        clone = Option(self.env, self.kind, self.attr, self.description)
        clone.value = copy.copy(self.value)
        return clone

    def __repr__(self) -> str:
        return f"Option({self.env}={self.value!r})"
