"""
Serializable mixin for dataclasses.

Provides to_dict()/from_dict() using dataclasses.fields() introspection,
so commit records and the repository state round-trip through JSON
without hand-written field lists.

Deserialization is lenient: missing fields that have defaults are
skipped, so a state.json written by an older version still loads.
"""

import dataclasses
from typing import get_args, get_origin, get_type_hints


class Serializable:
    """Mixin that adds to_dict() and from_dict() to dataclasses.

    Usage:
        @dataclass
        class Record(Serializable):
            name: str
            ids: list[str] = field(default_factory=list)

        d = Record("x", ["a"]).to_dict()   # {"name": "x", "ids": ["a"]}
        obj = Record.from_dict(d)
    """

    def to_dict(self) -> dict:
        result = {}
        for f in dataclasses.fields(self):  # type: ignore[arg-type]
            result[f.name] = _serialize(getattr(self, f.name))
        return result

    @classmethod
    def from_dict(cls, d: dict):
        hints = get_type_hints(cls)
        kwargs = {}
        for f in dataclasses.fields(cls):  # type: ignore[arg-type]
            if f.name not in d:
                # Missing optional fields fall back to their defaults;
                # missing required fields make the constructor raise.
                continue
            kwargs[f.name] = _deserialize(d[f.name], hints.get(f.name))
        return cls(**kwargs)


def _serialize(value):
    """Recursively serialize a value."""
    if isinstance(value, Serializable):
        return value.to_dict()
    if isinstance(value, list):
        return [_serialize(v) for v in value]
    if isinstance(value, dict):
        return {k: _serialize(v) for k, v in value.items()}
    return value


def _deserialize(value, field_type):
    """Deserialize a value according to its type hint."""
    if value is None:
        return None

    actual_type = _unwrap_optional(field_type)

    if (
        isinstance(value, dict)
        and isinstance(actual_type, type)
        and issubclass(actual_type, Serializable)
    ):
        return actual_type.from_dict(value)

    if isinstance(value, list):
        inner = _get_list_inner_type(actual_type)
        if inner and isinstance(inner, type) and issubclass(inner, Serializable):
            return [inner.from_dict(v) if isinstance(v, dict) else v for v in value]
        return list(value)

    if isinstance(value, dict):
        return dict(value)

    return value


def _unwrap_optional(tp):
    """Unwrap X | None to X."""
    origin = get_origin(tp)
    if origin is type(int | str):  # types.UnionType for X | Y syntax
        args = get_args(tp)
        non_none = [a for a in args if a is not type(None)]
        if len(non_none) == 1:
            return non_none[0]
    return tp


def _get_list_inner_type(tp):
    """Extract T from list[T]."""
    if get_origin(tp) is list:
        args = get_args(tp)
        if args:
            return args[0]
    return None
