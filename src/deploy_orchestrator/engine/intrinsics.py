"""Intrinsic functions used in deployment documents.

Property values may embed CloudFormation-style intrinsics in their JSON form
(the YAML loader maps the short ``!Ref``, ``!GetAtt``, ``!Join``, ``!Select`` and
``!FindInMap`` tags onto these):

- ``{"Ref": "Name"}``: a parameter value, or a resource's physical id
- ``{"Fn::GetAtt": ["Name", "attr"]}``: an output of a resource
- ``{"Fn::Join": ["sep", [...]]}``: string concatenation
- ``{"Fn::Select": [index, [...]]}``: one element of a list
- ``{"Fn::FindInMap": ["Map", "key", "subkey"]}``: a mappings lookup

Parameters and mappings are substituted at build time.  Resource references
stay in place until plan time (against the state) or execution time (against
freshly created resources).
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from typing import Any

REF = "Ref"
GET_ATT = "Fn::GetAtt"
JOIN = "Fn::Join"
FIND_IN_MAP = "Fn::FindInMap"
SELECT = "Fn::Select"

SUPPORTED = frozenset({REF, GET_ATT, JOIN, FIND_IN_MAP, SELECT})

UNKNOWN = "(known after apply)"


class IntrinsicError(ValueError):
    """Malformed intrinsic function call."""


def intrinsic_name(value: Any) -> str | None:
    """Return the intrinsic key if *value* is an intrinsic call, else ``None``."""
    if isinstance(value, dict) and len(value) == 1:
        (key,) = value
        if key == REF or (isinstance(key, str) and key.startswith("Fn::")):
            return key
    return None


def _get_att_args(args: Any) -> tuple[str, str]:
    if isinstance(args, str):
        args = args.partition(".")[::2]
    if isinstance(args, (list, tuple)) and len(args) == 2 and all(
        isinstance(a, str) and a for a in args
    ):
        return args[0], args[1]
    raise IntrinsicError(f"{GET_ATT} expects 'Name.attr' or [Name, attr], got {args!r}")


def _select_args(args: Any) -> tuple[int, Any]:
    if isinstance(args, list) and len(args) == 2:
        index, items = args
        if isinstance(index, str) and index.isdigit():
            index = int(index)
        if isinstance(index, int) and not isinstance(index, bool):
            return index, items
    raise IntrinsicError(f"{SELECT} expects [index, [values...]], got {args!r}")


def _select(index: int, items: Any) -> Any:
    if not isinstance(items, list):
        raise IntrinsicError(f"{SELECT} expects a list to select from, got {items!r}")
    if not 0 <= index < len(items):
        raise IntrinsicError(f"{SELECT} index {index} out of range for {len(items)} values")
    return items[index]


def _join_args(args: Any) -> tuple[str, list[Any]]:
    if (
        isinstance(args, list)
        and len(args) == 2
        and isinstance(args[0], str)
        and isinstance(args[1], list)
    ):
        return args[0], args[1]
    raise IntrinsicError(f"{JOIN} expects [separator, [values...]], got {args!r}")


def substitute_static(
    value: Any,
    parameters: Mapping[str, Any],
    mappings: Mapping[str, Mapping[str, Mapping[str, Any]]],
) -> Any:
    """Replace parameter ``Ref``s and ``Fn::FindInMap`` calls, recursively.

    Resource references are left untouched.  Raises :class:`IntrinsicError`
    for malformed or unsupported intrinsics.
    """
    fn = intrinsic_name(value)
    if fn is not None:
        args = value[fn]
        if fn not in SUPPORTED:
            raise IntrinsicError(f"Unsupported intrinsic function: {fn}")
        if fn == REF:
            if not isinstance(args, str):
                raise IntrinsicError(f"{REF} expects a name, got {args!r}")
            return parameters[args] if args in parameters else value
        if fn == FIND_IN_MAP:
            args = substitute_static(args, parameters, mappings)
            if not isinstance(args, list) or len(args) != 3:
                raise IntrinsicError(f"{FIND_IN_MAP} expects [map, key, subkey], got {args!r}")
            map_name, key, subkey = args
            try:
                return mappings[map_name][key][subkey]
            except (KeyError, TypeError) as exc:
                raise IntrinsicError(
                    f"{FIND_IN_MAP} lookup failed: {map_name}.{key}.{subkey}"
                ) from exc
        if fn == GET_ATT:
            _get_att_args(args)
            return value
        if fn == SELECT:
            index, items = _select_args(substitute_static(args, parameters, mappings))
            if intrinsic_name(items) is not None:
                # a resource value, selected at plan or execution time
                return {SELECT: [index, items]}
            return _select(index, items)
        sep, parts = _join_args(args)
        return {JOIN: [sep, [substitute_static(p, parameters, mappings) for p in parts]]}
    if isinstance(value, dict):
        return {k: substitute_static(v, parameters, mappings) for k, v in value.items()}
    if isinstance(value, list):
        return [substitute_static(v, parameters, mappings) for v in value]
    return value


def collect_references(value: Any) -> list[str]:
    """Names referenced through ``Ref`` / ``Fn::GetAtt``, in first-seen order."""
    found: list[str] = []

    def _walk(v: Any) -> None:
        fn = intrinsic_name(v)
        if fn == REF:
            name = v[fn]
            if name not in found:
                found.append(name)
            return
        if fn == GET_ATT:
            name, _ = _get_att_args(v[fn])
            if name not in found:
                found.append(name)
            return
        if isinstance(v, dict):
            for item in v.values():
                _walk(item)
        elif isinstance(v, list):
            for item in v:
                _walk(item)

    _walk(value)
    return found


def resolve_references(
    value: Any,
    ref: Callable[[str], Any],
    get_att: Callable[[str, str], Any],
) -> Any:
    """Resolve resource ``Ref``/``Fn::GetAtt``/``Fn::Join`` calls, recursively.

    *ref* and *get_att* return :data:`UNKNOWN` for values that only exist
    after apply; a join over an unknown part is itself unknown.
    """
    fn = intrinsic_name(value)
    if fn == REF:
        return ref(value[fn])
    if fn == GET_ATT:
        return get_att(*_get_att_args(value[fn]))
    if fn == JOIN:
        sep, parts = _join_args(value[fn])
        resolved = [resolve_references(p, ref, get_att) for p in parts]
        if any(p == UNKNOWN for p in resolved):
            return UNKNOWN
        return sep.join(str(p) for p in resolved)
    if fn == SELECT:
        index, items = _select_args(value[fn])
        items = resolve_references(items, ref, get_att)
        if items == UNKNOWN:
            return UNKNOWN
        return _select(index, items)
    if isinstance(value, dict):
        return {k: resolve_references(v, ref, get_att) for k, v in value.items()}
    if isinstance(value, list):
        return [resolve_references(v, ref, get_att) for v in value]
    return value


def contains_unknown(value: Any) -> bool:
    if value == UNKNOWN:
        return True
    if isinstance(value, dict):
        return any(contains_unknown(v) for v in value.values())
    if isinstance(value, list):
        return any(contains_unknown(v) for v in value)
    return False
