"""
Type descriptors and runtime schema validation.

`parse_type` turns a declarative type descriptor into a JSON Schema
(draft 2020-12) node. `validate` runs a candidate through a
`Draft202012Validator` extended with the vdocs vocabulary and returns a
`ValidationReport` listing every failed rule with its reason and property
path.

Descriptor forms:

    Primitive.STRING / str              -> {"type": "string"}
    [Primitive.NUMBER]                  -> array of numbers
    [str, int]                          -> positional array
    {"first": str, "last": str}         -> object with properties
    {"type": str, "minLength": 2}       -> explicit schema
    {"type": str, "validator": {"fn": pred, "message": "..."}}
    {"$or": [str, int]}                 -> one of the branches must hold

Explicit schemas use the rule names `minLength`, `maxLength`, `exactLength`,
`gt`, `gte`, `lt`, `lte`, `eq`, `ne`, `pattern` (regex or named format) and
`custom`; they are translated to the matching JSON Schema keywords. Two
keywords extend the draft: `optional` (presence, with None counting as
missing) and `custom` (a predicate hook).
"""

from __future__ import annotations

import re
from datetime import date, datetime
from enum import Enum
from typing import Any, Callable, Dict, Iterator, List, Mapping, Optional

from jsonschema import Draft202012Validator, FormatChecker, validators
from jsonschema.exceptions import ValidationError as SchemaViolation

from vdocs.domain.models import ValidationIssue, ValidationReport


class Primitive(str, Enum):
    """Primitive type tags understood by the validator."""

    ANY = "any"
    STRING = "string"
    NUMBER = "number"
    INTEGER = "integer"
    BOOLEAN = "boolean"
    DATE = "date"
    OBJECT = "object"
    ARRAY = "array"
    NULL = "null"


_TOKENS: Dict[type, Primitive] = {
    str: Primitive.STRING,
    int: Primitive.INTEGER,
    float: Primitive.NUMBER,
    bool: Primitive.BOOLEAN,
    datetime: Primitive.DATE,
    date: Primitive.DATE,
    dict: Primitive.OBJECT,
    list: Primitive.ARRAY,
}

_FORMATS: Dict[str, "re.Pattern[str]"] = {
    "email": re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$"),
    "url": re.compile(r"^(https?|ftp)://[^\s/$.?#].[^\s]*$", re.IGNORECASE),
    "alpha": re.compile(r"^[a-zA-Z]+$"),
    "numeric": re.compile(r"^[0-9]+$"),
    "alphaNumeric": re.compile(r"^[a-zA-Z0-9]+$"),
    "integer": re.compile(r"^-?[0-9]+$"),
    "decimal": re.compile(r"^-?(?:[0-9]+\.?[0-9]*|\.[0-9]+)$"),
    "v4uuid": re.compile(
        r"^[0-9a-f]{8}-[0-9a-f]{4}-4[0-9a-f]{3}-[89ab][0-9a-f]{3}-[0-9a-f]{12}$",
        re.IGNORECASE,
    ),
    "date-time": re.compile(
        r"^\d{4}-\d{2}-\d{2}[T ]\d{2}:\d{2}(?::\d{2}(?:\.\d+)?)?(?:Z|[+-]\d{2}:?\d{2})?$"
    ),
}

# JSON Schema keyword -> reported reason
_REASONS = {
    "required": "optional",
    "minItems": "minLength",
    "maxItems": "maxLength",
    "minimum": "gte",
    "exclusiveMinimum": "gt",
    "maximum": "lte",
    "exclusiveMaximum": "lt",
    "enum": "eq",
    "const": "eq",
    "not": "ne",
    "format": "pattern",
    "anyOf": "$or",
    "oneOf": "$or",
}

_BOUNDS = {"gt": "exclusiveMinimum", "gte": "minimum", "lt": "exclusiveMaximum", "lte": "maximum"}

_MISSING_MESSAGE = "is missing and not optional"

_custom_types: Dict[str, Callable[[Any], bool]] = {}
_validator_class: Optional[type] = None


def _format_check(pattern: "re.Pattern[str]") -> Callable[[Any], bool]:
    return lambda value: not isinstance(value, str) or bool(pattern.search(value))


_FORMAT_CHECKER = FormatChecker(formats=())
for _name, _pattern in _FORMATS.items():
    _FORMAT_CHECKER.checks(_name)(_format_check(_pattern))


def register_type(name: str, predicate: Callable[[Any], bool]) -> None:
    """
    Register a custom type tag usable in descriptors and runtime schemas.

    Example
    -------
        register_type("slug", lambda v: isinstance(v, str) and v.islower())
        parse_type({"type": "slug"})
    """
    global _validator_class
    if name in {tag.value for tag in Primitive}:
        raise ValueError(f"Cannot redefine primitive type tag '{name}'")
    _custom_types[name] = predicate
    _validator_class = None


def _expand_token(token: Any) -> Optional[str]:
    """Map a tag or a Python type token to its tag name."""
    if isinstance(token, Primitive):
        return token.value
    if isinstance(token, str) and (token in Primitive._value2member_map_ or token in _custom_types):
        return token
    if isinstance(token, type) and token in _TOKENS:
        return _TOKENS[token].value
    return None


def _typed(tags: List[str], node: Dict[str, Any]) -> Dict[str, Any]:
    """Attach `type` to `node`; the `any` tag leaves the node untyped."""
    if not tags or Primitive.ANY.value in tags:
        node.pop("type", None)
        return node
    node["type"] = tags[0] if len(tags) == 1 else list(tags)
    return node


def _custom_check(declared: Any) -> Dict[str, Any]:
    if callable(declared):
        return {"fn": declared, "message": "failed custom validation"}
    return {"fn": declared["fn"], "message": declared.get("message", "failed custom validation")}


def _pattern_node(pattern: Any) -> Dict[str, Any]:
    if isinstance(pattern, str) and pattern in _FORMATS:
        return {"format": pattern}
    return {"pattern": pattern if isinstance(pattern, str) else pattern.pattern}


def _object_node(properties: Mapping[str, Any], optional: bool) -> Dict[str, Any]:
    node: Dict[str, Any] = {"type": Primitive.OBJECT.value, "optional": optional, "properties": dict(properties)}
    required = [key for key, sub in properties.items() if not sub.get("optional", True)]
    if required:
        node["required"] = required
    return node


def _explicit(descriptor: Mapping[str, Any], required: bool) -> Dict[str, Any]:
    """Translate an explicit `{"type": ..., rule: ...}` descriptor."""
    rules = dict(descriptor)
    declared = rules.pop("type")
    declared = declared if isinstance(declared, (list, tuple)) else [declared]
    node: Dict[str, Any] = {"optional": rules.pop("optional", not required)}

    if "properties" in rules:
        properties = {key: parse_type(value, required) for key, value in rules.pop("properties").items()}
        node.update(_object_node(properties, node["optional"]))
    if "items" in rules:
        items = rules.pop("items")
        if isinstance(items, (list, tuple)):
            node["prefixItems"] = [parse_type(item, required) for item in items]
        else:
            node["items"] = parse_type(items, required)

    for key in ("minLength", "maxLength"):
        if key in rules:
            node[key] = rules[key]
            node[key.replace("Length", "Items")] = rules.pop(key)
    if "exactLength" in rules:
        size = rules.pop("exactLength")
        node.update(minLength=size, maxLength=size, minItems=size, maxItems=size)
    for key, keyword in _BOUNDS.items():
        if key in rules:
            node[keyword] = rules.pop(key)
    if "eq" in rules:
        expected = rules.pop("eq")
        node.update({"enum": list(expected)} if isinstance(expected, (list, tuple)) else {"const": expected})
    if "ne" in rules:
        forbidden = rules.pop("ne")
        node["not"] = {"enum": list(forbidden)} if isinstance(forbidden, (list, tuple)) else {"const": forbidden}
    if "pattern" in rules:
        patterns = rules.pop("pattern")
        patterns = patterns if isinstance(patterns, (list, tuple)) else [patterns]
        nodes = [_pattern_node(pattern) for pattern in patterns]
        if len(nodes) == 1:
            node.update(nodes[0])
        else:
            node["allOf"] = nodes
    custom = rules.pop("validator", None) or rules.pop("custom", None)
    if custom is not None:
        node["custom"] = _custom_check(custom)

    node.update(rules)
    return _typed([_expand_token(tag) or tag for tag in declared], node)


def parse_type(descriptor: Any, required: bool = False) -> Any:
    """
    Convert a type descriptor into a JSON Schema node.

    `required` sets the `optional` flag of the produced node and of its
    nested nodes; object nodes list their non-optional properties under
    `required`. A missing descriptor is always optional.
    """
    optional = not required

    if descriptor is None:
        return {"optional": True}

    if isinstance(descriptor, (list, tuple)):
        schema: Dict[str, Any] = {"type": Primitive.ARRAY.value, "optional": optional}
        items = [parse_type(item, required) for item in descriptor]
        if len(items) == 1:
            schema["items"] = items[0]
        elif items:
            schema["prefixItems"] = items
            schema["minItems"] = sum(not item["optional"] for item in items)
        return schema

    tag = _expand_token(descriptor)
    if tag is not None:
        return _typed([tag], {"optional": optional})

    if isinstance(descriptor, Mapping):
        for key, keyword in (("$and", "allOf"), ("$or", "anyOf")):
            if key in descriptor:
                return {
                    keyword: [parse_type(branch, required) for branch in descriptor[key]],
                    "optional": descriptor.get("optional", optional),
                }
        if "type" in descriptor:
            return _explicit(descriptor, required)
        return _object_node(
            {key: parse_type(value, required) for key, value in descriptor.items()}, optional
        )

    raise TypeError(f"Unsupported type descriptor: {descriptor!r}")


def object_schema(properties: Mapping[str, Any]) -> Dict[str, Any]:
    """Combine already parsed property schemas into an object schema."""
    return _object_node(properties, optional=False)


# ------------------------------------------------------------- vocabulary

def _admits_null(schema: Mapping[str, Any]) -> bool:
    declared = schema.get("type", [])
    return Primitive.NULL.value in (declared if isinstance(declared, list) else [declared])


def _optional(validator: Any, optional: bool, instance: Any, schema: Mapping[str, Any]) -> Iterator[SchemaViolation]:
    if not optional and instance is None and not _admits_null(schema):
        yield SchemaViolation(_MISSING_MESSAGE)


def _required(validator: Any, required: List[str], instance: Any, schema: Mapping[str, Any]) -> Iterator[SchemaViolation]:
    if not validator.is_type(instance, "object"):
        return
    for key in required:
        if key not in instance:
            yield SchemaViolation(_MISSING_MESSAGE, path=[key])


def _type(validator: Any, types: Any, instance: Any, schema: Mapping[str, Any]) -> Iterator[SchemaViolation]:
    # None is handled by the presence rule
    if instance is None:
        return
    yield from Draft202012Validator.VALIDATORS["type"](validator, types, instance, schema)


def _custom(validator: Any, custom: Mapping[str, Any], instance: Any, schema: Mapping[str, Any]) -> Iterator[SchemaViolation]:
    if instance is None or custom["fn"](instance):
        return
    message = custom["message"]
    if callable(message):
        message = message(schema, instance)
    else:
        message = str(message).format(value=instance)
    yield SchemaViolation(message)


def _build_validator_class() -> type:
    checks = {
        Primitive.DATE.value: lambda checker, value: isinstance(value, date),
        Primitive.ARRAY.value: lambda checker, value: isinstance(value, (list, tuple)),
        Primitive.OBJECT.value: lambda checker, value: isinstance(value, Mapping),
    }
    for name, predicate in _custom_types.items():
        checks[name] = lambda checker, value, predicate=predicate: predicate(value)
    return validators.extend(
        Draft202012Validator,
        validators={"optional": _optional, "required": _required, "type": _type, "custom": _custom},
        type_checker=Draft202012Validator.TYPE_CHECKER.redefine_many(checks),
    )


def _validator_for(schema: Any) -> Any:
    global _validator_class
    if _validator_class is None:
        _validator_class = _build_validator_class()
    return _validator_class(schema, format_checker=_FORMAT_CHECKER)


def _property_path(error: SchemaViolation) -> str:
    path = "@"
    for part in error.absolute_path:
        path += f"[{part}]" if isinstance(part, int) else f".{part}"
    return path


def validate(schema: Any, value: Any) -> ValidationReport:
    """
    Validate a candidate against a runtime schema.

    A list of schemas means every one of them must hold.

    Returns
    -------
    ValidationReport
        `valid` is True when no rule failed; `error` lists the failures.
    """
    if isinstance(schema, (list, tuple)):
        schema = {"allOf": list(schema)}
    issues = [
        ValidationIssue(
            reason=_REASONS.get(error.validator, error.validator),
            property=_property_path(error),
            message=error.message,
        )
        for error in _validator_for(schema).iter_errors(value)
    ]
    return ValidationReport(valid=not issues, error=issues)


__all__ = [
    "Primitive",
    "parse_type",
    "object_schema",
    "register_type",
    "validate",
]
