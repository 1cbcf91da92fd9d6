"""Matchers for describing flexible expectations in pact documents."""

from __future__ import annotations

import collections.abc
import dataclasses
import json
import logging
import re
import types
import typing
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from pactkit.models import SpecificationVersion

logger = logging.getLogger("pactkit")

HEXADECIMAL = r"[0-9a-fA-F]+"
IP_ADDRESS = r"(\d{1,3}\.)+\d{1,3}"
IPV6_ADDRESS = r"(\A([0-9a-f]{1,4}:){1,1}(:[0-9a-f]{1,4}){1,6}\Z)|(\A([0-9a-f]{1,4}:){1,2}(:[0-9a-f]{1,4}){1,5}\Z)|(\A([0-9a-f]{1,4}:){1,3}(:[0-9a-f]{1,4}){1,4}\Z)|(\A([0-9a-f]{1,4}:){1,4}(:[0-9a-f]{1,4}){1,3}\Z)|(\A([0-9a-f]{1,4}:){1,5}(:[0-9a-f]{1,4}){1,2}\Z)|(\A([0-9a-f]{1,4}:){1,6}(:[0-9a-f]{1,4}){1,1}\Z)|(\A(([0-9a-f]{1,4}:){1,7}|:):\Z)|(\A:(:[0-9a-f]{1,4}){1,7}\Z)|(\A((([0-9a-f]{1,4}:){6})(25[0-5]|2[0-4]\d|[0-1]?\d?\d)(\.(25[0-5]|2[0-4]\d|[0-1]?\d?\d)){3})\Z)|(\A(([0-9a-f]{1,4}:){5}[0-9a-f]{1,4}:(25[0-5]|2[0-4]\d|[0-1]?\d?\d)(\.(25[0-5]|2[0-4]\d|[0-1]?\d?\d)){3})\Z)|(\A([0-9a-f]{1,4}:){5}:[0-9a-f]{1,4}:(25[0-5]|2[0-4]\d|[0-1]?\d?\d)(\.(25[0-5]|2[0-4]\d|[0-1]?\d?\d)){3}\Z)|(\A([0-9a-f]{1,4}:){1,1}(:[0-9a-f]{1,4}){1,4}:(25[0-5]|2[0-4]\d|[0-1]?\d?\d)(\.(25[0-5]|2[0-4]\d|[0-1]?\d?\d)){3}\Z)|(\A([0-9a-f]{1,4}:){1,2}(:[0-9a-f]{1,4}){1,3}:(25[0-5]|2[0-4]\d|[0-1]?\d?\d)(\.(25[0-5]|2[0-4]\d|[0-1]?\d?\d)){3}\Z)|(\A([0-9a-f]{1,4}:){1,3}(:[0-9a-f]{1,4}){1,2}:(25[0-5]|2[0-4]\d|[0-1]?\d?\d)(\.(25[0-5]|2[0-4]\d|[0-1]?\d?\d)){3}\Z)|(\A([0-9a-f]{1,4}:){1,4}(:[0-9a-f]{1,4}){1,1}:(25[0-5]|2[0-4]\d|[0-1]?\d?\d)(\.(25[0-5]|2[0-4]\d|[0-1]?\d?\d)){3}\Z)|(\A(([0-9a-f]{1,4}:){1,5}|:):(25[0-5]|2[0-4]\d|[0-1]?\d?\d)(\.(25[0-5]|2[0-4]\d|[0-1]?\d?\d)){3}\Z)|(\A:(:[0-9a-f]{1,4}){1,5}:(25[0-5]|2[0-4]\d|[0-1]?\d?\d)(\.(25[0-5]|2[0-4]\d|[0-1]?\d?\d)){3}\Z)"  # noqa: E501
UUID_PATTERN = r"[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}"
TIMESTAMP_PATTERN = r"^([\+-]?\d{4}(?!\d{2}\b))((-?)((0[1-9]|1[0-2])(\3([12]\d|0[1-9]|3[01]))?|W([0-4]\d|5[0-2])(-?[1-7])?|(00[1-9]|0[1-9]\d|[12]\d{2}|3([0-5]\d|6[1-6])))([T\s]((([01]\d|2[0-3])((:?)[0-5]\d)?|24\:?00)([\.,]\d+(?!:))?)?(\17[0-5]\d([\.,]\d+)?)?([zZ]|([\+-])([01]\d|2[0-3]):?([0-5]\d)?)?)?)?$"  # noqa: E501
DATE_PATTERN = r"^([\+-]?\d{4}(?!\d{2}\b))((-?)((0[1-9]|1[0-2])(\3([12]\d|0[1-9]|3[01]))?|W([0-4]\d|5[0-2])(-?[1-7])?|(00[1-9]|0[1-9]\d|[12]\d{2}|3([0-5]\d|6[1-6])))?)"  # noqa: E501
TIME_PATTERN = r"^(T\d\d:\d\d(:\d\d)?(\.\d+)?(([+-]\d\d:\d\d)|Z)?)?$"

_TIME_EXAMPLE = datetime(2000, 2, 1, 12, 30, 0, tzinfo=timezone.utc)

_MATCHER_TYPE = "pact:matcher:type"
_SPECIFICATION = "pact:specification"
_GENERATOR_TYPE = "pact:generator:type"


class InvalidPactTagError(ValueError):
    """Raised when a 'pact' field tag cannot be parsed."""


def _jsonable(obj: Any) -> Any:
    if isinstance(obj, Matcher):
        return obj.to_json()
    if isinstance(obj, collections.abc.Mapping):
        return {str(name): _jsonable(value) for name, value in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [_jsonable(item) for item in obj]
    return obj


def to_json(obj: Any) -> str:
    """Serialise matchers (and structures holding them) to a JSON string."""
    return json.dumps(_jsonable(obj))


class Matcher(ABC):
    """Something that can stand in for a value in a pact body."""

    @abstractmethod
    def get_value(self) -> Any:
        """The example value, without any matching detail."""

    @abstractmethod
    def to_json(self) -> Any:
        """The JSON-ready form of the matcher."""


@dataclass
class Like(Matcher):
    """Match on type rather than on the exact value."""

    value: Any
    type: str = "type"
    specification: SpecificationVersion = SpecificationVersion.V2

    def get_value(self) -> Any:
        return self.value

    def to_json(self) -> Dict[str, Any]:
        return {
            "specification": SpecificationVersion(self.specification).value,
            _MATCHER_TYPE: self.type,
            "value": _jsonable(self.value),
        }


@dataclass
class EachLike(Matcher):
    """An array whose elements all look like the example."""

    value: List[Any]
    minimum: int = 1

    def get_value(self) -> List[Any]:
        return self.value

    def to_json(self) -> Dict[str, Any]:
        return {_MATCHER_TYPE: "type", "value": _jsonable(self.value), "min": self.minimum}


@dataclass
class Term(Matcher):
    """A string matched by a regular expression."""

    value: str
    regex: str

    def get_value(self) -> str:
        return self.value

    def to_json(self) -> Dict[str, Any]:
        return {_MATCHER_TYPE: "regex", "value": self.value, "regex": self.regex}


@dataclass
class Null(Matcher):
    """Matches only null."""

    def get_value(self) -> None:
        return None

    def to_json(self) -> Dict[str, Any]:
        return {_SPECIFICATION: SpecificationVersion.V3.value, _MATCHER_TYPE: "null"}


@dataclass
class Equality(Matcher):
    """Resets cascading matchers back to equality."""

    contents: Any

    def get_value(self) -> Any:
        return self.contents

    def to_json(self) -> Dict[str, Any]:
        return {
            _SPECIFICATION: SpecificationVersion.V3.value,
            _MATCHER_TYPE: "equality",
            "value": _jsonable(self.contents),
        }


@dataclass
class Includes(Matcher):
    """The actual value must contain this string."""

    contents: str

    def get_value(self) -> str:
        return self.contents

    def to_json(self) -> Dict[str, Any]:
        return {
            _SPECIFICATION: SpecificationVersion.V3.value,
            _MATCHER_TYPE: "include",
            "value": self.contents,
        }


@dataclass
class FromProviderState(Matcher):
    """A value injected from the provider state during verification."""

    expression: str
    value: str

    def get_value(self) -> str:
        return self.value

    def to_json(self) -> Dict[str, Any]:
        return {
            _SPECIFICATION: SpecificationVersion.V3.value,
            _MATCHER_TYPE: "type",
            _GENERATOR_TYPE: "ProviderState",
            "expression": self.expression,
            "value": self.value,
        }


@dataclass
class EachKeyLike(Matcher):
    """An object whose keys are ignored but whose values match the template."""

    contents: Any

    def get_value(self) -> Any:
        return self.contents

    def to_json(self) -> Dict[str, Any]:
        return {
            _SPECIFICATION: SpecificationVersion.V3.value,
            _MATCHER_TYPE: "values",
            "value": _jsonable(self.contents),
        }


@dataclass
class ArrayContaining(Matcher):
    """An array that contains items matching each of the variants."""

    variants: List[Any]

    def get_value(self) -> List[Any]:
        return self.variants

    def to_json(self) -> Dict[str, Any]:
        return {
            _SPECIFICATION: SpecificationVersion.V3.value,
            _MATCHER_TYPE: "arrayContains",
            "variants": _jsonable(self.variants),
        }


@dataclass
class MinMaxLike(Matcher):
    """An array of like elements with bounds on its length."""

    contents: List[Any]
    minimum: int = 0
    maximum: int = 0

    def get_value(self) -> List[Any]:
        return self.contents

    def to_json(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            _SPECIFICATION: SpecificationVersion.V3.value,
            _MATCHER_TYPE: "type",
            "value": _jsonable(self.contents),
        }
        if self.minimum:
            data["min"] = self.minimum
        if self.maximum:
            data["max"] = self.maximum
        return data


@dataclass
class StringGenerator(Matcher):
    """A formatted date/time string that is regenerated during verification."""

    type: str
    generator: str
    contents: str
    format: str

    def get_value(self) -> str:
        return self.contents

    def to_json(self) -> Dict[str, Any]:
        return {
            _SPECIFICATION: SpecificationVersion.V3.value,
            _MATCHER_TYPE: self.type,
            "value": self.contents,
            "format": self.format,
            _GENERATOR_TYPE: self.generator,
        }


class String(str, Matcher):
    """A plain string used where a matcher is expected."""

    def get_value(self) -> str:
        return str(self)

    def to_json(self) -> str:
        return str(self)


S = String


class StructMatcher(dict, Matcher):
    """An object whose values may themselves be matchers."""

    def get_value(self) -> None:
        return None

    def to_json(self) -> Dict[str, Any]:
        return {str(name): _jsonable(value) for name, value in self.items()}


class MapMatcher(dict):
    """A string-keyed mapping whose values are matchers."""

    @classmethod
    def from_json(cls, text: str) -> "MapMatcher":
        """Parse a JSON object of strings, wrapping every value as a String."""
        data = json.loads(text)
        if not isinstance(data, dict):
            raise ValueError("expected a JSON object of strings")
        for name, value in data.items():
            if not isinstance(value, str):
                raise ValueError(f"value for key {name!r} is not a string")
        return cls({name: String(value) for name, value in data.items()})


Map = MapMatcher
MetadataMatcher = MapMatcher
HeadersMatcher = Dict[str, List[Matcher]]
QueryMatcher = Dict[str, List[Matcher]]


def each_like(content: Any, min_required: int) -> EachLike:
    """An array repeating ``content`` at least ``min_required`` times (minimum 1)."""
    if min_required < 1:
        logger.warning("min value to an array matcher can't be less than one")
        min_required = 1
    return EachLike(value=[content] * min_required, minimum=min_required)


array_min_like = each_like


def like(content: Any) -> Like:
    """Match on the type of ``content`` rather than its value."""
    return Like(value=content)


def term(generate: str, matcher: str) -> Term:
    """Generate ``generate`` and match with the regular expression ``matcher``."""
    return Term(value=generate, regex=matcher)


regex = term


def hex_value() -> Term:
    """Matches hexadecimal values."""
    return regex("3F", HEXADECIMAL)


def identifier() -> Like:
    """Matches integer identifiers."""
    return like(42)


def ip_address() -> Term:
    """Matches IPv4 addresses."""
    return regex("127.0.0.1", IP_ADDRESS)


ipv4_address = ip_address


def ipv6_address() -> Term:
    """Matches IP addresses, with an IPv6 example."""
    return regex("::ffff:192.0.2.128", IP_ADDRESS)


def timestamp() -> Term:
    """Matches ISO 8601 date-times."""
    return regex(_TIME_EXAMPLE.strftime("%Y-%m-%dT%H:%M:%SZ"), TIMESTAMP_PATTERN)


def date() -> Term:
    """Matches ISO 8601 dates."""
    return regex(_TIME_EXAMPLE.strftime("%Y-%m-%d"), DATE_PATTERN)


def time_of_day() -> Term:
    """Matches ISO 8601 times of the form 'THH:mm:ss'."""
    return regex(_TIME_EXAMPLE.strftime("T%H:%M:%S"), TIME_PATTERN)


def uuid_value() -> Term:
    """Matches UUIDs, with a v4 UUID as the example."""
    return regex("fc763eba-0905-41c5-a27f-3934ab26786c", UUID_PATTERN)


def decimal(example: float) -> Like:
    """Matches any decimal value."""
    return Like(value=example, type="decimal", specification=SpecificationVersion.V3)


def integer(example: int) -> Like:
    """Matches any integer value."""
    return Like(value=example, type="integer", specification=SpecificationVersion.V3)


def equality(content: Any) -> Equality:
    """Reset matching back to equality."""
    return Equality(contents=content)


def includes(content: str) -> Includes:
    """The actual value must contain ``content``."""
    return Includes(contents=content)


def from_provider_state(expression: str, example: str) -> FromProviderState:
    """A value looked up with ``expression`` from the provider state."""
    return FromProviderState(expression=expression, value=example)


def each_key_like(key: str, template: Any) -> EachKeyLike:
    """An object where keys are ignored and values must match ``template``."""
    return EachKeyLike(contents=template)


def array_containing(variants: List[Any]) -> ArrayContaining:
    """An array holding items that match each of ``variants``."""
    return ArrayContaining(variants=list(variants))


def _repeat(content: Any, count: int) -> List[Any]:
    if count < 0:
        raise ValueError(f"max value to an array matcher can't be negative: {count}")
    return [content] * count


def array_min_max_like(content: Any, min_count: int, max_count: int) -> MinMaxLike:
    """Like each_like, bounded by ``min_count`` (at least 1) and ``max_count``."""
    if min_count < 1:
        logger.warning("min value to an array matcher can't be less than one")
        min_count = 1
    return MinMaxLike(contents=_repeat(content, max_count), minimum=min_count, maximum=max_count)


def array_max_like(content: Any, max_count: int) -> MinMaxLike:
    """Like each_like, bounded above by ``max_count``."""
    return MinMaxLike(contents=_repeat(content, max_count), minimum=1, maximum=max_count)


def date_generated(example: str, fmt: str) -> StringGenerator:
    """A date in ``fmt``, regenerated as the current date during verification."""
    return StringGenerator(type="date", generator="Date", contents=example, format=fmt)


def time_generated(example: str, fmt: str) -> StringGenerator:
    """A time in ``fmt``, regenerated as the current time during verification."""
    return StringGenerator(type="time", generator="Time", contents=example, format=fmt)


def date_time_generated(example: str, fmt: str) -> StringGenerator:
    """A date-time in ``fmt``, regenerated during verification."""
    return StringGenerator(type="timestamp", generator="DateTime", contents=example, format=fmt)


@dataclass
class Params:
    """Settings read from a field's 'pact' tag."""

    slice_min: int = 1
    example: str = ""
    regex: str = ""
    integer: int = 0
    decimal: float = 0.0
    boolean: bool = False
    boolean_defined: bool = False


def default_params() -> Params:
    """The settings used when a field has no 'pact' tag."""
    return Params()


_UNION_ORIGINS = (typing.Union, types.UnionType)
_SEQUENCE_ORIGINS = (list, tuple, set, frozenset, collections.abc.Sequence, collections.abc.Set)

# Names understood in string annotations (as left by postponed evaluation).
_ANNOTATION_NAMES: Dict[str, Any] = {
    "str": str,
    "int": int,
    "float": float,
    "bool": bool,
    "list": list,
    "tuple": tuple,
    "set": set,
    "frozenset": frozenset,
    "dict": dict,
    "List": typing.List,
    "Tuple": typing.Tuple,
    "Set": typing.Set,
    "FrozenSet": typing.FrozenSet,
    "Sequence": typing.Sequence,
    "Dict": typing.Dict,
    "Mapping": typing.Mapping,
    "Any": typing.Any,
    "Optional": typing.Optional,
    "Union": typing.Union,
    "None": type(None),
    "NoneType": type(None),
}

_ANNOTATION_LEXEME = re.compile(r"\s*(\.\.\.|[A-Za-z_][\w.]*|[\[\],|])")


class _AnnotationParser:
    """Resolves simple string annotations without executing them."""

    def __init__(self, text: str, extra: Dict[str, Any]) -> None:
        self._lexemes = self._split(text)
        self._pos = 0
        self._names = {**_ANNOTATION_NAMES, **extra}
        self._text = text

    @staticmethod
    def _split(text: str) -> List[str]:
        lexemes = []
        pos = 0
        stripped = text.rstrip()
        while pos < len(stripped):
            found = _ANNOTATION_LEXEME.match(stripped, pos)
            if found is None:
                raise TypeError(f"match: unhandled type: {text!r}")
            lexemes.append(found.group(1))
            pos = found.end()
        return lexemes

    def _peek(self) -> Optional[str]:
        return self._lexemes[self._pos] if self._pos < len(self._lexemes) else None

    def _take(self) -> str:
        lexeme = self._peek()
        if lexeme is None:
            raise TypeError(f"match: unhandled type: {self._text!r}")
        self._pos += 1
        return lexeme

    def parse(self) -> Any:
        result = self._union()
        if self._peek() is not None:
            raise TypeError(f"match: unhandled type: {self._text!r}")
        return result

    def _union(self) -> Any:
        members = [self._primary()]
        while self._peek() == "|":
            self._take()
            members.append(self._primary())
        if len(members) == 1:
            return members[0]
        return typing.Union[tuple(members)]

    def _primary(self) -> Any:
        lexeme = self._take()
        if lexeme == "...":
            return Ellipsis
        name = lexeme.rsplit(".", 1)[-1]
        if name not in self._names:
            raise TypeError(f"match: unhandled type: {self._text!r}")
        base = self._names[name]
        if self._peek() != "[":
            return base
        self._take()
        args = [self._union()]
        while self._peek() == ",":
            self._take()
            args.append(self._union())
        if self._take() != "]":
            raise TypeError(f"match: unhandled type: {self._text!r}")
        return base[tuple(args)] if len(args) > 1 else base[args[0]]


def _resolve_annotation(annotation: Any, owner: type) -> Any:
    if not isinstance(annotation, str):
        return annotation
    extra = {owner.__name__: owner}
    return _AnnotationParser(annotation, extra).parse()


def _classify(tp: Any) -> Tuple[Optional[str], Any]:
    origin = typing.get_origin(tp)
    if origin in _UNION_ORIGINS:
        args = typing.get_args(tp)
        present = [arg for arg in args if arg is not type(None)]
        if len(present) == 1 and len(args) == 2:
            return "pointer", present[0]
        return None, None
    if origin is not None:
        if isinstance(origin, type) and issubclass(origin, _SEQUENCE_ORIGINS):
            args = typing.get_args(tp)
            if origin is tuple:
                if len(args) == 1 or (len(args) == 2 and args[1] is Ellipsis):
                    return "slice", args[0]
                return None, None
            return "slice", args[0] if len(args) == 1 else None
        return None, None
    if not isinstance(tp, type):
        return None, None
    if issubclass(tp, bool):
        return "bool", None
    if issubclass(tp, int):
        return "int", None
    if issubclass(tp, float):
        return "float", None
    if issubclass(tp, str):
        return "string", None
    if dataclasses.is_dataclass(tp):
        return "struct", None
    return None, None


def _invalid_tag(tag: str, reason: str) -> InvalidPactTagError:
    return InvalidPactTagError(
        f'match: encountered invalid pact tag "{tag}" . . . parsing failed with error: {reason}'
    )


_BOOL_TAG = re.compile(r"example=[ \t]*(true|false|TRUE|FALSE|True|False|t|f|T|F|1|0)")
_INT_TAG = re.compile(r"example=[ \t]*([+-]?\d+)")
_FLOAT_TAG = re.compile(r"example=[ \t]*([+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)")
_MIN_TAG = re.compile(r"min=[ \t]*([+-]?\d+)")
_REGEX_TAG = re.compile(r"regex=.*\Z")
_EXAMPLE_WORD = re.compile(r"example=[ \t]*(\S+)")


def _scan(pattern: re.Pattern, tag: str, expected: str) -> str:
    found = pattern.match(tag)
    if found is None:
        raise _invalid_tag(tag, f"expected format '{expected}'")
    return found.group(1)


def _pluck_string(params: Params, tag: str) -> None:
    if _REGEX_TAG.search(tag):
        components = tag.split(",regex=")
        if len(components) < 2:
            raise _invalid_tag(tag, "invalid format: expected 'example=<value>,regex=<pattern>'")
        if not components[1]:
            raise _invalid_tag(tag, "invalid format: regex must not be empty")
        params.example = _scan(_EXAMPLE_WORD, components[0], "example=<value>")
        params.regex = components[1]
    elif tag.startswith("example="):
        components = tag.split("example=")
        if len(components) != 2 or not components[1].strip():
            raise _invalid_tag(tag, "invalid format: example must not be empty")
        params.example = components[1]


def pluck_params(src_type: Any, pact_tag: str) -> Params:
    """Read the settings in a 'pact' tag for a field of type ``src_type``."""
    params = default_params()
    if not pact_tag:
        return params

    kind, _ = _classify(src_type)
    if kind == "bool":
        value = _scan(_BOOL_TAG, pact_tag, "example=<bool>")
        params.boolean = value in ("true", "TRUE", "True", "t", "T", "1")
        params.boolean_defined = True
    elif kind == "float":
        params.decimal = float(_scan(_FLOAT_TAG, pact_tag, "example=<number>"))
    elif kind == "int":
        params.integer = int(_scan(_INT_TAG, pact_tag, "example=<integer>"))
    elif kind == "slice":
        params.slice_min = int(_scan(_MIN_TAG, pact_tag, "min=<integer>"))
    elif kind == "string":
        _pluck_string(params, pact_tag)
    return params


def _match(tp: Any, params: Params) -> Matcher:
    kind, inner = _classify(tp)
    if kind == "pointer":
        return _match(inner, params)
    if kind == "slice" and inner is not None:
        return each_like(_match(inner, default_params()), params.slice_min)
    if kind == "struct":
        result = StructMatcher()
        for fld in dataclasses.fields(tp):
            json_tag = fld.metadata.get("json", "")
            name = json_tag.split(",")[0] if json_tag else fld.name
            field_type = _resolve_annotation(fld.type, tp)
            result[name] = _match(field_type, pluck_params(field_type, fld.metadata.get("pact", "")))
        return result
    if kind == "string":
        if params.regex:
            return term(params.example, params.regex)
        if params.example:
            return like(params.example)
        return like("string")
    if kind == "bool":
        return like(params.boolean) if params.boolean_defined else like(True)
    if kind == "int":
        return like(params.integer) if params.integer != 0 else like(1)
    if kind == "float":
        return like(params.decimal) if params.decimal != 0 else like(1.1)
    raise TypeError(f"match: unhandled type: {tp!r}")


def match_v2(src: Any) -> Matcher:
    """Build a matcher from a type, a type annotation or a value's type.

    Dataclass fields may carry ``metadata={"json": "name", "pact": "min=2"}``
    or ``"pact": "example=2000-01-01,regex=^\\d{4}-\\d{2}-\\d{2}$"``.
    """
    if isinstance(src, type) or typing.get_origin(src) is not None:
        tp = src
    else:
        tp = type(src)
    return _match(tp, default_params())