"""
Filter Declaration Module

Declares the filterable fields of a list screen and turns raw query-string
input into validated, immutable filter values.

Parsing never raises for bad user input: a value that cannot be understood
leaves its field unset and is logged as a warning.
"""

import re
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, Iterator, Mapping, Optional, Sequence, Tuple, Union

from .logging_config import get_logger, log_action
from .query import FieldKind, Predicate, as_number


logger = get_logger("backoffice.filters")

RANGE_SEPARATOR = re.compile(r'(?:^|\s+)to(?:\s+|$)', re.IGNORECASE)
ISO_DAY = re.compile(r'[0-9]{4}-[0-9]{2}-[0-9]{2}')
DISPLAY_DAY = re.compile(r'[0-9]{1,2}/[0-9]{1,2}/[0-9]{4}')


class MatchType(Enum):
    """How a filter value is matched against its target fields"""
    EXACT = "exact"
    SUBSTRING = "substring"
    RANGE = "range"
    IN = "in"
    PRESET = "preset"


@dataclass(frozen=True)
class RelatedTarget:
    """A field of another entity reached through a key (e.g. an account's owner name)"""
    table: str
    local_key: str
    remote_key: str
    field: str


Target = Union[str, RelatedTarget]


@dataclass(frozen=True)
class Range:
    """Inclusive bounds; either side may be open"""
    start: Any = None
    end: Any = None


@dataclass(frozen=True)
class FilterSpec:
    """
    One filterable field of a screen.

    `targets` lists the stored fields the value is matched against; with more
    than one target the filter is a search group and matches when any target
    does. Preset filters map each accepted value to a ready-made predicate.
    """
    name: str
    match: MatchType
    targets: Tuple[Target, ...] = ()
    kind: FieldKind = FieldKind.TEXT
    default: Any = None
    presets: Mapping[str, Predicate] = field(default_factory=dict)

    def __post_init__(self):
        if not self.targets and self.match != MatchType.PRESET:
            object.__setattr__(self, 'targets', (self.name,))
        if self.match == MatchType.PRESET and not self.presets:
            raise ValueError(f"Preset filter {self.name} declares no presets")


class FilterValues(Mapping):
    """Immutable, validated filter values for one request"""

    def __init__(self, values: Dict[str, Any], rejected: Sequence[str] = ()):
        self._values = MappingProxyType(dict(values))
        self.rejected = tuple(rejected)

    def __getitem__(self, key: str) -> Any:
        return self._values[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def __repr__(self) -> str:
        return f"FilterValues({dict(self._values)!r})"

    @property
    def active_count(self) -> int:
        """Number of filters actually applied"""
        return len(self._values)

    def to_dict(self) -> Dict[str, Any]:
        """Plain representation for echoing back to the caller"""
        result = {}
        for name, value in self._values.items():
            if isinstance(value, Range):
                result[name] = {'start': _plain(value.start), 'end': _plain(value.end)}
            elif isinstance(value, tuple):
                result[name] = list(value)
            else:
                result[name] = _plain(value)
        return result


def _plain(value: Any) -> Any:
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return str(value)
    return value


def _blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip() == ""
    if isinstance(value, (list, tuple)):
        return all(_blank(v) for v in value)
    return False


def parse_day(text: Any) -> date:
    """Parse YYYY-MM-DD (optionally with a time part) or DD/MM/YYYY"""
    if isinstance(text, datetime):
        return text.date()
    if isinstance(text, date):
        return text
    text = str(text).strip()
    if DISPLAY_DAY.fullmatch(text):
        return datetime.strptime(text, '%d/%m/%Y').date()
    if ISO_DAY.fullmatch(text):
        return date.fromisoformat(text)
    if ISO_DAY.fullmatch(text[:10]) and text[10:11] in ('T', ' '):
        return datetime.fromisoformat(text).date()
    raise ValueError(f"not a date: {text!r}")


def _parse_bound(value: Any, kind: FieldKind) -> Any:
    if _blank(value):
        return None
    if kind == FieldKind.DATE:
        return parse_day(value)
    number = as_number(str(value).strip())
    if number is None:
        raise ValueError(f"not a number: {value!r}")
    return number


def _split_range(raw: Any) -> Tuple[Any, Any]:
    if isinstance(raw, (list, tuple)):
        if len(raw) == 1:
            return raw[0], raw[0]
        if len(raw) != 2:
            raise ValueError("a range needs exactly two bounds")
        return raw[0], raw[1]
    parts = [part.strip() for part in RANGE_SEPARATOR.split(str(raw).strip())]
    if len(parts) == 1:
        # A single value is a one-value range (e.g. one calendar day)
        return parts[0], parts[0]
    if len(parts) != 2 or not all(parts):
        raise ValueError("a range needs exactly two bounds")
    return parts[0], parts[1]


class FilterSet:
    """The filter declarations of one screen"""

    def __init__(self, *specs: FilterSpec):
        names = [spec.name for spec in specs]
        duplicates = sorted({name for name in names if names.count(name) > 1})
        if duplicates:
            raise ValueError(f"Duplicate filter names: {', '.join(duplicates)}")
        self._specs: Dict[str, FilterSpec] = {spec.name: spec for spec in specs}

    def __iter__(self) -> Iterator[FilterSpec]:
        return iter(self._specs.values())

    def __contains__(self, name: str) -> bool:
        return name in self._specs

    def get(self, name: str) -> Optional[FilterSpec]:
        return self._specs.get(name)

    @property
    def names(self) -> Tuple[str, ...]:
        return tuple(self._specs)

    def parse(self, raw: Mapping[str, Any]) -> FilterValues:
        """
        Validate raw request input against the declared filters.

        Empty strings, whitespace, empty lists and missing keys all mean
        "no filter". Range filters also accept `<name>_from` / `<name>_to`
        keys. Undeclared keys are ignored.
        """
        values: Dict[str, Any] = {}
        rejected = []
        for spec in self._specs.values():
            candidate = self._raw_value(spec, raw)
            if _blank(candidate):
                if spec.default is not None:
                    values[spec.name] = spec.default
                continue
            try:
                parsed = self._parse_value(spec, candidate)
            except (ValueError, TypeError, ArithmeticError) as e:
                rejected.append(spec.name)
                log_action(
                    logger, "warning", f"Ignoring unparseable filter value for {spec.name}",
                    action="filter_rejected", resource=spec.name,
                    extra={'raw_value': str(candidate), 'reason': str(e)}
                )
                continue
            if parsed is not None:
                values[spec.name] = parsed
        return FilterValues(values, rejected)

    @staticmethod
    def _raw_value(spec: FilterSpec, raw: Mapping[str, Any]) -> Any:
        value = raw.get(spec.name)
        if spec.match == MatchType.RANGE and _blank(value):
            low, high = raw.get(f"{spec.name}_from"), raw.get(f"{spec.name}_to")
            if not (_blank(low) and _blank(high)):
                return [low, high]
        return value

    @staticmethod
    def _parse_value(spec: FilterSpec, value: Any) -> Any:
        if spec.match == MatchType.RANGE:
            low, high = _split_range(value)
            start, end = _parse_bound(low, spec.kind), _parse_bound(high, spec.kind)
            if start is None and end is None:
                return None
            if start is not None and end is not None and start > end:
                start, end = end, start
            return Range(start, end)

        if spec.match == MatchType.IN:
            items = value if isinstance(value, (list, tuple)) else str(value).split(',')
            codes = tuple(str(item).strip() for item in items if not _blank(item))
            return codes or None

        if isinstance(value, (list, tuple)):
            raise ValueError("expected a single value")
        text = str(value).strip()

        if spec.match == MatchType.PRESET:
            if text not in spec.presets:
                raise ValueError(f"unknown preset {text!r}")
            return text

        if spec.kind == FieldKind.NUMBER:
            return _parse_bound(text, FieldKind.NUMBER)
        elif spec.kind == FieldKind.DATE:
            return parse_day(text)
        return text
