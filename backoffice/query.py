"""
Query Module

Composable predicates, ordering and the immutable query handle passed
between the query builder, the paginator and the aggregate calculator.

Predicates evaluate directly against stored record dictionaries (used by
the in-memory backend) and compile to parameterized SQL for the relational
backends. Every value, including JSON field paths, is a bound parameter.
"""

import re
import string
from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional, Set, Tuple


IDENTIFIER_PATTERN = re.compile(r'^[A-Za-z_][A-Za-z0-9_]*$')

# Resolves a table name to its stored records (in-memory evaluation only)
Resolver = Callable[[str], List[Dict[str, Any]]]
Compiled = Tuple[str, List[Any]]

# SQLite LIKE folds ASCII letters only
_ASCII_FOLD = str.maketrans(string.ascii_uppercase, string.ascii_lowercase)


def validate_identifier(name: str) -> str:
    """Reject table/field names that are not plain identifiers"""
    if not IDENTIFIER_PATTERN.match(name or ""):
        raise ValueError(f"Invalid identifier: {name!r}")
    return name


class FieldKind(Enum):
    """How a stored field is compared and ordered"""
    TEXT = "text"
    NUMBER = "number"
    DATE = "date"


class SortDirection(Enum):
    """Sort direction"""
    ASC = "asc"
    DESC = "desc"

    def toggled(self) -> 'SortDirection':
        return SortDirection.DESC if self == SortDirection.ASC else SortDirection.ASC


# Value coercion for in-memory evaluation, mirroring what the SQL dialects do

def as_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, bool):
        return "1" if value else "0"
    return str(value)


def as_number(value: Any) -> Optional[Decimal]:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None
    return number if number.is_finite() else None


def fold_case(text: str) -> str:
    return text.translate(_ASCII_FOLD)


def as_day(value: Any) -> Optional[str]:
    if value is None or value == "":
        return None
    if isinstance(value, (date, datetime)):
        return value.isoformat()[:10]
    return str(value)[:10]


def coerce(value: Any, kind: FieldKind) -> Any:
    if kind == FieldKind.NUMBER:
        return as_number(value)
    if kind == FieldKind.DATE:
        return as_day(value)
    return as_text(value)


class SQLDialect(ABC):
    """SQL fragments for records stored as a JSON document column"""

    placeholder = "?"
    false_literal = "0"
    unbounded_limit = "-1"

    @abstractmethod
    def text(self, alias: str) -> str:
        pass

    @abstractmethod
    def number(self, alias: str) -> str:
        pass

    @abstractmethod
    def day(self, alias: str) -> str:
        pass

    @abstractmethod
    def path(self, field_name: str) -> str:
        pass

    def number_param(self, value: Decimal) -> Any:
        return value

    def expression(self, alias: str, field_name: str, kind: FieldKind) -> Compiled:
        """Typed expression for a field plus its bound path parameter"""
        if kind == FieldKind.NUMBER:
            sql = self.number(alias)
        elif kind == FieldKind.DATE:
            sql = self.day(alias)
        else:
            sql = self.text(alias)
        return sql, [self.path(field_name)]

    def param(self, value: Any, kind: FieldKind) -> Any:
        value = coerce(value, kind)
        if kind == FieldKind.NUMBER and value is not None:
            return self.number_param(value)
        return value

    def nulls(self, direction: SortDirection) -> str:
        return ""


class SQLiteDialect(SQLDialect):
    """SQLite JSON1 dialect"""

    placeholder = "?"
    false_literal = "0"
    unbounded_limit = "-1"

    def text(self, alias: str) -> str:
        return f"CAST(json_extract({alias}.data, ?) AS TEXT)"

    def number(self, alias: str) -> str:
        # NULL unless the value is a JSON number or numeric text
        return (
            "(SELECT CASE"
            " WHEN type IN ('integer', 'real') THEN value"
            " WHEN type = 'text' AND CAST(value AS REAL) = value THEN CAST(value AS REAL)"
            f" END FROM json_each({alias}.data, ?))"
        )

    def day(self, alias: str) -> str:
        return f"substr(json_extract({alias}.data, ?), 1, 10)"

    def path(self, field_name: str) -> str:
        return f"$.{field_name}"

    def number_param(self, value: Decimal) -> Any:
        # sqlite3 has no Decimal adapter
        return float(value)


class PostgreSQLDialect(SQLDialect):
    """PostgreSQL JSONB dialect"""

    placeholder = "%s"
    false_literal = "FALSE"
    unbounded_limit = "ALL"

    def text(self, alias: str) -> str:
        return f"({alias}.data ->> %s)"

    def number(self, alias: str) -> str:
        return (
            "(SELECT CASE WHEN v ~ '^\\s*[-+]?([0-9]+\\.?[0-9]*|\\.[0-9]+)([eE][-+]?[0-9]+)?\\s*$'"
            f" THEN v::numeric END FROM (VALUES ({alias}.data ->> %s)) AS n(v))"
        )

    def day(self, alias: str) -> str:
        return f"LEFT({alias}.data ->> %s, 10)"

    def path(self, field_name: str) -> str:
        return field_name

    def nulls(self, direction: SortDirection) -> str:
        # Match SQLite: NULLs sort first ascending, last descending
        return " NULLS FIRST" if direction == SortDirection.ASC else " NULLS LAST"


class Predicate(ABC):
    """A composable boolean condition over one stored record"""

    @abstractmethod
    def matches(self, record: Dict[str, Any], resolver: Resolver) -> bool:
        pass

    @abstractmethod
    def compile(self, dialect: SQLDialect, alias: str) -> Compiled:
        pass

    def tables(self) -> Set[str]:
        """Other tables this predicate reads"""
        return set()


@dataclass(frozen=True)
class Equals(Predicate):
    """field = value (compared as text)"""
    field: str
    value: Any

    def matches(self, record, resolver):
        stored = as_text(record.get(self.field))
        return stored is not None and stored == as_text(self.value)

    def compile(self, dialect, alias):
        expr, params = dialect.expression(alias, self.field, FieldKind.TEXT)
        return f"{expr} = {dialect.placeholder}", params + [as_text(self.value)]


@dataclass(frozen=True)
class InSet(Predicate):
    """field IN (values)"""
    field: str
    values: Tuple[Any, ...]

    def matches(self, record, resolver):
        stored = as_text(record.get(self.field))
        return stored is not None and stored in {as_text(v) for v in self.values}

    def compile(self, dialect, alias):
        if not self.values:
            return "1 = 0", []
        expr, params = dialect.expression(alias, self.field, FieldKind.TEXT)
        marks = ", ".join(dialect.placeholder for _ in self.values)
        return f"{expr} IN ({marks})", params + [as_text(v) for v in self.values]


@dataclass(frozen=True)
class Contains(Predicate):
    """field LIKE %term% (store-default case sensitivity)"""
    field: str
    term: str

    def matches(self, record, resolver):
        stored = as_text(record.get(self.field))
        return stored is not None and fold_case(self.term) in fold_case(stored)

    def compile(self, dialect, alias):
        expr, params = dialect.expression(alias, self.field, FieldKind.TEXT)
        escaped = (self.term.replace("\\", "\\\\")
                   .replace("%", "\\%").replace("_", "\\_"))
        return (f"{expr} LIKE {dialect.placeholder} ESCAPE '\\'",
                params + [f"%{escaped}%"])


_OPERATORS: Dict[str, Callable[[Any, Any], bool]] = {
    '=': lambda a, b: a == b,
    '!=': lambda a, b: a != b,
    '>': lambda a, b: a > b,
    '>=': lambda a, b: a >= b,
    '<': lambda a, b: a < b,
    '<=': lambda a, b: a <= b,
}


@dataclass(frozen=True)
class Compare(Predicate):
    """field <op> value for a typed field"""
    field: str
    operator: str
    value: Any
    kind: FieldKind = FieldKind.NUMBER

    def __post_init__(self):
        if self.operator not in _OPERATORS:
            raise ValueError(f"Unsupported operator: {self.operator}")

    def matches(self, record, resolver):
        stored = coerce(record.get(self.field), self.kind)
        bound = coerce(self.value, self.kind)
        if stored is None or bound is None:
            return False
        return _OPERATORS[self.operator](stored, bound)

    def compile(self, dialect, alias):
        expr, params = dialect.expression(alias, self.field, self.kind)
        return (f"{expr} {self.operator} {dialect.placeholder}",
                params + [dialect.param(self.value, self.kind)])


@dataclass(frozen=True)
class Between(Predicate):
    """start <= field <= end; a missing bound leaves that side open"""
    field: str
    start: Any = None
    end: Any = None
    kind: FieldKind = FieldKind.DATE

    def _parts(self) -> List[Predicate]:
        parts: List[Predicate] = []
        if self.start is not None:
            parts.append(Compare(self.field, '>=', self.start, self.kind))
        if self.end is not None:
            parts.append(Compare(self.field, '<=', self.end, self.kind))
        return parts

    def matches(self, record, resolver):
        return AllOf(tuple(self._parts())).matches(record, resolver)

    def compile(self, dialect, alias):
        return AllOf(tuple(self._parts())).compile(dialect, alias)


@dataclass(frozen=True)
class AllOf(Predicate):
    """Logical AND; empty is always true"""
    predicates: Tuple[Predicate, ...] = ()

    def matches(self, record, resolver):
        return all(p.matches(record, resolver) for p in self.predicates)

    def compile(self, dialect, alias):
        if not self.predicates:
            return "1 = 1", []
        return _join(self.predicates, " AND ", dialect, alias)

    def tables(self):
        return set().union(*(p.tables() for p in self.predicates))


@dataclass(frozen=True)
class AnyOf(Predicate):
    """Logical OR; empty is always false"""
    predicates: Tuple[Predicate, ...] = ()

    def matches(self, record, resolver):
        return any(p.matches(record, resolver) for p in self.predicates)

    def compile(self, dialect, alias):
        if not self.predicates:
            return "1 = 0", []
        return _join(self.predicates, " OR ", dialect, alias)

    def tables(self):
        return set().union(*(p.tables() for p in self.predicates))


@dataclass(frozen=True)
class Not(Predicate):
    """Negation; an unknown (NULL) inner result counts as false"""
    predicate: Predicate

    def matches(self, record, resolver):
        return not self.predicate.matches(record, resolver)

    def compile(self, dialect, alias):
        sql, params = self.predicate.compile(dialect, alias)
        return f"NOT COALESCE(({sql}), {dialect.false_literal})", params

    def tables(self):
        return self.predicate.tables()


@dataclass(frozen=True)
class Related(Predicate):
    """
    Correlated condition on another table: some row of `table` whose
    `remote_key` equals this record's `local_key` satisfies `predicate`.
    """
    table: str
    local_key: str
    remote_key: str
    predicate: Predicate

    def __post_init__(self):
        validate_identifier(self.table)

    def matches(self, record, resolver):
        key = as_text(record.get(self.local_key))
        if key is None:
            return False
        for other in resolver(self.table):
            if as_text(other.get(self.remote_key)) == key and self.predicate.matches(other, resolver):
                return True
        return False

    def compile(self, dialect, alias):
        inner = f"{alias}_r"
        remote_expr, remote_params = dialect.expression(inner, self.remote_key, FieldKind.TEXT)
        local_expr, local_params = dialect.expression(alias, self.local_key, FieldKind.TEXT)
        cond_sql, cond_params = self.predicate.compile(dialect, inner)
        sql = (f"EXISTS (SELECT 1 FROM {self.table} {inner} "
               f"WHERE {remote_expr} = {local_expr} AND ({cond_sql}))")
        return sql, remote_params + local_params + cond_params

    def tables(self):
        return {self.table} | self.predicate.tables()


def _join(predicates: Iterable[Predicate], glue: str, dialect: SQLDialect, alias: str) -> Compiled:
    fragments: List[str] = []
    params: List[Any] = []
    for predicate in predicates:
        sql, values = predicate.compile(dialect, alias)
        fragments.append(f"({sql})")
        params.extend(values)
    return glue.join(fragments), params


@dataclass(frozen=True)
class Ordering:
    """Exactly one sort criterion; ties are always broken by record id"""
    field: str
    direction: SortDirection = SortDirection.DESC
    kind: FieldKind = FieldKind.TEXT

    def toggled(self) -> 'Ordering':
        return replace(self, direction=self.direction.toggled())

    def sort(self, records: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        ordered = sorted(records, key=lambda r: as_text(r.get('id')) or "")

        def key(record):
            value = record.get(self.field)
            if self.kind == FieldKind.NUMBER:
                value = as_number(value)
            else:
                value = as_text(value)
            return (value is not None, value if value is not None else 0)

        return sorted(ordered, key=key, reverse=self.direction == SortDirection.DESC)

    def compile(self, dialect: SQLDialect, alias: str) -> Compiled:
        if self.kind == FieldKind.NUMBER:
            expr = dialect.number(alias)
        else:
            expr = dialect.text(alias)
        direction = self.direction.value.upper()
        sql = f"{expr} {direction}{dialect.nulls(self.direction)}, {alias}.id ASC"
        return sql, [dialect.path(self.field)]


@dataclass(frozen=True)
class Query:
    """
    Immutable handle for one filtered, ordered read against a table.

    The same handle feeds the paginator, the aggregate calculator and the
    exporter, so every consumer sees exactly the same predicate set.
    """
    table: str
    predicates: Tuple[Predicate, ...] = ()
    ordering: Optional[Ordering] = None

    def __post_init__(self):
        validate_identifier(self.table)

    def where(self, *predicates: Predicate) -> 'Query':
        return replace(self, predicates=self.predicates + tuple(predicates))

    def order_by(self, ordering: Optional[Ordering]) -> 'Query':
        return replace(self, ordering=ordering)

    def matches(self, record: Dict[str, Any], resolver: Resolver) -> bool:
        return all(p.matches(record, resolver) for p in self.predicates)

    def compile_where(self, dialect: SQLDialect, alias: str) -> Compiled:
        return AllOf(self.predicates).compile(dialect, alias)

    def tables(self) -> Set[str]:
        """All tables the query touches"""
        return {self.table} | AllOf(self.predicates).tables()
