"""
Storage Backend Module

Provides abstract storage interface and implementations for in-memory (testing),
SQLite (persistence) and PostgreSQL. Records are JSON documents keyed by id;
monetary values are stored as Decimal strings.

Besides plain key access every backend answers filtered reads described by a
Query: count, page fetch, scalar aggregates and grouped aggregates. The
relational backends push those down as parameterized SQL; the in-memory
backend evaluates the same predicates in Python.
"""

from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Any, Tuple, Union, ClassVar
from decimal import Decimal
from datetime import date, datetime, timezone
from enum import Enum
import sqlite3
import json
import threading
from dataclasses import dataclass, asdict, fields
from pathlib import Path
from contextlib import contextmanager

from .query import (
    FieldKind, Ordering, Query, SortDirection, SQLDialect, SQLiteDialect,
    PostgreSQLDialect, as_number, coerce, validate_identifier
)


# Scalar aggregate functions understood by every backend
AGGREGATE_FUNCTIONS = ('sum', 'avg', 'min', 'max')

# (group key, row count, numeric total or None)
GroupRow = Tuple[Optional[str], int, Optional[Decimal]]

DEFAULT_ORDERING = Ordering('created_at', SortDirection.ASC)

_TIMESTAMP_FORMATS = (
    '%Y-%m-%d %H:%M:%S',
    '%Y-%m-%d %H:%M',
    '%d/%m/%Y %H:%M:%S',
    '%d/%m/%Y %H:%M',
    '%d/%m/%Y',
    '%Y-%m-%d',
)


class StorageError(Exception):
    """Raised when a storage backend fails to execute a read or write"""
    pass


def parse_timestamp(value: Any) -> Optional[datetime]:
    """
    Normalize a stored timestamp to an aware UTC datetime.

    Accepts datetime/date objects, ISO-8601 strings and the free-text
    formats found in legacy exports ("2024-01-05 10:00:00", "05/01/2024").
    Returns None for empty values; raises ValueError for anything else.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    else:
        text = str(value).strip()
        try:
            parsed = datetime.fromisoformat(text.replace('Z', '+00:00'))
        except ValueError:
            for fmt in _TIMESTAMP_FORMATS:
                try:
                    parsed = datetime.strptime(text, fmt)
                    break
                except ValueError:
                    continue
            else:
                raise ValueError(f"Unrecognized timestamp: {value!r}")
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def parse_date(value: Any) -> Optional[date]:
    """Normalize a stored calendar date"""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return parse_timestamp(value).date()


def _to_storable(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, Enum):
        return value.value
    return value


@dataclass
class StorageRecord:
    """Base class for all stored records"""
    id: str
    created_at: datetime
    updated_at: datetime

    # Fields converted when a record crosses the storage boundary
    timestamp_fields: ClassVar[Tuple[str, ...]] = ()
    date_fields: ClassVar[Tuple[str, ...]] = ()
    decimal_fields: ClassVar[Tuple[str, ...]] = ()

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for storage"""
        result = asdict(self)
        for key, value in result.items():
            result[key] = _to_storable(value)
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'StorageRecord':
        """Create instance from dictionary, ignoring unknown keys"""
        known = {f.name for f in fields(cls)}
        values = {k: v for k, v in data.items() if k in known}
        for name in ('created_at', 'updated_at') + cls.timestamp_fields:
            if name in values:
                values[name] = parse_timestamp(values[name])
        for name in cls.date_fields:
            if name in values:
                values[name] = parse_date(values[name])
        for name in cls.decimal_fields:
            if name in values and values[name] is not None:
                values[name] = as_number(values[name]) or Decimal('0')
        return cls(**values)


class StorageInterface(ABC):
    """Abstract interface for storage backends"""

    @abstractmethod
    def save(self, table: str, record_id: str, data: Dict[str, Any]) -> None:
        """Save a record to storage"""
        pass

    @abstractmethod
    def load(self, table: str, record_id: str) -> Optional[Dict[str, Any]]:
        """Load a record from storage"""
        pass

    @abstractmethod
    def load_all(self, table: str) -> List[Dict[str, Any]]:
        """Load all records from a table"""
        pass

    @abstractmethod
    def delete(self, table: str, record_id: str) -> bool:
        """Delete a record from storage"""
        pass

    @abstractmethod
    def exists(self, table: str, record_id: str) -> bool:
        """Check if a record exists"""
        pass

    @abstractmethod
    def find(self, table: str, filters: Dict[str, Any]) -> List[Dict[str, Any]]:
        """Find records whose fields equal the given values"""
        pass

    @abstractmethod
    def count(self, table: str) -> int:
        """Count records in table"""
        pass

    @abstractmethod
    def count_matching(self, query: Query) -> int:
        """Count records satisfying every predicate of the query"""
        pass

    @abstractmethod
    def fetch(self, query: Query, limit: Optional[int] = None, offset: int = 0) -> List[Dict[str, Any]]:
        """Fetch one ordered window of matching records"""
        pass

    @abstractmethod
    def aggregate(self, query: Query, function: str, field_name: str) -> Optional[Decimal]:
        """SUM/AVG/MIN/MAX of a numeric field over matching records (None when empty)"""
        pass

    @abstractmethod
    def group(self, query: Query, key_field: str, key_kind: FieldKind = FieldKind.TEXT,
              value_field: Optional[str] = None) -> List[GroupRow]:
        """Count (and optionally total) matching records per key, ordered by key"""
        pass

    @abstractmethod
    def clear_table(self, table: str) -> None:
        """Clear all records from a table"""
        pass

    @abstractmethod
    def close(self) -> None:
        """Close storage connection"""
        pass

    def begin_transaction(self) -> None:
        """Start a database transaction (default no-op)"""
        pass

    def commit(self) -> None:
        """Commit current transaction (default no-op)"""
        pass

    def rollback(self) -> None:
        """Rollback current transaction (default no-op)"""
        pass

    @contextmanager
    def atomic(self):
        """Context manager for atomic operations"""
        self.begin_transaction()
        try:
            yield
            self.commit()
        except Exception:
            self.rollback()
            raise


def _check_function(function: str) -> str:
    if function not in AGGREGATE_FUNCTIONS:
        raise ValueError(f"Unsupported aggregate function: {function}")
    return function


class InMemoryStorage(StorageInterface):
    """In-memory storage implementation for testing"""

    def __init__(self):
        self._data: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self._lock = threading.RLock()

    def _ensure_table(self, table: str) -> None:
        """Ensure table exists"""
        if table not in self._data:
            self._data[table] = {}

    def _rows(self, table: str) -> List[Dict[str, Any]]:
        return list(self._data.get(table, {}).values())

    def _matching(self, query: Query) -> List[Dict[str, Any]]:
        return [r for r in self._rows(query.table) if query.matches(r, self._rows)]

    def save(self, table: str, record_id: str, data: Dict[str, Any]) -> None:
        """Save a record to memory"""
        with self._lock:
            self._ensure_table(table)
            # Deep copy to prevent external mutation
            self._data[table][record_id] = json.loads(json.dumps(data, default=str))

    def load(self, table: str, record_id: str) -> Optional[Dict[str, Any]]:
        """Load a record from memory"""
        with self._lock:
            self._ensure_table(table)
            record = self._data[table].get(record_id)
            if record:
                return json.loads(json.dumps(record))
            return None

    def load_all(self, table: str) -> List[Dict[str, Any]]:
        """Load all records from a table"""
        with self._lock:
            self._ensure_table(table)
            return [json.loads(json.dumps(record)) for record in self._data[table].values()]

    def delete(self, table: str, record_id: str) -> bool:
        """Delete a record from memory"""
        with self._lock:
            self._ensure_table(table)
            if record_id in self._data[table]:
                del self._data[table][record_id]
                return True
            return False

    def exists(self, table: str, record_id: str) -> bool:
        """Check if a record exists"""
        with self._lock:
            self._ensure_table(table)
            return record_id in self._data[table]

    def find(self, table: str, filters: Dict[str, Any]) -> List[Dict[str, Any]]:
        """Find records whose fields equal the given values"""
        with self._lock:
            self._ensure_table(table)
            results = []
            for record in self._data[table].values():
                if all(key in record and record[key] == value for key, value in filters.items()):
                    results.append(json.loads(json.dumps(record)))
            return results

    def count(self, table: str) -> int:
        """Count records in table"""
        with self._lock:
            self._ensure_table(table)
            return len(self._data[table])

    def count_matching(self, query: Query) -> int:
        with self._lock:
            return len(self._matching(query))

    def fetch(self, query: Query, limit: Optional[int] = None, offset: int = 0) -> List[Dict[str, Any]]:
        with self._lock:
            ordered = (query.ordering or DEFAULT_ORDERING).sort(self._matching(query))
            end = None if limit is None else offset + limit
            return [json.loads(json.dumps(record)) for record in ordered[offset:end]]

    def aggregate(self, query: Query, function: str, field_name: str) -> Optional[Decimal]:
        _check_function(function)
        with self._lock:
            values = [as_number(r.get(field_name)) for r in self._matching(query)]
        values = [v for v in values if v is not None]
        if not values:
            return None
        if function == 'sum':
            return sum(values, Decimal('0'))
        if function == 'avg':
            return sum(values, Decimal('0')) / len(values)
        return min(values) if function == 'min' else max(values)

    def group(self, query: Query, key_field: str, key_kind: FieldKind = FieldKind.TEXT,
              value_field: Optional[str] = None) -> List[GroupRow]:
        if key_kind == FieldKind.NUMBER:
            raise ValueError("Grouping keys must be text or date fields")
        groups: Dict[Optional[str], List[Any]] = {}
        with self._lock:
            for record in self._matching(query):
                key = coerce(record.get(key_field), key_kind)
                bucket = groups.setdefault(key, [0, None])
                bucket[0] += 1
                if value_field is not None:
                    amount = as_number(record.get(value_field))
                    if amount is not None:
                        bucket[1] = (bucket[1] or Decimal('0')) + amount
        ordered = sorted(groups.items(), key=lambda item: (item[0] is not None, item[0] or ""))
        return [(key, count, total) for key, (count, total) in ordered]

    def clear_table(self, table: str) -> None:
        """Clear all records from a table"""
        with self._lock:
            self._data[table] = {}

    def close(self) -> None:
        """Close storage (no-op for in-memory)"""
        pass


class _SQLQueries:
    """SQL text shared by the relational backends"""

    dialect: SQLDialect

    def _select_count(self, query: Query) -> Tuple[str, List[Any]]:
        where, params = query.compile_where(self.dialect, 't')
        return f"SELECT COUNT(*) AS count FROM {query.table} t WHERE {where}", params

    def _select_page(self, query: Query, limit: Optional[int], offset: int) -> Tuple[str, List[Any]]:
        where, params = query.compile_where(self.dialect, 't')
        order, order_params = (query.ordering or DEFAULT_ORDERING).compile(self.dialect, 't')
        sql = f"SELECT t.data AS data FROM {query.table} t WHERE {where} ORDER BY {order}"
        params = params + order_params
        mark = self.dialect.placeholder
        if limit is not None:
            sql += f" LIMIT {mark} OFFSET {mark}"
            params += [max(0, limit), max(0, offset)]
        elif offset:
            sql += f" LIMIT {self.dialect.unbounded_limit} OFFSET {mark}"
            params.append(offset)
        return sql, params

    def _select_aggregate(self, query: Query, function: str, field_name: str) -> Tuple[str, List[Any]]:
        validate_identifier(field_name)
        expr, expr_params = self.dialect.expression('t', field_name, FieldKind.NUMBER)
        where, params = query.compile_where(self.dialect, 't')
        sql = f"SELECT {_check_function(function).upper()}({expr}) AS value FROM {query.table} t WHERE {where}"
        return sql, expr_params + params

    def _select_group(self, query: Query, key_field: str, key_kind: FieldKind,
                      value_field: Optional[str]) -> Tuple[str, List[Any]]:
        if key_kind == FieldKind.NUMBER:
            raise ValueError("Grouping keys must be text or date fields")
        validate_identifier(key_field)
        key_expr, params = self.dialect.expression('t', key_field, key_kind)
        if value_field is not None:
            validate_identifier(value_field)
            value_expr, value_params = self.dialect.expression('t', value_field, FieldKind.NUMBER)
            total = f"SUM({value_expr})"
            params = params + value_params
        else:
            total = "NULL"
        where, where_params = query.compile_where(self.dialect, 't')
        nulls = self.dialect.nulls(SortDirection.ASC)
        sql = (f"SELECT {key_expr} AS group_key, COUNT(*) AS count, {total} AS total "
               f"FROM {query.table} t WHERE {where} "
               f"GROUP BY group_key ORDER BY group_key ASC{nulls}")
        return sql, params + where_params


def _decimal(value: Any) -> Optional[Decimal]:
    if value is None:
        return None
    return value if isinstance(value, Decimal) else Decimal(str(value))


class SQLiteStorage(_SQLQueries, StorageInterface):
    """SQLite storage implementation for persistence"""

    dialect = SQLiteDialect()

    def __init__(self, db_path: Union[str, Path] = ":memory:"):
        self.db_path = str(db_path)
        # Set isolation_level to 'DEFERRED' to enable manual transaction control
        self._connection = sqlite3.connect(self.db_path, check_same_thread=False, isolation_level='DEFERRED')
        self._connection.row_factory = sqlite3.Row
        self._lock = threading.RLock()
        self._in_transaction = False

        # Enable WAL mode for better concurrent access
        if self.db_path != ":memory:":
            with self._lock:
                self._connection.execute("PRAGMA journal_mode = WAL")
                self._connection.execute("PRAGMA synchronous = NORMAL")
                self._connection.commit()

    def _ensure_table(self, table: str) -> None:
        """Ensure table exists with proper schema"""
        validate_identifier(table)
        with self._lock:
            self._connection.execute(f"""
                CREATE TABLE IF NOT EXISTS {table} (
                    id TEXT PRIMARY KEY,
                    data TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
            """)
            self._connection.execute(f"""
                CREATE INDEX IF NOT EXISTS idx_{table}_created_at
                ON {table}(created_at)
            """)
            if not self._in_transaction:
                self._connection.commit()

    @contextmanager
    def _reading(self, query: Query):
        """Lock, make sure every referenced table exists and translate errors"""
        with self._lock:
            for table in query.tables():
                self._ensure_table(table)
            try:
                yield
            except sqlite3.Error as e:
                raise StorageError(f"SQLite query on {query.table} failed: {e}") from e

    def save(self, table: str, record_id: str, data: Dict[str, Any]) -> None:
        """Save a record to SQLite"""
        with self._lock:
            self._ensure_table(table)

            now = datetime.now(timezone.utc).isoformat()
            data_json = json.dumps(data, default=str)

            self._connection.execute(f"""
                INSERT OR REPLACE INTO {table} (id, data, created_at, updated_at)
                VALUES (?, ?,
                    COALESCE((SELECT created_at FROM {table} WHERE id = ?), ?),
                    ?)
            """, (record_id, data_json, record_id, now, now))

            if not self._in_transaction:
                self._connection.commit()

    def load(self, table: str, record_id: str) -> Optional[Dict[str, Any]]:
        """Load a record from SQLite"""
        with self._lock:
            self._ensure_table(table)
            cursor = self._connection.execute(f"""
                SELECT data FROM {table} WHERE id = ?
            """, (record_id,))
            row = cursor.fetchone()
            if row:
                return json.loads(row['data'])
            return None

    def load_all(self, table: str) -> List[Dict[str, Any]]:
        """Load all records from a table"""
        with self._lock:
            self._ensure_table(table)
            cursor = self._connection.execute(f"""
                SELECT data FROM {table} ORDER BY created_at
            """)
            return [json.loads(row['data']) for row in cursor.fetchall()]

    def delete(self, table: str, record_id: str) -> bool:
        """Delete a record from SQLite"""
        with self._lock:
            self._ensure_table(table)
            cursor = self._connection.execute(f"""
                DELETE FROM {table} WHERE id = ?
            """, (record_id,))

            if not self._in_transaction:
                self._connection.commit()
            return cursor.rowcount > 0

    def exists(self, table: str, record_id: str) -> bool:
        """Check if a record exists"""
        with self._lock:
            self._ensure_table(table)
            cursor = self._connection.execute(f"""
                SELECT 1 FROM {table} WHERE id = ? LIMIT 1
            """, (record_id,))
            return cursor.fetchone() is not None

    def find(self, table: str, filters: Dict[str, Any]) -> List[Dict[str, Any]]:
        """Find records whose fields equal the given values"""
        with self._lock:
            self._ensure_table(table)
            cursor = self._connection.execute(f"""
                SELECT data FROM {table} ORDER BY created_at
            """)
            results = []
            for row in cursor.fetchall():
                record = json.loads(row['data'])
                if all(key in record and record[key] == value for key, value in filters.items()):
                    results.append(record)
            return results

    def count(self, table: str) -> int:
        """Count records in table"""
        with self._lock:
            self._ensure_table(table)
            cursor = self._connection.execute(f"""
                SELECT COUNT(*) as count FROM {table}
            """)
            return cursor.fetchone()['count']

    def count_matching(self, query: Query) -> int:
        sql, params = self._select_count(query)
        with self._reading(query):
            return self._connection.execute(sql, params).fetchone()['count']

    def fetch(self, query: Query, limit: Optional[int] = None, offset: int = 0) -> List[Dict[str, Any]]:
        sql, params = self._select_page(query, limit, offset)
        with self._reading(query):
            rows = self._connection.execute(sql, params).fetchall()
            return [json.loads(row['data']) for row in rows]

    def aggregate(self, query: Query, function: str, field_name: str) -> Optional[Decimal]:
        sql, params = self._select_aggregate(query, function, field_name)
        with self._reading(query):
            return _decimal(self._connection.execute(sql, params).fetchone()['value'])

    def group(self, query: Query, key_field: str, key_kind: FieldKind = FieldKind.TEXT,
              value_field: Optional[str] = None) -> List[GroupRow]:
        sql, params = self._select_group(query, key_field, key_kind, value_field)
        with self._reading(query):
            rows = self._connection.execute(sql, params).fetchall()
            return [(row['group_key'], row['count'], _decimal(row['total'])) for row in rows]

    def clear_table(self, table: str) -> None:
        """Clear all records from a table"""
        with self._lock:
            self._ensure_table(table)
            self._connection.execute(f"DELETE FROM {table}")

            if not self._in_transaction:
                self._connection.commit()

    def begin_transaction(self) -> None:
        """Start a database transaction"""
        with self._lock:
            if not self._in_transaction:
                # SQLite with isolation_level='DEFERRED' starts transactions implicitly
                self._in_transaction = True

    def commit(self) -> None:
        """Commit current transaction"""
        with self._lock:
            if self._in_transaction:
                self._connection.commit()
                self._in_transaction = False

    def rollback(self) -> None:
        """Rollback current transaction"""
        with self._lock:
            if self._in_transaction:
                self._connection.rollback()
                self._in_transaction = False

    def close(self) -> None:
        """Close SQLite connection"""
        with self._lock:
            if self._connection:
                self._connection.close()
                self._connection = None


class PostgreSQLStorage(_SQLQueries, StorageInterface):
    """PostgreSQL storage backend with JSONB documents"""

    dialect = PostgreSQLDialect()

    def __init__(self, connection_string: str):
        try:
            import psycopg2
            import psycopg2.extras
            self.psycopg2 = psycopg2
            self.extras = psycopg2.extras
        except ImportError:
            raise ImportError("psycopg2 is required for PostgreSQL storage. Install with: pip install psycopg2-binary")

        self.connection_string = connection_string
        self._connection = None
        self._lock = threading.RLock()
        self._in_transaction = False
        self._connect()

    def _connect(self) -> None:
        """Establish database connection"""
        with self._lock:
            if self._connection:
                self._connection.close()
            self._connection = self.psycopg2.connect(
                self.connection_string,
                cursor_factory=self.extras.RealDictCursor
            )
            self._connection.autocommit = False  # We handle transactions manually

    def _ensure_table(self, table: str) -> None:
        """Ensure table exists with proper schema"""
        validate_identifier(table)
        with self._lock:
            cursor = self._connection.cursor()
            try:
                cursor.execute(f"""
                    CREATE TABLE IF NOT EXISTS {table} (
                        id TEXT PRIMARY KEY,
                        data JSONB NOT NULL,
                        created_at TIMESTAMP DEFAULT NOW(),
                        updated_at TIMESTAMP DEFAULT NOW()
                    )
                """)
                cursor.execute(f"""
                    CREATE INDEX IF NOT EXISTS idx_{table}_data
                    ON {table} USING gin(data)
                """)
                if not self._in_transaction:
                    self._connection.commit()
            finally:
                cursor.close()

    def _execute(self, sql: str, params: List[Any], commit: bool = False):
        """Run one statement and return all rows; failures become StorageError"""
        cursor = self._connection.cursor()
        try:
            cursor.execute(sql, params)
            rows = cursor.fetchall() if cursor.description else []
            if commit and not self._in_transaction:
                self._connection.commit()
            return rows, cursor.rowcount
        except self.psycopg2.Error as e:
            if not self._in_transaction:
                self._connection.rollback()
            raise StorageError(f"PostgreSQL statement failed: {e}") from e
        finally:
            cursor.close()

    def _read(self, query: Query, sql: str, params: List[Any]):
        with self._lock:
            for table in query.tables():
                self._ensure_table(table)
            rows, _ = self._execute(sql, params)
            return rows

    def save(self, table: str, record_id: str, data: Dict[str, Any]) -> None:
        """Save a record to PostgreSQL using UPSERT"""
        with self._lock:
            self._ensure_table(table)
            now = datetime.now(timezone.utc)
            self._execute(f"""
                INSERT INTO {table} (id, data, created_at, updated_at)
                VALUES (%s, %s, %s, %s)
                ON CONFLICT (id) DO UPDATE SET
                    data = EXCLUDED.data,
                    updated_at = EXCLUDED.updated_at
            """, [record_id, json.dumps(data, default=str), now, now], commit=True)

    def load(self, table: str, record_id: str) -> Optional[Dict[str, Any]]:
        """Load a record from PostgreSQL"""
        with self._lock:
            self._ensure_table(table)
            rows, _ = self._execute(f"SELECT data FROM {table} WHERE id = %s", [record_id])
            return dict(rows[0]['data']) if rows else None

    def load_all(self, table: str) -> List[Dict[str, Any]]:
        """Load all records from a table"""
        with self._lock:
            self._ensure_table(table)
            rows, _ = self._execute(f"SELECT data FROM {table} ORDER BY created_at", [])
            return [dict(row['data']) for row in rows]

    def delete(self, table: str, record_id: str) -> bool:
        """Delete a record from PostgreSQL"""
        with self._lock:
            self._ensure_table(table)
            _, rowcount = self._execute(f"DELETE FROM {table} WHERE id = %s", [record_id], commit=True)
            return rowcount > 0

    def exists(self, table: str, record_id: str) -> bool:
        """Check if a record exists"""
        with self._lock:
            self._ensure_table(table)
            rows, _ = self._execute(f"SELECT 1 AS found FROM {table} WHERE id = %s LIMIT 1", [record_id])
            return bool(rows)

    def find(self, table: str, filters: Dict[str, Any]) -> List[Dict[str, Any]]:
        """Find records matching filters using JSONB operators"""
        with self._lock:
            self._ensure_table(table)
            conditions = ["1 = 1"]
            params: List[Any] = []
            for key, value in filters.items():
                conditions.append("data ->> %s = %s")
                params.extend([key, str(value)])
            rows, _ = self._execute(f"""
                SELECT data FROM {table}
                WHERE {' AND '.join(conditions)}
                ORDER BY created_at
            """, params)
            return [dict(row['data']) for row in rows]

    def count(self, table: str) -> int:
        """Count records in table"""
        with self._lock:
            self._ensure_table(table)
            rows, _ = self._execute(f"SELECT COUNT(*) AS count FROM {table}", [])
            return rows[0]['count']

    def count_matching(self, query: Query) -> int:
        sql, params = self._select_count(query)
        return self._read(query, sql, params)[0]['count']

    def fetch(self, query: Query, limit: Optional[int] = None, offset: int = 0) -> List[Dict[str, Any]]:
        sql, params = self._select_page(query, limit, offset)
        return [dict(row['data']) for row in self._read(query, sql, params)]

    def aggregate(self, query: Query, function: str, field_name: str) -> Optional[Decimal]:
        sql, params = self._select_aggregate(query, function, field_name)
        return _decimal(self._read(query, sql, params)[0]['value'])

    def group(self, query: Query, key_field: str, key_kind: FieldKind = FieldKind.TEXT,
              value_field: Optional[str] = None) -> List[GroupRow]:
        sql, params = self._select_group(query, key_field, key_kind, value_field)
        rows = self._read(query, sql, params)
        return [(row['group_key'], row['count'], _decimal(row['total'])) for row in rows]

    def clear_table(self, table: str) -> None:
        """Clear all records from a table"""
        with self._lock:
            self._ensure_table(table)
            self._execute(f"DELETE FROM {table}", [], commit=True)

    def begin_transaction(self) -> None:
        """Start a database transaction"""
        with self._lock:
            if not self._in_transaction:
                # PostgreSQL transactions start automatically
                self._in_transaction = True

    def commit(self) -> None:
        """Commit current transaction"""
        with self._lock:
            if self._in_transaction:
                self._connection.commit()
                self._in_transaction = False

    def rollback(self) -> None:
        """Rollback current transaction"""
        with self._lock:
            if self._in_transaction:
                self._connection.rollback()
                self._in_transaction = False

    def close(self) -> None:
        """Close PostgreSQL connection"""
        with self._lock:
            if self._connection:
                self._connection.close()
                self._connection = None


class StorageManager:
    """Typed record access on top of a storage backend"""

    def __init__(self, storage: StorageInterface):
        self.storage = storage

    def save_record(self, record: StorageRecord, table: str) -> None:
        """Save a StorageRecord to storage"""
        self.storage.save(table, record.id, record.to_dict())

    def load_record(self, record_type: type, table: str, record_id: str) -> Optional[StorageRecord]:
        """Load and convert to StorageRecord"""
        data = self.storage.load(table, record_id)
        if data:
            return record_type.from_dict(data)
        return None

    def fetch_records(self, record_type: type, query: Query,
                      limit: Optional[int] = None, offset: int = 0) -> List[StorageRecord]:
        """Fetch matching records and convert to StorageRecord objects"""
        return [record_type.from_dict(data) for data in self.storage.fetch(query, limit, offset)]

    def close(self) -> None:
        """Close storage backend"""
        self.storage.close()


def create_storage(database_url: str) -> StorageInterface:
    """
    Build a storage backend from a URL.

    memory://                 in-memory (tests, demos)
    sqlite:///path/to/db      SQLite file; sqlite:// alone is in-memory SQLite
    postgresql://user@host/db PostgreSQL
    """
    if database_url.startswith('memory://'):
        return InMemoryStorage()
    if database_url.startswith('sqlite://'):
        path = database_url[len('sqlite://'):].lstrip('/') or ':memory:'
        if database_url.startswith('sqlite:////'):
            path = '/' + path
        return SQLiteStorage(path)
    if database_url.startswith(('postgresql://', 'postgres://')):
        return PostgreSQLStorage(database_url)
    raise ValueError(f"Unsupported database URL: {database_url}")
