"""Postgres client spans for DB-API connections (psycopg2, psycopg).

Wrap a connection explicitly; nothing is monkey-patched:

    conn = instrument_connection(psycopg2.connect(dsn), pipeline)
    with conn.cursor() as cur:
        cur.execute("SELECT * FROM users WHERE id = %s", (1,))

Every ``execute``/``executemany`` runs inside a CLIENT span named
``"<OPERATION> <dbname>"``. SQL text is scrubbed of literals before it is
recorded, and only when the pipeline is not in metadata-only mode.

Prepared statements are tracked per connection: the SQL seen in
``PREPARE name AS ...`` is remembered in a bounded LRU cache so a later
``EXECUTE name`` span can carry it.
"""

from __future__ import annotations

import logging
import re
import threading
from typing import TYPE_CHECKING, Any, Mapping, Optional

from opentelemetry.trace import SpanKind

from ..core.config import DEFAULT_STATEMENT_CACHE_SIZE
from ..core.lru_cache import BoundedCache

if TYPE_CHECKING:
    from ..core.pipeline import SpanPipeline
    from ..core.tracing.sanitizing_span import PipelineTracer

logger = logging.getLogger(__name__)

# First words of https://www.postgresql.org/docs/current/sql-commands.html
SQL_COMMANDS = frozenset(
    {
        "ABORT", "ALTER", "ANALYZE", "BEGIN", "CALL", "CHECKPOINT", "CLOSE",
        "CLUSTER", "COMMENT", "COMMIT", "COPY", "CREATE", "DEALLOCATE",
        "DECLARE", "DELETE", "DISCARD", "DO", "DROP", "END", "EXECUTE",
        "EXPLAIN", "FETCH", "GRANT", "IMPORT", "INSERT", "LISTEN", "LOAD",
        "LOCK", "MOVE", "NOTIFY", "PREPARE", "REASSIGN", "REFRESH", "REINDEX",
        "RELEASE", "RESET", "REVOKE", "ROLLBACK", "SAVEPOINT", "SECURITY",
        "SELECT", "SET", "SHOW", "START", "TRUNCATE", "UNLISTEN", "UPDATE",
        "VACUUM", "VALUES",
    }
)

MAX_OBFUSCATION_LENGTH = 2000
SQL_TOO_LARGE = "SQL query too large to remove sensitive data ..."
SQL_OBFUSCATION_FAILED = "Failed to obfuscate SQL query - quote characters remained after obfuscation"

# Literal patterns, tried left to right at each position
_LITERAL_PATTERNS = (
    r"'(?:[^']|'')*?(?:\\'.*|'(?!'))",  # single-quoted strings
    r"(\$(?!\d)[^$]*?\$).*?(?:\1|$)",  # dollar-quoted strings
    r"\{?(?:[0-9a-fA-F]-*){32}\}?",  # uuids
    r"-?\b(?:[0-9]+\.)?[0-9]+(?:[eE][+-]?[0-9]+)?\b",  # numbers
    r"(?i:\b(?:true|false|null)\b)",  # booleans and null
    r"(?:#|--).*?(?=\r|\n|$)",  # line comments
    r"/\*(?:[^/]|/[^*])*?(?:\*/|/\*.*)",  # block comments
)
_LITERALS_RE = re.compile("|".join(_LITERAL_PATTERNS), re.MULTILINE)
_UNMATCHED_PAIRS_RE = re.compile(r"'|/\*|\*/|\$(?!\?)")

_PREPARE_RE = re.compile(r"^\s*PREPARE\s+(\w+)(?:\s*\([^)]*\))?\s+AS\s+(.+)$", re.IGNORECASE | re.DOTALL)
_EXECUTE_RE = re.compile(r"^\s*EXECUTE\s+(\w+)", re.IGNORECASE)
_IDENTIFIER_RE = re.compile(r"^[A-Za-z_]\w*$")


def obfuscate_sql(sql: str) -> str:
    """Replace literals, numbers and comments in ``sql`` with ``?``."""
    if len(sql) > MAX_OBFUSCATION_LENGTH:
        return SQL_TOO_LARGE

    obfuscated = _LITERALS_RE.sub("?", sql)
    if _UNMATCHED_PAIRS_RE.search(obfuscated):
        return SQL_OBFUSCATION_FAILED
    return obfuscated


def extract_operation(sql: str) -> str:
    """Upper-cased first word of ``sql`` ("" when there is none)."""
    words = str(sql).split(maxsplit=1)
    return words[0].upper() if words else ""


def validated_operation(operation: Optional[str]) -> Optional[str]:
    """``operation`` if it is a known SQL command, otherwise None."""
    return operation if operation in SQL_COMMANDS else None


class PreparedStatementTracker:
    """Statement name -> obfuscated SQL, bounded by an LRU cache. Thread-safe."""

    def __init__(self, capacity: int = DEFAULT_STATEMENT_CACHE_SIZE) -> None:
        self._cache: BoundedCache[str, str] = BoundedCache(capacity)
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._cache)

    @property
    def capacity(self) -> int:
        return self._cache.capacity

    def remember(self, name: str, sql: str) -> None:
        with self._lock:
            self._cache.set(name, sql)

    def lookup(self, name: str) -> Optional[str]:
        with self._lock:
            return self._cache.get(name)


def connection_info(connection: Any) -> dict[str, str]:
    """Best-effort connection parameters (user, dbname, host, hostaddr, port)."""
    # psycopg2
    get_dsn_parameters = getattr(connection, "get_dsn_parameters", None)
    if callable(get_dsn_parameters):
        try:
            return dict(get_dsn_parameters())
        except Exception as e:
            logger.debug(f"Could not read DSN parameters: {e}")
            return {}

    # psycopg 3
    info = getattr(connection, "info", None)
    get_parameters = getattr(info, "get_parameters", None)
    if callable(get_parameters):
        try:
            params = dict(get_parameters())
        except Exception as e:
            logger.debug(f"Could not read connection parameters: {e}")
            return {}
        for key in ("host", "hostaddr", "port"):
            value = getattr(info, key, None)
            if value and key not in params:
                params[key] = str(value)
        return params

    return {}


def client_attributes(conninfo: Mapping[str, Any]) -> dict[str, str]:
    """Database and network attributes shared by every span on a connection."""
    host = conninfo.get("host")
    attributes = {
        "db.system": "postgresql",
        "db.user": conninfo.get("user"),
        "db.name": conninfo.get("dbname"),
        "net.peer.name": host,
    }
    if host and str(host).startswith("/"):
        attributes["net.transport"] = "Unix"
    else:
        attributes["net.transport"] = "IP.TCP"
        attributes["net.peer.ip"] = conninfo.get("hostaddr")
        attributes["net.peer.port"] = conninfo.get("port")
    return {key: str(value) for key, value in attributes.items() if value is not None}


def _query_text(query: Any) -> str:
    if isinstance(query, str):
        return query
    if isinstance(query, (bytes, bytearray)):
        return bytes(query).decode("utf-8", errors="replace")
    return str(query)


class TracedCursor:
    """Cursor proxy that traces ``execute`` and ``executemany``; everything else is passed through."""

    def __init__(self, cursor: Any, connection: TracedConnection) -> None:
        self._cursor = cursor
        self._connection = connection

    def __getattr__(self, name: str) -> Any:
        return getattr(self._cursor, name)

    def __iter__(self):
        return iter(self._cursor)

    def __enter__(self) -> TracedCursor:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self._cursor.close()

    @property
    def wrapped(self) -> Any:
        return self._cursor

    def execute(self, query: Any, params: Any = None) -> Any:
        with self._connection.query_span(_query_text(query)):
            if params is None:
                return self._cursor.execute(query)
            return self._cursor.execute(query, params)

    def executemany(self, query: Any, params_seq: Any) -> Any:
        with self._connection.query_span(_query_text(query)):
            return self._cursor.executemany(query, params_seq)

    def prepare(self, name: str, sql: str) -> Any:
        """Run ``PREPARE name AS sql``."""
        if not _IDENTIFIER_RE.match(name):
            raise ValueError(f"Invalid prepared statement name {name!r}")
        return self.execute(f"PREPARE {name} AS {sql}")

    def execute_prepared(self, name: str, params: Any = ()) -> Any:
        """Run ``EXECUTE name (...)`` with one placeholder per parameter."""
        if not _IDENTIFIER_RE.match(name):
            raise ValueError(f"Invalid prepared statement name {name!r}")
        params = tuple(params)
        if not params:
            return self.execute(f"EXECUTE {name}")
        placeholders = ", ".join(["%s"] * len(params))
        return self.execute(f"EXECUTE {name} ({placeholders})", params)


class TracedConnection:
    """Connection proxy whose cursors trace every statement."""

    def __init__(
        self,
        connection: Any,
        tracer: PipelineTracer,
        statement_cache: PreparedStatementTracker | None = None,
        metadata_only: bool = True,
        conninfo: Mapping[str, Any] | None = None,
    ) -> None:
        """
        Args:
            connection: DB-API connection to wrap
            tracer: Tracer spans are started from
            statement_cache: Prepared-statement tracker (one per connection by default)
            metadata_only: When True, SQL text is never recorded
            conninfo: Connection parameters; read from the connection when omitted
        """
        self._connection = connection
        self._tracer = tracer
        self._statements = statement_cache if statement_cache is not None else PreparedStatementTracker()
        self._metadata_only = metadata_only
        self._client_attributes = client_attributes(conninfo if conninfo is not None else connection_info(connection))

    def __getattr__(self, name: str) -> Any:
        return getattr(self._connection, name)

    def __enter__(self) -> TracedConnection:
        self._connection.__enter__()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> Any:
        return self._connection.__exit__(exc_type, exc_val, exc_tb)

    @property
    def wrapped(self) -> Any:
        return self._connection

    @property
    def statements(self) -> PreparedStatementTracker:
        return self._statements

    def cursor(self, *args: Any, **kwargs: Any) -> TracedCursor:
        return TracedCursor(self._connection.cursor(*args, **kwargs), self)

    def span_attributes(self, sql: str) -> tuple[str, dict[str, str]]:
        """Span name and attributes for one statement."""
        operation = extract_operation(sql)
        statement_name = None

        prepare = _PREPARE_RE.match(sql)
        execute = _EXECUTE_RE.match(sql) if prepare is None else None
        if prepare is not None:
            statement_name = prepare.group(1)
            statement = obfuscate_sql(prepare.group(2).strip())
            self._statements.remember(statement_name, statement)
        elif execute is not None:
            statement_name = execute.group(1)
            statement = self._statements.lookup(statement_name)
        else:
            statement = obfuscate_sql(sql)

        operation = validated_operation(operation)
        attributes = dict(self._client_attributes)
        if operation is not None:
            attributes["db.operation"] = operation
        if statement_name is not None:
            attributes["db.postgresql.prepared_statement_name"] = statement_name
        if statement is not None and not self._metadata_only:
            attributes["db.statement"] = statement

        name = " ".join(part for part in (operation, self._client_attributes.get("db.name")) if part)
        return name or "postgresql", attributes

    def query_span(self, sql: str):
        name, attributes = self.span_attributes(sql)
        return self._tracer.start_as_current_span(name, kind=SpanKind.CLIENT, attributes=attributes)


def instrument_connection(connection: Any, pipeline: SpanPipeline, conninfo: Mapping[str, Any] | None = None) -> TracedConnection:
    """Wrap ``connection`` using the pipeline's tracer and settings."""
    config = pipeline.config
    return TracedConnection(
        connection,
        pipeline.get_tracer(__name__),
        statement_cache=PreparedStatementTracker(config.statement_cache_size),
        metadata_only=config.metadata_only,
        conninfo=conninfo,
    )
