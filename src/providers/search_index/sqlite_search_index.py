"""SQLite FTS5-backed search index.

Stores one row per :class:`SearchIndexEntry` in ``search_entries`` and mirrors
the analysed (``text``) fields into an FTS5 virtual table whose rowid is the
entry's insertion sequence number.  Uses ``aiosqlite`` for async I/O.

# ─── SCHEMA ──────────────────────────────────────────────────────────
#
# The table layout is derived once, at creation time, from a static field
# mapping (``config/config.yaml`` → ``search_index.mapping``):
#
#   keyword → TEXT column, exact-match filters (Term)
#   text    → TEXT column + FTS5 column, full-text matching (Contains)
#   long    → INTEGER column
#   date    → ISO-8601 TEXT column
#
# ``seq`` is an AUTOINCREMENT key that fixes natural (insertion) order; an
# upsert on ``id`` keeps the original ``seq``, so reprocessing a document
# overwrites it in place.
#
# ``delete`` leaves a tombstone in ``search_entries_deleted``; a later
# ``save`` of the same id clears it.
#
# ─── QUERY COMPILATION ───────────────────────────────────────────────
#
#   And(Term("tenant_id", "acme"),
#       Or(Contains("file_name", "q3 report"), Contains("content", "q3 report")))
#
# compiles to
#
#   WHERE e.tenant_id = ?                                   -- SQL part
#     AND search_entries_fts MATCH
#         '(file_name : "q3"* AND file_name : "report"*) OR (content : "q3"* AND content : "report"*)'
#   ORDER BY bm25(search_entries_fts)
#
# Every user token is reduced to word characters and quoted, so FTS5 query
# syntax in user input is never interpreted.
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

import re
from datetime import datetime
from pathlib import Path
from typing import Any

import aiosqlite
import structlog

from src.interfaces.search_index import ISearchIndex
from src.models.document import DocumentStatus, SearchIndexEntry, utc_now
from src.models.search import And, Contains, Or, QueryExpression, SearchHit, Term
from src.utils.errors import ConfigurationError, SearchIndexError, UnsupportedQueryError

logger = structlog.get_logger(logger_name=__name__)

_DEFAULT_DB_PATH = Path("data/search_index.db")
_PROVIDER = "sqlite_fts"

_ENTRIES_TABLE = "search_entries"
_FTS_TABLE = "search_entries_fts"
_DELETED_TABLE = "search_entries_deleted"

DEFAULT_INDEX_MAPPING: dict[str, str] = {
    "tenant_id": "keyword",
    "file_name": "text",
    "file_path": "keyword",
    "content_type": "keyword",
    "file_type": "keyword",
    "file_size": "long",
    "content": "text",
    "status": "keyword",
    "uploaded_at": "date",
    "indexed_at": "date",
}

_SQL_TYPES = {
    "keyword": "TEXT",
    "text": "TEXT",
    "long": "INTEGER",
    "date": "TEXT",
}

_REQUIRED_FIELDS = frozenset(SearchIndexEntry.model_fields) - {"id"}
_NOT_NULL_FIELDS = frozenset(
    name for name, field in SearchIndexEntry.model_fields.items() if field.is_required()
) - {"id"}
_TOKEN_RE = re.compile(r"\w+", re.UNICODE)


class SQLiteSearchIndex(ISearchIndex):
    """Search index on SQLite FTS5 with bm25 relevance.

    Parameters
    ----------
    db_path:
        SQLite database file.
    mapping:
        Field name → type (``keyword`` | ``text`` | ``long`` | ``date``).
        Must cover every :class:`SearchIndexEntry` field except ``id``.
    tokenizer:
        FTS5 tokenizer specification.
    """

    def __init__(
        self,
        db_path: str | Path = _DEFAULT_DB_PATH,
        mapping: dict[str, str] | None = None,
        tokenizer: str = "unicode61",
    ) -> None:
        self._db_path = Path(db_path)
        self._mapping = dict(mapping or DEFAULT_INDEX_MAPPING)
        self._tokenizer = tokenizer
        self._validate_mapping()
        self._fields = list(self._mapping)
        self._text_fields = [f for f, t in self._mapping.items() if t == "text"]

    # ------------------------------------------------------------------
    # ISearchIndex implementation
    # ------------------------------------------------------------------

    async def initialize(self) -> None:
        """Create the entries table and FTS5 table from the field mapping."""
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        try:
            async with aiosqlite.connect(str(self._db_path)) as db:
                await db.execute(self._create_entries_sql())
                await db.execute(
                    f"CREATE INDEX IF NOT EXISTS idx_{_ENTRIES_TABLE}_tenant "
                    f"ON {_ENTRIES_TABLE}(tenant_id);"
                )
                await db.execute(self._create_fts_sql())
                await db.execute(
                    f"CREATE TABLE IF NOT EXISTS {_DELETED_TABLE} "
                    "(id TEXT PRIMARY KEY, deleted_at TEXT NOT NULL);"
                )
                await db.commit()
        except aiosqlite.Error as exc:
            raise SearchIndexError(
                f"Failed to create search index: {exc}", provider_name=_PROVIDER
            ) from exc
        logger.info(
            "search_index_initialized",
            path=str(self._db_path),
            text_fields=self._text_fields,
            tokenizer=self._tokenizer,
        )

    async def save(self, entry: SearchIndexEntry) -> None:
        """Upsert *entry* and refresh its FTS row in one transaction."""
        row = self._entry_to_row(entry)
        columns = ["id", *self._fields]
        placeholders = ", ".join("?" for _ in columns)
        updates = ", ".join(f"{f} = excluded.{f}" for f in self._fields)
        upsert_sql = (
            f"INSERT INTO {_ENTRIES_TABLE} ({', '.join(columns)}) VALUES ({placeholders}) "
            f"ON CONFLICT(id) DO UPDATE SET {updates};"
        )

        try:
            async with aiosqlite.connect(str(self._db_path)) as db:
                await db.execute(upsert_sql, [row[c] for c in columns])
                cursor = await db.execute(
                    f"SELECT seq FROM {_ENTRIES_TABLE} WHERE id = ?", (entry.id,)
                )
                (seq,) = await cursor.fetchone()
                await db.execute(f"DELETE FROM {_FTS_TABLE} WHERE rowid = ?", (seq,))
                await db.execute(
                    f"INSERT INTO {_FTS_TABLE} (rowid, {', '.join(self._text_fields)}) "
                    f"VALUES (?, {', '.join('?' for _ in self._text_fields)})",
                    [seq, *(row[f] for f in self._text_fields)],
                )
                await db.execute(f"DELETE FROM {_DELETED_TABLE} WHERE id = ?", (entry.id,))
                await db.commit()
        except aiosqlite.Error as exc:
            raise SearchIndexError(
                f"Failed to index entry {entry.id}: {exc}", provider_name=_PROVIDER
            ) from exc

        logger.debug("search_entry_saved", entry_id=entry.id, tenant_id=entry.tenant_id)

    async def find_by_id(self, entry_id: str) -> SearchIndexEntry | None:
        rows = await self._fetch(
            f"SELECT {self._select_columns()} FROM {_ENTRIES_TABLE} e WHERE e.id = ?",
            [entry_id],
        )
        return self._row_to_entry(rows[0]) if rows else None

    async def find_by_tenant(
        self,
        tenant_id: str,
        limit: int | None = None,
    ) -> list[SearchIndexEntry]:
        rows = await self._fetch(
            f"SELECT {self._select_columns()} FROM {_ENTRIES_TABLE} e "
            "WHERE e.tenant_id = ? ORDER BY e.seq LIMIT ?",
            [tenant_id, _sql_limit(limit)],
        )
        return [self._row_to_entry(r) for r in rows]

    async def query(
        self,
        expression: QueryExpression,
        limit: int | None = None,
    ) -> list[SearchHit]:
        where: list[str] = []
        params: list[Any] = []
        fts_parts: list[str | None] = []
        self._split(expression, where, params, fts_parts)

        if any(part is None for part in fts_parts):
            # a full-text predicate with no searchable tokens matches nothing
            return []

        if fts_parts:
            match = " AND ".join(f"({p})" for p in fts_parts)
            sql = (
                f"SELECT {self._select_columns()}, bm25({_FTS_TABLE}) AS relevance "
                f"FROM {_FTS_TABLE} JOIN {_ENTRIES_TABLE} e ON e.seq = {_FTS_TABLE}.rowid "
                f"WHERE {_FTS_TABLE} MATCH ?"
                + "".join(f" AND {w}" for w in where)
                + " ORDER BY relevance LIMIT ?"
            )
            rows = await self._fetch(sql, [match, *params, _sql_limit(limit)])
            # bm25() is "lower is better" and negative; flip it so higher is better.
            return [SearchHit(entry=self._row_to_entry(r), score=-float(r["relevance"])) for r in rows]

        sql = (
            f"SELECT {self._select_columns()} FROM {_ENTRIES_TABLE} e "
            f"WHERE {' AND '.join(where) if where else '1 = 1'} ORDER BY e.seq LIMIT ?"
        )
        rows = await self._fetch(sql, [*params, _sql_limit(limit)])
        return [SearchHit(entry=self._row_to_entry(r)) for r in rows]

    async def delete(self, entry_id: str) -> bool:
        try:
            async with aiosqlite.connect(str(self._db_path)) as db:
                cursor = await db.execute(
                    f"SELECT seq FROM {_ENTRIES_TABLE} WHERE id = ?", (entry_id,)
                )
                row = await cursor.fetchone()
                if row is None:
                    return False
                await db.execute(f"DELETE FROM {_FTS_TABLE} WHERE rowid = ?", (row[0],))
                await db.execute(f"DELETE FROM {_ENTRIES_TABLE} WHERE seq = ?", (row[0],))
                await db.execute(
                    f"INSERT OR REPLACE INTO {_DELETED_TABLE} (id, deleted_at) VALUES (?, ?)",
                    (entry_id, utc_now().isoformat()),
                )
                await db.commit()
        except aiosqlite.Error as exc:
            raise SearchIndexError(
                f"Failed to delete entry {entry_id}: {exc}", provider_name=_PROVIDER
            ) from exc
        logger.info("search_entry_deleted", entry_id=entry_id)
        return True

    async def was_deleted(self, entry_id: str) -> bool:
        rows = await self._fetch(
            f"SELECT 1 AS hit FROM {_DELETED_TABLE} WHERE id = ?", [entry_id]
        )
        return bool(rows)

    async def count(self, tenant_id: str | None = None) -> int:
        if tenant_id is None:
            rows = await self._fetch(f"SELECT COUNT(*) AS n FROM {_ENTRIES_TABLE}", [])
        else:
            rows = await self._fetch(
                f"SELECT COUNT(*) AS n FROM {_ENTRIES_TABLE} WHERE tenant_id = ?", [tenant_id]
            )
        return int(rows[0]["n"])

    def get_provider_name(self) -> str:
        return _PROVIDER

    # ------------------------------------------------------------------
    # Query compilation
    # ------------------------------------------------------------------

    def _split(
        self,
        expr: QueryExpression,
        where: list[str],
        params: list[Any],
        fts_parts: list[str | None],
    ) -> None:
        """Walk the top-level conjunction, routing Terms to SQL and text to FTS."""
        if isinstance(expr, Term):
            where.append(f"e.{self._keyword_field(expr.field)} = ?")
            params.append(expr.value)
        elif isinstance(expr, And) and not self._is_text_only(expr):
            for clause in expr.clauses:
                self._split(clause, where, params, fts_parts)
        else:
            fts_parts.append(self._compile_text(expr))

    def _is_text_only(self, expr: QueryExpression) -> bool:
        if isinstance(expr, Contains):
            return True
        if isinstance(expr, Term):
            return False
        return all(self._is_text_only(c) for c in expr.clauses)

    def _compile_text(self, expr: QueryExpression) -> str | None:
        """Compile a Term-free subtree to an FTS5 MATCH string.

        Returns ``None`` when the subtree can never match (no usable tokens).
        """
        if isinstance(expr, Contains):
            field = self._text_field(expr.field)
            tokens = _TOKEN_RE.findall(expr.text.lower())
            if not tokens:
                return None
            return " AND ".join(f'{field} : "{t}"*' for t in tokens)

        if isinstance(expr, Term):
            raise UnsupportedQueryError(
                f"Exact-match predicate on '{expr.field}' cannot appear under OR "
                "with full-text predicates",
                provider_name=_PROVIDER,
            )

        compiled = [self._compile_text(c) for c in expr.clauses]
        if isinstance(expr, Or):
            parts = [p for p in compiled if p is not None]
            if not parts:
                return None
            return " OR ".join(f"({p})" for p in parts)

        if not compiled or any(p is None for p in compiled):
            return None
        return " AND ".join(f"({p})" for p in compiled)

    def _keyword_field(self, name: str) -> str:
        if name == "id" or self._mapping.get(name) in ("keyword", "long", "date"):
            return name
        raise UnsupportedQueryError(
            f"'{name}' is not an exact-match field", provider_name=_PROVIDER
        )

    def _text_field(self, name: str) -> str:
        if self._mapping.get(name) == "text":
            return name
        raise UnsupportedQueryError(
            f"'{name}' is not a full-text field", provider_name=_PROVIDER
        )

    # ------------------------------------------------------------------
    # Schema / row mapping
    # ------------------------------------------------------------------

    def _validate_mapping(self) -> None:
        missing = _REQUIRED_FIELDS - set(self._mapping)
        unknown = set(self._mapping) - _REQUIRED_FIELDS
        bad_types = {f: t for f, t in self._mapping.items() if t not in _SQL_TYPES}
        if missing or unknown or bad_types:
            raise ConfigurationError(
                f"Invalid search index mapping (missing={sorted(missing)}, "
                f"unknown={sorted(unknown)}, bad_types={bad_types})",
                provider_name=_PROVIDER,
            )
        if not any(t == "text" for t in self._mapping.values()):
            raise ConfigurationError(
                "Search index mapping needs at least one text field", provider_name=_PROVIDER
            )

    def _create_entries_sql(self) -> str:
        columns = [
            f"    {name} {_SQL_TYPES[kind]}{' NOT NULL' if name in _NOT_NULL_FIELDS else ''}"
            for name, kind in self._mapping.items()
        ]
        return (
            f"CREATE TABLE IF NOT EXISTS {_ENTRIES_TABLE} (\n"
            "    seq INTEGER PRIMARY KEY AUTOINCREMENT,\n"
            "    id TEXT NOT NULL UNIQUE,\n"
            + ",\n".join(columns)
            + "\n);"
        )

    def _create_fts_sql(self) -> str:
        return (
            f"CREATE VIRTUAL TABLE IF NOT EXISTS {_FTS_TABLE} "
            f"USING fts5({', '.join(self._text_fields)}, tokenize = '{self._tokenizer}');"
        )

    def _select_columns(self) -> str:
        return ", ".join(f"e.{c}" for c in ["id", *self._fields])

    async def _fetch(self, sql: str, params: list[Any]) -> list[dict[str, Any]]:
        try:
            async with aiosqlite.connect(str(self._db_path)) as db:
                db.row_factory = aiosqlite.Row
                cursor = await db.execute(sql, params)
                rows = await cursor.fetchall()
        except aiosqlite.Error as exc:
            raise SearchIndexError(
                f"Search index query failed: {exc}", provider_name=_PROVIDER
            ) from exc
        return [dict(r) for r in rows]

    @staticmethod
    def _entry_to_row(entry: SearchIndexEntry) -> dict[str, Any]:
        row = entry.model_dump()
        row["status"] = entry.status.value
        row["uploaded_at"] = entry.uploaded_at.isoformat()
        row["indexed_at"] = entry.indexed_at.isoformat() if entry.indexed_at else None
        return row

    @staticmethod
    def _row_to_entry(row: dict[str, Any]) -> SearchIndexEntry:
        return SearchIndexEntry(
            id=row["id"],
            tenant_id=row["tenant_id"],
            file_name=row["file_name"],
            file_path=row["file_path"],
            content_type=row["content_type"],
            file_type=row["file_type"],
            file_size=row["file_size"],
            content=row["content"],
            status=DocumentStatus(row["status"]),
            uploaded_at=datetime.fromisoformat(row["uploaded_at"]),
            indexed_at=datetime.fromisoformat(row["indexed_at"]) if row["indexed_at"] else None,
        )


def _sql_limit(limit: int | None) -> int:
    """SQLite treats a negative LIMIT as 'no limit'."""
    return -1 if limit is None or limit <= 0 else limit
