"""
NASR CSV subscription to SQLite builder.

Reads the table layouts shipped as `*_CSV_DATA_STRUCTURE.csv` files, creates one
SQLite table per described table, loads the matching CSV data, and then repairs
the known defects of the FAA data so that every parent key is unique and every
child row references an existing parent:

1. Parse metadata streams into table schemas.
2. Emit CREATE TABLE statements (with foreign key clauses) and, separately, one
   CREATE UNIQUE INDEX per distinct parent key.
3. Load every data stream in its own transaction.
4. Create the unique indexes, deleting duplicate keys (lowest rowid wins) when an
   index is rejected, and retry once.
5. Delete child rows whose key has no parent, parents first, then verify.

Every deletion is logged as a warning. Foreign keys are declared on the tables
but never enforced by SQLite; the repair pass enforces them after the load.
"""
from __future__ import annotations

import argparse
import csv
import io
import json
import logging
import math
import re
import sys
from dataclasses import asdict, dataclass, field
from functools import partial
from graphlib import CycleError, TopologicalSorter
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import URL, Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from nasr_archive import ArchiveError, open_subscription
from nasr_catalog import RELATIONSHIPS, SENTINEL_NULLS

logger = logging.getLogger(__name__)


# --------------------------------------------------------------------------------------
# Configuration
# --------------------------------------------------------------------------------------
CONFIG: Dict[str, Any] = {
    "STREAMS": {
        "METADATA_SUFFIX": "_CSV_DATA_STRUCTURE.csv",
        "DATA_SUFFIX": ".csv",
        "ENCODING": "utf-8",
        # Single-byte, maps every byte, so a stream that is not UTF-8 loads unchanged.
        "FALLBACK_ENCODING": "latin-1",
    },
    "METADATA": {
        # Table name, column name, max length (unused), data type, nullable.
        "MIN_FIELDS": 5,
        "NULLABLE_TOKEN": "Yes",
        "TYPE_MAP": {"VARCHAR": "TEXT", "NUMBER": "REAL"},
    },
    "SQLITE": {
        # The output is disposable and rebuildable, so durability is relaxed.
        "PRAGMAS": {"journal_mode": "WAL", "synchronous": "OFF"},
    },
    "LOAD": {
        "BATCH_SIZE": 5000,
    },
}

UTF8_BOM = b"\xef\xbb\xbf"
BARE_CR_RE = re.compile(rb"\r(?!\n)")
# Plain base-10 literal; inf, nan, hex and underscore forms are left as text.
NUMBER_RE = re.compile(r"^[+-]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?$")


# --------------------------------------------------------------------------------------
# Errors
# --------------------------------------------------------------------------------------
class ExtractError(Exception):
    """Base class for failures that abort the build."""


class PreconditionError(ExtractError):
    """Input missing or output already present; nothing has been written."""


class CatalogError(ExtractError):
    """The relationship catalog cannot be ordered parents first."""


class MetadataParseError(ExtractError):
    def __init__(self, stream: str, reason: str) -> None:
        self.stream = stream
        self.reason = reason
        super().__init__(f"parse {stream}: {reason}")


class DataLoadError(ExtractError):
    def __init__(self, table: str, reason: str) -> None:
        self.table = table
        self.reason = reason
        super().__init__(f"load {table}: {reason}")


class IndexRepairError(ExtractError):
    def __init__(self, index: "UniqueIndex", reason: str) -> None:
        self.index = index
        self.reason = reason
        super().__init__(f"{reason}\n{index.statement}")


class IntegrityCheckError(ExtractError):
    def __init__(self, violations: Sequence["Violation"]) -> None:
        self.violations = list(violations)
        super().__init__(f"foreign key check failed: {len(self.violations)} violations remain")

    @property
    def count(self) -> int:
        return len(self.violations)


# --------------------------------------------------------------------------------------
# Utility helpers
# --------------------------------------------------------------------------------------
def quote_ident(name: str) -> str:
    """Quote a SQLite identifier, doubling any embedded double quote."""
    escaped = name.replace('"', '""')
    return f'"{escaped}"'


def strip_bom(data: bytes) -> bytes:
    return data[len(UTF8_BOM):] if data.startswith(UTF8_BOM) else data


def normalize_line_endings(data: bytes) -> bytes:
    """Turn bare CR line endings into LF while leaving CRLF untouched.

    At least one structure file (FSS) is written with CR-only line endings.
    """
    return BARE_CR_RE.sub(b"\n", data)


def decode_stream(data: bytes, name: str = "<stream>") -> str:
    data = strip_bom(data)
    cfg = CONFIG["STREAMS"]
    try:
        return data.decode(cfg["ENCODING"])
    except UnicodeDecodeError as exc:
        logger.warning(
            "Stream %s is not valid %s (byte 0x%02x at offset %d); decoding as %s",
            name,
            cfg["ENCODING"],
            data[exc.start],
            exc.start,
            cfg["FALLBACK_ENCODING"],
        )
        return data.decode(cfg["FALLBACK_ENCODING"])


def csv_records(text_data: str):
    return csv.reader(io.StringIO(text_data, newline=""), strict=True)


def is_metadata_stream(name: str) -> bool:
    return name.endswith(CONFIG["STREAMS"]["METADATA_SUFFIX"])


def table_name_for_stream(name: str) -> Optional[str]:
    """Map a data stream name such as `dir/APT_BASE.csv` to `APT_BASE`."""
    suffix = CONFIG["STREAMS"]["DATA_SUFFIX"]
    if is_metadata_stream(name) or not name.endswith(suffix):
        return None
    base = name.rsplit("/", 1)[-1]
    return base[: -len(suffix)] or None


def format_key(columns: Sequence[str], values: Sequence[Any]) -> str:
    return ", ".join(f"{col}={val}" for col, val in zip(columns, values))


# --------------------------------------------------------------------------------------
# Data containers
# --------------------------------------------------------------------------------------
@dataclass
class ColumnDef:
    name: str
    data_type: str
    nullable: bool


@dataclass
class TableSchema:
    name: str
    columns: List[ColumnDef] = field(default_factory=list)

    def column_names(self) -> List[str]:
        return [c.name for c in self.columns]


@dataclass(frozen=True)
class ForeignKeyConstraint:
    child_table: str
    columns: Tuple[str, ...]
    parent_table: str
    # Empty when the parent key uses the same column names as the child.
    parent_columns: Tuple[str, ...] = ()

    @property
    def referenced_columns(self) -> Tuple[str, ...]:
        return self.parent_columns or self.columns


@dataclass(frozen=True)
class UniqueIndex:
    """A unique index on a parent key, carried with the table and columns it covers."""

    table: str
    columns: Tuple[str, ...]

    @property
    def name(self) -> str:
        return f"idx_{self.table}_{'_'.join(self.columns)}"

    @property
    def statement(self) -> str:
        cols = ", ".join(quote_ident(c) for c in self.columns)
        return f"CREATE UNIQUE INDEX {quote_ident(self.name)} ON {quote_ident(self.table)} ({cols});"


@dataclass
class Violation:
    table: str
    rowid: int
    parent_table: str
    columns: Tuple[str, ...]
    key: Tuple[Any, ...]


@dataclass
class RunSummary:
    tables_created: int = 0
    rows_loaded: Dict[str, int] = field(default_factory=dict)
    indexes_created: int = 0
    duplicates_deleted: int = 0
    orphans_deleted: int = 0

    @property
    def total_rows(self) -> int:
        return sum(self.rows_loaded.values())


def load_catalog(
    relationships: Iterable[Tuple[str, Sequence[str], str]] = RELATIONSHIPS,
) -> List[ForeignKeyConstraint]:
    return [ForeignKeyConstraint(child, tuple(columns), parent) for child, columns, parent in relationships]


# --------------------------------------------------------------------------------------
# SQLite client
# --------------------------------------------------------------------------------------
def _apply_pragmas(pragmas: Dict[str, str], dbapi_connection: Any, _connection_record: Any) -> None:
    cursor = dbapi_connection.cursor()
    try:
        for name, value in pragmas.items():
            cursor.execute(f"PRAGMA {name} = {value}")
    finally:
        cursor.close()


class SqliteClient:
    """Thin wrapper around SQLAlchemy for one SQLite database file.

    The configured pragmas are applied to every pooled connection as it is
    opened, so they are in effect before the first write.
    """

    def __init__(self, path: Union[str, Path], pragmas: Optional[Dict[str, str]] = None) -> None:
        self.path = Path(path)
        # Built from parts so `?` or `#` in the path is not read as URL syntax.
        url = URL.create("sqlite", database=str(self.path))
        self.engine: Engine = create_engine(url, future=True)
        pragmas = CONFIG["SQLITE"]["PRAGMAS"] if pragmas is None else pragmas
        event.listen(self.engine, "connect", partial(_apply_pragmas, dict(pragmas)))

    def begin(self):
        return self.engine.begin()

    def execute(self, sql: str) -> None:
        """Run a single statement (DDL) in its own transaction."""
        with self.engine.begin() as conn:
            conn.exec_driver_sql(sql)

    def fetch_all(self, sql: str, params: Optional[Dict[str, Any]] = None) -> List[Tuple[Any, ...]]:
        with self.engine.connect() as conn:
            return [tuple(row) for row in conn.execute(text(sql), params or {})]

    def fetch_value(self, sql: str, params: Optional[Dict[str, Any]] = None) -> Any:
        rows = self.fetch_all(sql, params)
        return rows[0][0] if rows else None

    def dispose(self) -> None:
        self.engine.dispose()


# --------------------------------------------------------------------------------------
# Metadata parser
# --------------------------------------------------------------------------------------
class MetadataParser:
    """Builds table schemas from the `*_CSV_DATA_STRUCTURE.csv` streams."""

    def __init__(self, sentinel_nulls: Optional[Mapping[Tuple[str, str], str]] = None) -> None:
        self.sentinel_nulls = SENTINEL_NULLS if sentinel_nulls is None else sentinel_nulls

    def parse(self, streams: Mapping[str, bytes]) -> Dict[str, TableSchema]:
        tables: Dict[str, TableSchema] = {}
        for name in sorted(streams):
            self.parse_stream(name, streams[name], tables)
        self.apply_sentinel_overrides(tables)
        return tables

    def parse_stream(self, name: str, data: bytes, tables: Dict[str, TableSchema]) -> None:
        reader = csv_records(decode_stream(normalize_line_endings(data), name))
        try:
            next(reader)
        except StopIteration:
            raise MetadataParseError(name, "missing header record") from None
        except csv.Error as exc:
            raise MetadataParseError(name, f"read header: {exc}") from exc

        cfg = CONFIG["METADATA"]
        while True:
            try:
                record = next(reader)
            except StopIteration:
                break
            except csv.Error as exc:
                raise MetadataParseError(name, f"line {reader.line_num}: {exc}") from exc

            if len(record) < cfg["MIN_FIELDS"]:
                logger.debug("Skipping short record in %s at line %d: %r", name, reader.line_num, record)
                continue

            table_name = record[0].strip()
            column_name = record[1].strip().replace(" ", "_")
            data_type = record[3].strip()
            data_type = cfg["TYPE_MAP"].get(data_type, data_type)
            nullable = record[4].strip() == cfg["NULLABLE_TOKEN"]

            schema = tables.get(table_name)
            if schema is None:
                schema = tables[table_name] = TableSchema(name=table_name)
            schema.columns.append(ColumnDef(name=column_name, data_type=data_type, nullable=nullable))

    def apply_sentinel_overrides(self, tables: Dict[str, TableSchema]) -> None:
        # Placeholder values are stored as NULL, so the column must accept NULL.
        for table_name, column_name in self.sentinel_nulls:
            schema = tables.get(table_name)
            if schema is None:
                continue
            for col in schema.columns:
                if col.name == column_name:
                    col.nullable = True


# --------------------------------------------------------------------------------------
# DDL synthesizer
# --------------------------------------------------------------------------------------
def applicable_constraints(
    tables: Mapping[str, TableSchema], constraints: Iterable[ForeignKeyConstraint]
) -> List[ForeignKeyConstraint]:
    """Keep the relationships whose tables and key columns exist in this archive."""
    kept: List[ForeignKeyConstraint] = []
    for fk in constraints:
        child, parent = tables.get(fk.child_table), tables.get(fk.parent_table)
        if child is None or parent is None:
            logger.info(
                "Skipping relationship %s -> %s: table not present", fk.child_table, fk.parent_table
            )
            continue
        missing = [f"{fk.child_table}.{c}" for c in fk.columns if c not in child.column_names()]
        missing += [f"{fk.parent_table}.{c}" for c in fk.referenced_columns if c not in parent.column_names()]
        if missing:
            logger.info(
                "Skipping relationship %s -> %s: key columns not present: %s",
                fk.child_table,
                fk.parent_table,
                ", ".join(missing),
            )
            continue
        kept.append(fk)
    return kept


class DDLSynthesizer:
    """Generates CREATE TABLE and CREATE UNIQUE INDEX statements.

    Table statements are ordered by table name. Indexes are returned separately,
    one per distinct (parent table, columns) pair, so they can be created after
    the data is loaded.
    """

    def __init__(self, tables: Mapping[str, TableSchema], constraints: Iterable[ForeignKeyConstraint]) -> None:
        self.tables = tables
        self.constraints = applicable_constraints(tables, constraints)

    def create_table_statement(self, schema: TableSchema) -> str:
        lines = []
        for col in schema.columns:
            line = f"  {quote_ident(col.name)} {col.data_type}"
            if not col.nullable:
                line += " NOT NULL"
            lines.append(line)
        for fk in self.constraints:
            if fk.child_table != schema.name:
                continue
            cols = ", ".join(quote_ident(c) for c in fk.columns)
            parent_cols = ", ".join(quote_ident(c) for c in fk.referenced_columns)
            lines.append(f"  FOREIGN KEY ({cols}) REFERENCES {quote_ident(fk.parent_table)} ({parent_cols})")
        return f"CREATE TABLE {quote_ident(schema.name)} (\n" + ",\n".join(lines) + "\n);"

    def create_table_statements(self) -> List[str]:
        return [self.create_table_statement(self.tables[name]) for name in sorted(self.tables)]

    def unique_indexes(self) -> List[UniqueIndex]:
        distinct = {UniqueIndex(fk.parent_table, fk.referenced_columns) for fk in self.constraints}
        return sorted(distinct, key=lambda idx: (idx.table, idx.columns))

    def synthesize(self) -> Tuple[List[str], List[UniqueIndex]]:
        return self.create_table_statements(), self.unique_indexes()


# --------------------------------------------------------------------------------------
# Row loader
# --------------------------------------------------------------------------------------
def coerce_value(
    raw: str,
    column: ColumnDef,
    table: str,
    sentinel_nulls: Optional[Mapping[Tuple[str, str], str]] = None,
) -> Any:
    """Convert one CSV field for storage. Never fails; it only picks a representation."""
    if raw == "":
        # Present-but-empty stays distinguishable from NULL on NOT NULL columns.
        return None if column.nullable else ""
    sentinels = SENTINEL_NULLS if sentinel_nulls is None else sentinel_nulls
    sentinel = sentinels.get((table, column.name))
    if sentinel is not None and raw == sentinel:
        return None
    if column.data_type == "REAL" and NUMBER_RE.match(raw):
        value = float(raw)
        # Out of range for a double; keep the literal.
        if not math.isinf(value):
            return value
    return raw


class RowLoader:
    """Streams each data file into its table, one transaction per table."""

    def __init__(
        self,
        client: SqliteClient,
        tables: Mapping[str, TableSchema],
        batch_size: Optional[int] = None,
        sentinel_nulls: Optional[Mapping[Tuple[str, str], str]] = None,
    ) -> None:
        self.client = client
        self.tables = tables
        self.batch_size = batch_size or CONFIG["LOAD"]["BATCH_SIZE"]
        self.sentinel_nulls = SENTINEL_NULLS if sentinel_nulls is None else sentinel_nulls

    def load_all(self, streams: Mapping[str, bytes]) -> Dict[str, int]:
        counts: Dict[str, int] = {}
        for name in sorted(streams):
            table_name = table_name_for_stream(name)
            if table_name is None:
                continue
            schema = self.tables.get(table_name)
            if schema is None:
                logger.debug("No schema for data stream %s; skipping", name)
                continue
            counts[table_name] = self.load_table(schema, streams[name], stream=name)
            logger.info("Loaded %d rows into %s", counts[table_name], table_name)
        for table_name in sorted(set(self.tables) - set(counts)):
            logger.info("No data stream for %s; table left empty", table_name)
        return counts

    def coerce_row(self, schema: TableSchema, row: Sequence[str]) -> Tuple[Any, ...]:
        # Short rows are padded with NULL; fields beyond the schema are dropped.
        return tuple(
            coerce_value(row[i], col, schema.name, self.sentinel_nulls) if i < len(row) else None
            for i, col in enumerate(schema.columns)
        )

    def load_table(self, schema: TableSchema, data: bytes, stream: Optional[str] = None) -> int:
        placeholders = ", ".join("?" for _ in schema.columns)
        insert_sql = f"INSERT INTO {quote_ident(schema.name)} VALUES ({placeholders})"
        reader = csv_records(decode_stream(data, stream or schema.name))
        count = 0
        try:
            with self.client.begin() as conn:
                if next(reader, None) is None:
                    return 0
                batch: List[Tuple[Any, ...]] = []
                for row in reader:
                    if not row:
                        continue
                    batch.append(self.coerce_row(schema, row))
                    if len(batch) >= self.batch_size:
                        conn.exec_driver_sql(insert_sql, batch)
                        count += len(batch)
                        batch = []
                if batch:
                    conn.exec_driver_sql(insert_sql, batch)
                    count += len(batch)
        except csv.Error as exc:
            raise DataLoadError(schema.name, f"line {reader.line_num}: {exc}") from exc
        except SQLAlchemyError as exc:
            raise DataLoadError(schema.name, str(exc)) from exc
        return count


# --------------------------------------------------------------------------------------
# Integrity repair
# --------------------------------------------------------------------------------------
def order_constraints(constraints: Iterable[ForeignKeyConstraint]) -> List[ForeignKeyConstraint]:
    """Order relationships so every parent table is repaired before its children.

    Deleting an orphan only affects relationships where its table is the parent,
    and those come later, so one pass in this order leaves no orphans behind.
    """
    constraints = list(constraints)
    graph: Dict[str, set] = {}
    for fk in constraints:
        graph.setdefault(fk.child_table, set()).add(fk.parent_table)
        graph.setdefault(fk.parent_table, set())
    try:
        order = list(TopologicalSorter(graph).static_order())
    except CycleError as exc:
        raise CatalogError(f"relationship catalog has a cycle: {' -> '.join(exc.args[1])}") from exc
    rank = {table: i for i, table in enumerate(order)}
    return sorted(constraints, key=lambda fk: (rank[fk.parent_table], fk.parent_table, fk.child_table, fk.columns))


class IntegrityRepairEngine:
    """Restores unique parent keys and referential integrity by deleting rows.

    Duplicate keys keep the row with the lowest rowid. Orphaned children are
    deleted outright. Each deletion is logged; nothing is ever updated.
    """

    def __init__(self, client: SqliteClient, constraints: Iterable[ForeignKeyConstraint]) -> None:
        self.client = client
        self.constraints = order_constraints(constraints)
        self.indexes_created = 0
        self.duplicates_deleted = 0
        self.orphans_deleted = 0

    def _try_create_index(self, index: UniqueIndex) -> Optional[IntegrityError]:
        try:
            self.client.execute(index.statement)
        except IntegrityError as exc:
            return exc
        except SQLAlchemyError as exc:
            raise IndexRepairError(index, f"create index: {exc}") from exc
        return None

    def create_indexes(self, indexes: Iterable[UniqueIndex]) -> None:
        for index in indexes:
            error = self._try_create_index(index)
            if error is not None:
                logger.warning("Index %s rejected (%s); removing duplicates from %s", index.name, error.orig, index.table)
                self.deduplicate(index)
                error = self._try_create_index(index)
                if error is not None:
                    raise IndexRepairError(index, f"create index after dedup: {error.orig}")
            self.indexes_created += 1
            logger.info("Created unique index %s", index.name)

    def deduplicate(self, index: UniqueIndex) -> int:
        table = quote_ident(index.table)
        cols = ", ".join(quote_ident(c) for c in index.columns)
        # Keys containing NULL never conflict in a unique index.
        not_null = " AND ".join(f"{quote_ident(c)} IS NOT NULL" for c in index.columns)
        group_sql = f"SELECT {cols} FROM {table} WHERE {not_null} GROUP BY {cols} HAVING COUNT(*) > 1"
        match = " AND ".join(f"{quote_ident(c)} = :k{i}" for i, c in enumerate(index.columns))
        rowid_sql = f"SELECT rowid FROM {table} WHERE {match} ORDER BY rowid"
        delete_sql = f"DELETE FROM {table} WHERE rowid = :rowid"

        deleted = 0
        with self.client.begin() as conn:
            keys = conn.execute(text(group_sql)).fetchall()
            for key in keys:
                params = {f"k{i}": value for i, value in enumerate(key)}
                rowids = [r[0] for r in conn.execute(text(rowid_sql), params)]
                if len(rowids) < 2:
                    continue
                kept = rowids[0]
                for rowid in rowids[1:]:
                    logger.warning(
                        "Deleted duplicate row from %s (kept rowid %d, deleted rowid %d, key: %s)",
                        index.table,
                        kept,
                        rowid,
                        format_key(index.columns, key),
                    )
                    conn.execute(text(delete_sql), {"rowid": rowid})
                    deleted += 1
        self.duplicates_deleted += deleted
        return deleted

    @staticmethod
    def _violation_sql(fk: ForeignKeyConstraint) -> str:
        child_cols = ", ".join(f"c.{quote_ident(col)}" for col in fk.columns)
        # A NULL in any key column exempts the row, as with SQL composite keys.
        not_null = " AND ".join(f"c.{quote_ident(col)} IS NOT NULL" for col in fk.columns)
        match = " AND ".join(
            f"p.{quote_ident(pcol)} = c.{quote_ident(col)}" for col, pcol in zip(fk.columns, fk.referenced_columns)
        )
        return (
            f"SELECT c.rowid, {child_cols} FROM {quote_ident(fk.child_table)} AS c"
            f" WHERE {not_null}"
            f" AND NOT EXISTS (SELECT 1 FROM {quote_ident(fk.parent_table)} AS p WHERE {match})"
            f" ORDER BY c.rowid"
        )

    @staticmethod
    def _to_violations(fk: ForeignKeyConstraint, rows: Iterable[Sequence[Any]]) -> List[Violation]:
        return [
            Violation(
                table=fk.child_table,
                rowid=row[0],
                parent_table=fk.parent_table,
                columns=fk.columns,
                key=tuple(row[1:]),
            )
            for row in rows
        ]

    def find_violations(self, fk: ForeignKeyConstraint) -> List[Violation]:
        return self._to_violations(fk, self.client.fetch_all(self._violation_sql(fk)))

    def delete_orphans(self) -> int:
        deleted = 0
        for fk in self.constraints:
            delete_sql = f"DELETE FROM {quote_ident(fk.child_table)} WHERE rowid = :rowid"
            with self.client.begin() as conn:
                violations = self._to_violations(fk, conn.execute(text(self._violation_sql(fk))))
                for v in violations:
                    logger.warning(
                        "Deleted orphan row from %s (rowid %d, missing parent in %s, key: %s)",
                        v.table,
                        v.rowid,
                        v.parent_table,
                        format_key(v.columns, v.key),
                    )
                    conn.execute(text(delete_sql), {"rowid": v.rowid})
            deleted += len(violations)
        self.orphans_deleted += deleted
        return deleted

    def verify(self) -> List[Violation]:
        violations: List[Violation] = []
        for fk in self.constraints:
            violations.extend(self.find_violations(fk))
        return violations

    def repair(self, indexes: Iterable[UniqueIndex]) -> None:
        self.create_indexes(indexes)
        self.delete_orphans()
        remaining = self.verify()
        for v in remaining:
            logger.error(
                "FK violation remaining: table=%s rowid=%d parent=%s key: %s",
                v.table,
                v.rowid,
                v.parent_table,
                format_key(v.columns, v.key),
            )
        if remaining:
            raise IntegrityCheckError(remaining)


# --------------------------------------------------------------------------------------
# Runner
# --------------------------------------------------------------------------------------
def build_database(
    streams: Mapping[str, bytes],
    output_path: Union[str, Path],
    constraints: Optional[Iterable[ForeignKeyConstraint]] = None,
    batch_size: Optional[int] = None,
) -> RunSummary:
    """Build a fresh SQLite database at `output_path` from named CSV streams."""
    output_path = Path(output_path)
    if output_path.exists():
        raise PreconditionError(f"output file already exists: {output_path}")

    metadata = {name: streams[name] for name in streams if is_metadata_stream(name)}
    tables = MetadataParser().parse(metadata)
    if not tables:
        raise ExtractError(f"no table schemas found in {len(metadata)} metadata streams")
    logger.info("Parsed %d table schemas from %d metadata streams", len(tables), len(metadata))

    synthesizer = DDLSynthesizer(tables, load_catalog() if constraints is None else constraints)
    create_tables, indexes = synthesizer.synthesize()

    summary = RunSummary(tables_created=len(create_tables))
    client = SqliteClient(output_path)
    try:
        for stmt in create_tables:
            try:
                client.execute(stmt)
            except SQLAlchemyError as exc:
                raise ExtractError(f"create table: {exc}\n{stmt}") from exc

        summary.rows_loaded = RowLoader(client, tables, batch_size=batch_size).load_all(streams)

        engine = IntegrityRepairEngine(client, synthesizer.constraints)
        try:
            engine.repair(indexes)
        finally:
            summary.indexes_created = engine.indexes_created
            summary.duplicates_deleted = engine.duplicates_deleted
            summary.orphans_deleted = engine.orphans_deleted
    finally:
        client.dispose()
    return summary


def extract(input_path: Union[str, Path], output_path: Union[str, Path], batch_size: Optional[int] = None) -> RunSummary:
    """Build `output_path` from a NASR 28-day subscription zip."""
    input_path, output_path = Path(input_path), Path(output_path)
    if not input_path.exists():
        raise PreconditionError(f"input file does not exist: {input_path}")
    if output_path.exists():
        raise PreconditionError(f"output file already exists: {output_path}")

    try:
        streams = open_subscription(input_path)
    except ArchiveError as exc:
        raise ExtractError(f"open inner CSV zip: {exc}") from exc
    with streams:
        return build_database(streams, output_path, batch_size=batch_size)


def write_summary(path: Path, summary: RunSummary) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    payload = asdict(summary)
    payload["total_rows"] = summary.total_rows
    path.write_text(json.dumps(payload, indent=2, default=str))


def _parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Convert a NASR 28-day subscription zip into a SQLite database.")
    parser.add_argument("subscription", help="Path to the NASR subscription zip")
    parser.add_argument("output", help="Path of the SQLite database to create (must not exist)")
    parser.add_argument(
        "--batch-size",
        type=int,
        default=CONFIG["LOAD"]["BATCH_SIZE"],
        help="Rows per insert batch (default: %(default)s)",
    )
    parser.add_argument("--summary-json", type=Path, help="Write a JSON run summary to this path")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    return parser.parse_args(argv)


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = _parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="[%(levelname)s] %(message)s",
    )
    try:
        summary = extract(args.subscription, args.output, batch_size=args.batch_size)
    except ExtractError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1

    logger.info(
        "Run complete: %d tables, %d rows, %d indexes, %d duplicates deleted, %d orphans deleted",
        summary.tables_created,
        summary.total_rows,
        summary.indexes_created,
        summary.duplicates_deleted,
        summary.orphans_deleted,
    )
    if args.summary_json:
        write_summary(args.summary_json, summary)
    return 0


if __name__ == "__main__":
    sys.exit(main())
