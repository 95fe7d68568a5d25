"""Data access layer for the spirits ledger.

This module provides low-level helpers that read from and write to the
ledger workbook. Business logic belongs elsewhere.

The public API is designed around four responsibilities:

1. Configuration handling: finding and parsing ``config.ini``.
2. Workbook lifecycle: opening, validating, and persisting the Excel file.
3. Sheet operations: loading structured records and locating rows.
4. Write sets: applying a batch of container puts, log appends/deletes,
   product and production batch changes all-or-nothing, guarded by
   per-container compare-and-set.
"""


from __future__ import annotations

import configparser
import os
import tempfile
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from pathlib import Path
from typing import Callable, Iterable, List, Optional, Sequence, Union

from openpyxl.workbook import Workbook
from openpyxl.worksheet.worksheet import Worksheet
import openpyxl

from . import log
from .constants import (
    DEFAULT_UNDO_WINDOW_DAYS,
    ContainerStatus,
    SheetName,
    UndoStrategyName,
)
from .errors import ConflictError, MissingReferenceError, PersistenceError


CONFIG_FILE_NAME = "config.ini"
CONTAINERS_SHEET = SheetName.CONTAINERS.value
PRODUCTS_SHEET = SheetName.PRODUCTS.value
TRANSACTION_LOG_SHEET = SheetName.TRANSACTION_LOG.value
PRODUCTION_BATCHES_SHEET = SheetName.PRODUCTION_BATCHES.value


@dataclass(frozen=True)
class ConfigSettings:
    """Typed representation of the ``config.ini`` settings we care about."""

    data_file: Path
    distillery_name: str
    schema_version: str
    default_account: str
    undo_strategy: str = UndoStrategyName.HARD.value
    undo_window_days: int = DEFAULT_UNDO_WINDOW_DAYS


@dataclass(frozen=True)
class FillRecord:
    """Current contents of a container. Zeroed, never absent, when empty."""

    product_type: str
    proof: Decimal
    fill_date: Optional[date]
    gross_weight_lbs: Decimal
    net_weight_lbs: Decimal
    wine_gallons: Decimal
    proof_gallons: Decimal
    spirit_density: Decimal
    account: str
    emptied_date: Optional[date]


@dataclass(frozen=True)
class ContainerRow:
    """In-memory view of a row from the ``Containers`` sheet."""

    container_id: str
    container_name: str
    container_type: str
    tare_weight_lbs: Decimal
    status: str
    fill: FillRecord
    version: int = 1
    is_active: bool = True

    @property
    def is_empty(self) -> bool:
        return self.status == ContainerStatus.EMPTY.value


@dataclass(frozen=True)
class ProductRow:
    """In-memory view of a row from the ``Products`` sheet."""

    product_id: str
    product_name: str
    description: str


@dataclass(frozen=True)
class ProductionBatchRow:
    """In-memory view of a row from the ``ProductionBatches`` sheet.

    Fermentations fill the gravity and ingredient columns; distillation runs
    fill the yield columns and may name the fermentation they were charged
    from.
    """

    batch_id: str
    batch_name: str
    batch_type: str
    product_type: str
    batch_date: Optional[date]
    volume_gallons: Optional[Decimal] = None
    original_gravity: Optional[Decimal] = None
    final_gravity: Optional[Decimal] = None
    ingredients: Optional[str] = None
    source_batch_id: Optional[str] = None
    yield_proof: Optional[Decimal] = None
    yield_proof_gallons: Optional[Decimal] = None
    destination_container_id: Optional[str] = None
    notes: Optional[str] = None


@dataclass(frozen=True)
class LogEntryRow:
    """In-memory view of a row from the ``TransactionLog`` sheet."""

    entry_id: str
    timestamp_iso: str
    entry_type: str
    container_id: Optional[str]
    container_name: Optional[str]
    product_type: Optional[str]
    proof: Decimal
    net_weight_lbs_change: Decimal
    proof_gallons_change: Decimal
    source_container_id: Optional[str]
    source_container_name: Optional[str]
    destination_container_id: Optional[str]
    destination_container_name: Optional[str]
    linked_entry_id: Optional[str]
    notes: Optional[str]


@dataclass(frozen=True)
class PutContainer:
    """Insert (``expected_version == 0``) or replace a container row."""

    record: ContainerRow
    expected_version: int = 0


@dataclass(frozen=True)
class AppendLogEntry:
    record: LogEntryRow


@dataclass(frozen=True)
class DeleteLogEntry:
    entry_id: str


@dataclass(frozen=True)
class PutProduct:
    """Insert a product or replace the row with the same ``ProductID``."""

    record: ProductRow


@dataclass(frozen=True)
class DeleteProduct:
    product_id: str


@dataclass(frozen=True)
class PutProductionBatch:
    """Insert a batch or replace the row with the same ``BatchID``."""

    record: ProductionBatchRow


@dataclass(frozen=True)
class DeleteProductionBatch:
    batch_id: str


WriteOperation = Union[
    PutContainer,
    AppendLogEntry,
    DeleteLogEntry,
    PutProduct,
    DeleteProduct,
    PutProductionBatch,
    DeleteProductionBatch,
]


class WriteJournal:
    """Undo actions recorded while a write set is applied to a workbook."""

    def __init__(self) -> None:
        self._undo_actions: List[Callable[[], None]] = []

    def __len__(self) -> int:
        return len(self._undo_actions)

    def record(self, action: Callable[[], None]) -> None:
        self._undo_actions.append(action)

    def rollback(self) -> None:
        """Undo every recorded change, most recent first."""
        count = len(self._undo_actions)
        while self._undo_actions:
            action = self._undo_actions.pop()
            action()
        log.warning("Rolled back %d workbook change(s)", count)


def find_config_file(explicit_path: Optional[Path] = None) -> Path:
    """Locate the configuration file that controls how the data layer behaves.

    If the caller provides ``explicit_path`` the value is returned immediately
    without any verification. Otherwise the function walks up from the
    current working directory toward the filesystem root looking for a file
    named ``CONFIG_FILE_NAME``; the first match wins.

    Args:
        explicit_path (Path | None): Optional path to use instead of performing
            the upward search.

    Returns:
        Path: The path provided by the caller or the discovered configuration
            file.

    Raises:
        FileNotFoundError: If no parent directory holds ``CONFIG_FILE_NAME``.
    """

    if explicit_path:
        return explicit_path

    current = Path.cwd()
    for p in (current, *current.parents):
        candidate = p / CONFIG_FILE_NAME
        if candidate.exists():
            return candidate

    raise FileNotFoundError(
        f"Configuration file not found: {CONFIG_FILE_NAME}")


def read_config(config_path: Path) -> configparser.ConfigParser:
    """Load ``config.ini`` and return a populated ``ConfigParser`` instance.

    Args:
        config_path (Path): Path to the configuration file, relative or
            absolute. ``~`` is expanded.

    Returns:
        configparser.ConfigParser: Parser containing the raw configuration.

    Raises:
        FileNotFoundError: If ``config_path`` does not exist.
    """

    config_path = config_path.expanduser().resolve()
    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    parser = configparser.ConfigParser(inline_comment_prefixes=(";", "#"))
    parser.read(config_path)
    return parser


def parse_settings(parser: configparser.ConfigParser, *, base_path: Optional[Path] = None) -> ConfigSettings:
    """Convert a ``ConfigParser`` into strongly typed :class:`ConfigSettings`.

    ``[System]`` and ``[Defaults]`` entries are mandatory. The ``[Undo]``
    section is optional and falls back to the hard strategy with a 30 day
    window. Relative ``DataFile`` paths are anchored at ``base_path`` (the
    config file's directory) or the working directory.

    Args:
        parser (configparser.ConfigParser): Parsed configuration data.
        base_path (Path | None): Anchor for relative ``DataFile`` entries.

    Returns:
        ConfigSettings: Immutable settings with a resolved data file path.

    Raises:
        KeyError: If a required section or option is missing.
        ValueError: If the undo strategy or window is malformed.
    """

    try:
        data_file_raw = parser.get("System", "DataFile")
        distillery_name = parser.get("System", "DistilleryName")
        schema_version = parser.get("System", "SchemaVersion")
        default_account = parser.get("Defaults", "Account")
    except (configparser.NoSectionError, configparser.NoOptionError) as exc:
        raise KeyError(f"Missing required configuration entry: {exc}") from exc

    strategy = parser.get("Undo", "Strategy", fallback=UndoStrategyName.HARD.value).strip().lower()
    try:
        UndoStrategyName(strategy)
    except ValueError as exc:
        raise ValueError(f"Unsupported undo strategy in configuration: {strategy}") from exc
    window_days = parser.getint("Undo", "WindowDays", fallback=DEFAULT_UNDO_WINDOW_DAYS)
    if window_days < 0:
        raise ValueError("Undo window must be zero or positive")

    data_file_path = Path(data_file_raw)
    if not data_file_path.is_absolute():
        if base_path is None:
            base_path = Path.cwd()
        data_file_path = (base_path / data_file_path).resolve()

    return ConfigSettings(
        data_file=data_file_path,
        distillery_name=distillery_name,
        schema_version=schema_version,
        default_account=default_account.strip().lower(),
        undo_strategy=strategy,
        undo_window_days=window_days,
    )


def open_workbook(data_file: Path) -> Workbook:
    """Open the ledger workbook and return a live ``openpyxl`` workbook.

    Raises:
        FileNotFoundError: If ``data_file`` does not exist.
    """

    data_file = Path(data_file).expanduser().resolve()
    if not data_file.exists():
        raise FileNotFoundError(f"Workbook not found: {data_file}")

    wb = openpyxl.load_workbook(data_file)
    return wb


def save_workbook(workbook: Workbook, destination: Path) -> None:
    """Persist the workbook to disk without ever leaving a partial file.

    The workbook is written to a temporary sibling of ``destination`` which
    then replaces the target in one rename. Parent directories are created on
    demand.

    Args:
        workbook (Workbook): Workbook instance to persist.
        destination (Path): Filesystem path that should receive the workbook.

    Raises:
        OSError: If the temporary file cannot be written or moved into place.
    """

    dest = Path(destination).expanduser().resolve()
    dest.parent.mkdir(parents=True, exist_ok=True)
    fd, temp_name = tempfile.mkstemp(prefix=f".{dest.stem}-", suffix=dest.suffix, dir=dest.parent)
    os.close(fd)
    temp_path = Path(temp_name)
    try:
        workbook.save(temp_path)
        os.replace(temp_path, dest)
    except Exception:
        temp_path.unlink(missing_ok=True)
        raise


def refresh_workbook(data_file: Path) -> Workbook:
    """Reload the workbook from disk, discarding any unsaved in-memory changes."""

    return open_workbook(data_file)


def _iter_sheet(workbook: Workbook, sheet_name: str) -> Iterable[Sequence[object]]:
    sheet = workbook[sheet_name]
    for raw in sheet.iter_rows(min_row=2, values_only=True):
        # skip fully empty rows
        if any(cell is not None for cell in raw):
            yield raw


def iter_containers(workbook: Workbook) -> Iterable[ContainerRow]:
    """Iterate over container records stored on the ``Containers`` worksheet.

    Yields:
        ContainerRow: One structured row per populated worksheet row,
            including retired (inactive) containers.
    """

    for raw in _iter_sheet(workbook, CONTAINERS_SHEET):
        yield deserialize_container(raw)


def iter_products(workbook: Workbook) -> Iterable[ProductRow]:
    """Iterate over product records stored on the ``Products`` worksheet."""

    for raw in _iter_sheet(workbook, PRODUCTS_SHEET):
        yield deserialize_product(raw)


def iter_log_entries(workbook: Workbook) -> Iterable[LogEntryRow]:
    """Stream log entries from the ``TransactionLog`` worksheet in sheet order.

    Numeric deltas become :class:`~decimal.Decimal` instances and optional
    text columns stay ``None`` when blank.
    """

    for raw in _iter_sheet(workbook, TRANSACTION_LOG_SHEET):
        yield deserialize_log_entry(raw)


def iter_production_batches(workbook: Workbook) -> Iterable[ProductionBatchRow]:
    """Iterate over batch records stored on the ``ProductionBatches`` worksheet."""

    for raw in _iter_sheet(workbook, PRODUCTION_BATCHES_SHEET):
        yield deserialize_production_batch(raw)


def append_product(workbook: Workbook, record: ProductRow) -> None:
    """Append a product record to the ``Products`` worksheet.

    Used when seeding a fresh workbook; runtime changes go through
    :func:`apply_write_set`.
    """

    sheet = workbook[PRODUCTS_SHEET]
    sheet.append(serialize_product(record))


def _header_map(sheet: Worksheet) -> dict[str, int]:
    return {cell.value: idx + 1 for idx, cell in enumerate(sheet[1]) if cell.value is not None}


def locate_row(workbook: Workbook, sheet_name: str, key_column: str, key_value: str) -> Optional[int]:
    """Find a row by matching a key value within the specified worksheet.

    Args:
        workbook (Workbook): Workbook providing access to ``sheet_name``.
        sheet_name (str): Name of the worksheet to search.
        key_column (str): Header title of the column holding the lookup key.
        key_value (str): Value to match within the key column.

    Returns:
        int | None: 1-based Excel row index when a match is found, otherwise
            ``None``.

    Raises:
        KeyError: If ``key_column`` is not present in the worksheet header.
    """

    sheet = workbook[sheet_name]
    header_map = _header_map(sheet)
    if key_column not in header_map:
        raise KeyError(f"Unknown column: {key_column}")

    key_col_index = header_map[key_column]

    for row_idx, row in enumerate(sheet.iter_rows(min_row=2, values_only=True), start=2):
        cell_value = row[key_col_index - 1]
        if cell_value is not None and str(cell_value) == key_value:
            return row_idx

    return None


def read_container_version(workbook: Workbook, container_id: str) -> Optional[int]:
    """Return the stored version of a container, or ``None`` if it is unknown."""

    row_index = locate_row(workbook, CONTAINERS_SHEET, "ContainerID", container_id)
    if row_index is None:
        return None
    sheet = workbook[CONTAINERS_SHEET]
    raw = sheet.cell(row=row_index, column=_header_map(sheet)["Version"]).value
    return _to_int(raw, default=1)


def _row_values(sheet: Worksheet, row_index: int) -> list[object]:
    return [cell.value for cell in sheet[row_index]]


def _write_row(sheet: Worksheet, row_index: int, values: Sequence[object]) -> None:
    for column, value in enumerate(values, start=1):
        sheet.cell(row=row_index, column=column, value=value)


def _append_row(sheet: Worksheet, values: Sequence[object], journal: WriteJournal) -> None:
    sheet.append(list(values))
    row_index = sheet.max_row
    journal.record(lambda: sheet.delete_rows(row_index))


def _replace_row(sheet: Worksheet, row_index: int, values: Sequence[object], journal: WriteJournal) -> None:
    previous = _row_values(sheet, row_index)
    _write_row(sheet, row_index, values)
    journal.record(lambda: _write_row(sheet, row_index, previous))


def _delete_row(sheet: Worksheet, row_index: int, journal: WriteJournal) -> None:
    previous = _row_values(sheet, row_index)
    sheet.delete_rows(row_index)

    def restore() -> None:
        sheet.insert_rows(row_index)
        _write_row(sheet, row_index, previous)

    journal.record(restore)


def validate_write_set(workbook: Workbook, operations: Sequence[WriteOperation]) -> None:
    """Check every operation against the workbook without changing it.

    Raises:
        ConflictError: If a container put carries a stale version, or an
            insert targets an id that already exists.
        MissingReferenceError: If a replaced container or a deleted log
            entry/product does not exist.
        TypeError: If an operation is not a supported write operation.
    """

    for operation in operations:
        if isinstance(operation, PutContainer):
            container_id = operation.record.container_id
            stored = read_container_version(workbook, container_id)
            if operation.expected_version == 0:
                if stored is not None:
                    log.warning("Refusing to insert duplicate container id '%s'", container_id)
                    raise ConflictError(container_id, 0, stored)
                continue
            if stored is None:
                log.warning("Container '%s' vanished before commit", container_id)
                raise MissingReferenceError(f"Unknown container id: {container_id}")
            if stored != operation.expected_version:
                log.warning(
                    "Version conflict on container '%s': expected %s, stored %s",
                    container_id,
                    operation.expected_version,
                    stored,
                )
                raise ConflictError(container_id, operation.expected_version, stored)
        elif isinstance(operation, DeleteLogEntry):
            if locate_row(workbook, TRANSACTION_LOG_SHEET, "EntryID", operation.entry_id) is None:
                raise MissingReferenceError(f"Unknown log entry id: {operation.entry_id}")
        elif isinstance(operation, DeleteProduct):
            if locate_row(workbook, PRODUCTS_SHEET, "ProductID", operation.product_id) is None:
                raise MissingReferenceError(f"Unknown product id: {operation.product_id}")
        elif isinstance(operation, DeleteProductionBatch):
            if locate_row(workbook, PRODUCTION_BATCHES_SHEET, "BatchID", operation.batch_id) is None:
                raise MissingReferenceError(f"Unknown production batch id: {operation.batch_id}")
        elif not isinstance(operation, (AppendLogEntry, PutProduct, PutProductionBatch)):
            raise TypeError(f"Unsupported write operation: {operation!r}")


def _apply_operation(workbook: Workbook, operation: WriteOperation, journal: WriteJournal) -> None:
    if isinstance(operation, PutContainer):
        sheet = workbook[CONTAINERS_SHEET]
        values = serialize_container(operation.record)
        row_index = locate_row(workbook, CONTAINERS_SHEET, "ContainerID", operation.record.container_id)
        if row_index is None:
            _append_row(sheet, values, journal)
        else:
            _replace_row(sheet, row_index, values, journal)
    elif isinstance(operation, AppendLogEntry):
        _append_row(workbook[TRANSACTION_LOG_SHEET], serialize_log_entry(operation.record), journal)
    elif isinstance(operation, DeleteLogEntry):
        row_index = locate_row(workbook, TRANSACTION_LOG_SHEET, "EntryID", operation.entry_id)
        if row_index is None:
            raise MissingReferenceError(f"Unknown log entry id: {operation.entry_id}")
        _delete_row(workbook[TRANSACTION_LOG_SHEET], row_index, journal)
    elif isinstance(operation, PutProduct):
        sheet = workbook[PRODUCTS_SHEET]
        values = serialize_product(operation.record)
        row_index = locate_row(workbook, PRODUCTS_SHEET, "ProductID", operation.record.product_id)
        if row_index is None:
            _append_row(sheet, values, journal)
        else:
            _replace_row(sheet, row_index, values, journal)
    elif isinstance(operation, DeleteProduct):
        row_index = locate_row(workbook, PRODUCTS_SHEET, "ProductID", operation.product_id)
        if row_index is None:
            raise MissingReferenceError(f"Unknown product id: {operation.product_id}")
        _delete_row(workbook[PRODUCTS_SHEET], row_index, journal)
    elif isinstance(operation, PutProductionBatch):
        sheet = workbook[PRODUCTION_BATCHES_SHEET]
        values = serialize_production_batch(operation.record)
        row_index = locate_row(workbook, PRODUCTION_BATCHES_SHEET, "BatchID", operation.record.batch_id)
        if row_index is None:
            _append_row(sheet, values, journal)
        else:
            _replace_row(sheet, row_index, values, journal)
    elif isinstance(operation, DeleteProductionBatch):
        row_index = locate_row(workbook, PRODUCTION_BATCHES_SHEET, "BatchID", operation.batch_id)
        if row_index is None:
            raise MissingReferenceError(f"Unknown production batch id: {operation.batch_id}")
        _delete_row(workbook[PRODUCTION_BATCHES_SHEET], row_index, journal)


def apply_write_set(workbook: Workbook, operations: Sequence[WriteOperation]) -> WriteJournal:
    """Apply a batch of write operations to the in-memory workbook atomically.

    Every operation is validated before any is applied, so compare-and-set
    failures leave the workbook untouched. If applying fails part-way the
    changes made so far are rolled back before the error surfaces.

    Args:
        workbook (Workbook): Workbook to mutate.
        operations (Sequence[WriteOperation]): Operations in application order.

    Returns:
        WriteJournal: Journal that can undo the applied operations, for
            callers that must roll back after a failed save.

    Raises:
        ConflictError: On a stale container version.
        MissingReferenceError: When a referenced row does not exist.
        PersistenceError: When applying an operation fails unexpectedly.
    """

    validate_write_set(workbook, operations)

    journal = WriteJournal()
    try:
        for operation in operations:
            _apply_operation(workbook, operation, journal)
    except Exception as exc:
        log.error("Write set failed after %d change(s): %s", len(journal), exc)
        journal.rollback()
        raise PersistenceError(f"Failed to apply write set: {exc}") from exc

    log.debug("Applied write set with %d operation(s)", len(operations))
    return journal


def _format_date(value: Optional[date]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _parse_date(raw: object) -> Optional[date]:
    if raw is None or raw == "":
        return None
    if isinstance(raw, datetime):
        return raw.date()
    if isinstance(raw, date):
        return raw
    return date.fromisoformat(str(raw)[:10])


def _to_decimal(raw: object, default: str = "0") -> Decimal:
    return Decimal(str(raw)) if raw is not None and raw != "" else Decimal(default)


def _to_optional_decimal(raw: object) -> Optional[Decimal]:
    return Decimal(str(raw)) if raw is not None and raw != "" else None


def _to_int(raw: object, *, default: int) -> int:
    return int(raw) if raw is not None and raw != "" else default


def _to_optional_str(raw: object) -> Optional[str]:
    return str(raw) if raw is not None and raw != "" else None


def _to_bool(raw: object) -> bool:
    if isinstance(raw, str):
        return raw.strip().lower() in {"true", "1", "yes"}
    return bool(raw)


def serialize_container(record: ContainerRow) -> list[object]:
    """Convert a container dataclass into the worksheet column ordering."""

    fill = record.fill
    return [
        record.container_id,
        record.container_name,
        record.container_type,
        record.tare_weight_lbs,
        record.status,
        fill.product_type,
        fill.proof,
        _format_date(fill.fill_date),
        fill.gross_weight_lbs,
        fill.net_weight_lbs,
        fill.wine_gallons,
        fill.proof_gallons,
        fill.spirit_density,
        fill.account,
        _format_date(fill.emptied_date),
        record.version,
        record.is_active,
    ]


def serialize_product(record: ProductRow) -> list[object]:
    """Convert a product dataclass into ``[ProductID, ProductName, Description]``."""

    return [record.product_id, record.product_name, record.description]


def serialize_log_entry(record: LogEntryRow) -> list[object]:
    """Convert a log entry dataclass into the transaction log column order."""

    return [
        record.entry_id,
        record.timestamp_iso,
        record.entry_type,
        record.container_id,
        record.container_name,
        record.product_type,
        record.proof,
        record.net_weight_lbs_change,
        record.proof_gallons_change,
        record.source_container_id,
        record.source_container_name,
        record.destination_container_id,
        record.destination_container_name,
        record.linked_entry_id,
        record.notes,
    ]


def serialize_production_batch(record: ProductionBatchRow) -> list[object]:
    return [
        record.batch_id,
        record.batch_name,
        record.batch_type,
        record.product_type,
        _format_date(record.batch_date),
        record.volume_gallons,
        record.original_gravity,
        record.final_gravity,
        record.ingredients,
        record.source_batch_id,
        record.yield_proof,
        record.yield_proof_gallons,
        record.destination_container_id,
        record.notes,
    ]


def deserialize_container(raw_row: Sequence[object]) -> ContainerRow:
    """Convert a raw worksheet row into a strongly typed container record.

    Numeric cells come back from Excel as floats and are normalized through
    ``str`` into :class:`~decimal.Decimal`; dates are stored as ISO strings.
    """

    values = list(raw_row) + [None] * (17 - len(raw_row))
    (
        container_id,
        container_name,
        container_type,
        tare_raw,
        status,
        product_type,
        proof_raw,
        fill_date_raw,
        gross_raw,
        net_raw,
        wine_gallons_raw,
        proof_gallons_raw,
        density_raw,
        account,
        emptied_raw,
        version_raw,
        is_active_raw,
    ) = values[:17]

    fill = FillRecord(
        product_type=str(product_type) if product_type is not None else "",
        proof=_to_decimal(proof_raw),
        fill_date=_parse_date(fill_date_raw),
        gross_weight_lbs=_to_decimal(gross_raw),
        net_weight_lbs=_to_decimal(net_raw),
        wine_gallons=_to_decimal(wine_gallons_raw),
        proof_gallons=_to_decimal(proof_gallons_raw),
        spirit_density=_to_decimal(density_raw),
        account=str(account) if account is not None else "",
        emptied_date=_parse_date(emptied_raw),
    )
    return ContainerRow(
        container_id=str(container_id),
        container_name=str(container_name) if container_name is not None else "",
        container_type=str(container_type) if container_type is not None else "",
        tare_weight_lbs=_to_decimal(tare_raw),
        status=str(status) if status is not None else ContainerStatus.EMPTY.value,
        fill=fill,
        version=_to_int(version_raw, default=1),
        is_active=True if is_active_raw is None else _to_bool(is_active_raw),
    )


def deserialize_product(raw_row: Sequence[object]) -> ProductRow:
    """Convert a raw worksheet row into a strongly typed product record."""

    product_id, product_name, description = (list(raw_row) + [None, None, None])[:3]
    return ProductRow(
        product_id=str(product_id),
        product_name=str(product_name) if product_name is not None else "",
        description=str(description) if description is not None else "",
    )


def deserialize_log_entry(raw_row: Sequence[object]) -> LogEntryRow:
    """Convert a raw worksheet row into a strongly typed log entry."""

    (
        entry_id,
        timestamp_iso,
        entry_type,
        container_id,
        container_name,
        product_type,
        proof_raw,
        net_change_raw,
        pg_change_raw,
        source_id,
        source_name,
        destination_id,
        destination_name,
        linked_entry_id,
        notes,
    ) = (list(raw_row) + [None] * 15)[:15]

    return LogEntryRow(
        entry_id=str(entry_id),
        timestamp_iso=str(timestamp_iso) if timestamp_iso is not None else "",
        entry_type=str(entry_type) if entry_type is not None else "",
        container_id=_to_optional_str(container_id),
        container_name=_to_optional_str(container_name),
        product_type=_to_optional_str(product_type),
        proof=_to_decimal(proof_raw),
        net_weight_lbs_change=_to_decimal(net_change_raw),
        proof_gallons_change=_to_decimal(pg_change_raw),
        source_container_id=_to_optional_str(source_id),
        source_container_name=_to_optional_str(source_name),
        destination_container_id=_to_optional_str(destination_id),
        destination_container_name=_to_optional_str(destination_name),
        linked_entry_id=_to_optional_str(linked_entry_id),
        notes=_to_optional_str(notes),
    )


def deserialize_production_batch(raw_row: Sequence[object]) -> ProductionBatchRow:
    """Convert a raw worksheet row into a production batch record."""

    (
        batch_id,
        batch_name,
        batch_type,
        product_type,
        batch_date_raw,
        volume_raw,
        og_raw,
        fg_raw,
        ingredients,
        source_batch_id,
        yield_proof_raw,
        yield_pg_raw,
        destination_id,
        notes,
    ) = (list(raw_row) + [None] * 14)[:14]

    return ProductionBatchRow(
        batch_id=str(batch_id),
        batch_name=str(batch_name) if batch_name is not None else "",
        batch_type=str(batch_type) if batch_type is not None else "",
        product_type=str(product_type) if product_type is not None else "",
        batch_date=_parse_date(batch_date_raw),
        volume_gallons=_to_optional_decimal(volume_raw),
        original_gravity=_to_optional_decimal(og_raw),
        final_gravity=_to_optional_decimal(fg_raw),
        ingredients=_to_optional_str(ingredients),
        source_batch_id=_to_optional_str(source_batch_id),
        yield_proof=_to_optional_decimal(yield_proof_raw),
        yield_proof_gallons=_to_optional_decimal(yield_pg_raw),
        destination_container_id=_to_optional_str(destination_id),
        notes=_to_optional_str(notes),
    )
