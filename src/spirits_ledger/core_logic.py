"""Business logic layer for the spirits ledger.

This module contains the orchestrators that move spirit between containers
and keep the ``TransactionLog`` in step with the container snapshots. It
consumes the Data Access Layer (DAL) for all I/O and the pure conversion and
ledger modules for the arithmetic.

Every write follows the same shape: read the current snapshots from cache,
validate, compute the new snapshots, then commit one write set holding the
container puts and log entries together. Nothing is written when validation
fails, and a failed save rolls the in-memory workbook back.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field, replace
from datetime import UTC, date, datetime
from decimal import ROUND_HALF_UP, Decimal
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

from openpyxl.workbook import Workbook

from . import data_manager, ledger, log
from . import transaction_log as tlog
from .constants import (
    BOTTLING_TOLERANCE_GALLONS,
    EMPTY_TOLERANCE,
    EXPECTED_SCHEMA_VERSION,
    MAX_PROOF,
    Account,
    AdjustmentDirection,
    BatchType,
    ContainerStatus,
    ContainerType,
    LogEntryType,
    RemainderAction,
)
from .conversions import (
    GrossWeight,
    NetWeight,
    Number,
    ProofGallons,
    QuantityInput,
    WineGallons,
    density_of,
    from_weight,
    round_volume,
    round_weight,
    to_decimal,
    wine_gallons_for_bottles,
)
from .data_manager import ContainerRow, LogEntryRow, ProductionBatchRow, ProductRow
from .errors import MissingReferenceError, PersistenceError, ValidationError


CONSISTENCY_TOLERANCE = Decimal("0.01")
QUANTITY_TYPES = (NetWeight, GrossWeight, WineGallons, ProofGallons)


@dataclass(frozen=True)
class RuntimeContext:
    """Container for configuration and workbook references used by the BLL."""

    settings: data_manager.ConfigSettings
    workbook: Workbook
    _cache: Dict[str, Dict[str, Any]] = field(default_factory=dict, repr=False, compare=False)


@dataclass(frozen=True)
class FillSpec:
    """A fill expressed in exactly one unit, at an observed proof.

    When ``temperature`` is given the proof is treated as a hydrometer
    reading and corrected to true proof once, before anything is derived.
    """

    quantity: QuantityInput
    proof: Decimal
    product_type: str
    account: Optional[str] = None
    temperature: Optional[Decimal] = None
    fill_date: Optional[date] = None


@dataclass(frozen=True)
class AddContainerCommand:
    """User intent for registering a new container, optionally filled."""

    name: str
    container_type: str
    tare_weight_lbs: Decimal
    fill: Optional[FillSpec] = None
    timestamp: Optional[datetime] = None
    notes: Optional[str] = None


@dataclass(frozen=True)
class ImportContainersCommand:
    containers: Sequence[AddContainerCommand]
    timestamp: Optional[datetime] = None


@dataclass(frozen=True)
class UpdateContainerCommand:
    """Changes to a container's identity fields; ``None`` leaves a field as is."""

    container_id: str
    name: Optional[str] = None
    container_type: Optional[str] = None
    tare_weight_lbs: Optional[Decimal] = None


@dataclass(frozen=True)
class RefillCommand:
    container_id: str
    fill: FillSpec
    timestamp: Optional[datetime] = None
    notes: Optional[str] = None


@dataclass(frozen=True)
class EditFillCommand:
    """Replace a container's fill with freshly measured values."""

    container_id: str
    fill: FillSpec
    timestamp: Optional[datetime] = None
    notes: Optional[str] = None


@dataclass(frozen=True)
class TransferCommand:
    """Move a quantity from a filled source into another container."""

    source_id: str
    destination_id: str
    quantity: QuantityInput
    timestamp: Optional[datetime] = None
    notes: Optional[str] = None


@dataclass(frozen=True)
class BottleCommand:
    """Bottle spirit out of a container.

    ``remainder_action`` only matters when fewer gallons are bottled than
    the container holds. With :attr:`RemainderAction.ADJUST` the operator
    supplies the measured loss or gain in wine gallons.
    """

    container_id: str
    bottle_count: int
    bottle_size_ml: Decimal
    remainder_action: RemainderAction = RemainderAction.KEEP
    adjustment_wine_gallons: Optional[Decimal] = None
    adjustment_direction: AdjustmentDirection = AdjustmentDirection.REMOVE
    timestamp: Optional[datetime] = None
    notes: Optional[str] = None


@dataclass(frozen=True)
class ProofDownCommand:
    container_id: str
    target_proof: Decimal
    timestamp: Optional[datetime] = None
    notes: Optional[str] = None


@dataclass(frozen=True)
class AdjustContentsCommand:
    """Sample removal or manual addition at the container's current proof."""

    container_id: str
    quantity: QuantityInput
    direction: AdjustmentDirection = AdjustmentDirection.REMOVE
    timestamp: Optional[datetime] = None
    notes: Optional[str] = None


@dataclass(frozen=True)
class ChangeAccountCommand:
    container_id: str
    account: str
    timestamp: Optional[datetime] = None


@dataclass(frozen=True)
class DeleteContainerCommand:
    container_id: str
    timestamp: Optional[datetime] = None
    notes: Optional[str] = None


@dataclass(frozen=True)
class ProductionCommand:
    """Start of a fermentation batch; it does not touch any container."""

    batch_name: str
    product_type: str
    start_volume_gallons: Decimal
    original_gravity: Optional[Decimal] = None
    final_gravity: Optional[Decimal] = None
    ingredients: Optional[str] = None
    batch_date: Optional[date] = None
    timestamp: Optional[datetime] = None
    notes: Optional[str] = None


@dataclass(frozen=True)
class EditProductionBatchCommand:
    """Corrections to a stored batch; ``None`` leaves a field as is.

    Only fermentations take product, volume, gravity and ingredient changes.
    A distillation's yield lives in its destination container and is fixed.
    """

    batch_id: str
    batch_name: Optional[str] = None
    batch_date: Optional[date] = None
    product_type: Optional[str] = None
    volume_gallons: Optional[Decimal] = None
    original_gravity: Optional[Decimal] = None
    final_gravity: Optional[Decimal] = None
    ingredients: Optional[str] = None
    notes: Optional[str] = None


@dataclass(frozen=True)
class DeleteProductionBatchCommand:
    batch_id: str
    timestamp: Optional[datetime] = None
    notes: Optional[str] = None


@dataclass(frozen=True)
class DistillationCommand:
    """Finish a distillation run into an empty destination container.

    The yield lands in ``account``, storage unless stated otherwise. When
    ``charge_source_id`` is set the charge is pulled from that filled
    container in the same write set.
    """

    batch_name: str
    product_type: str
    destination_id: str
    yield_quantity: QuantityInput
    yield_proof: Decimal
    temperature: Optional[Decimal] = None
    account: Optional[str] = None
    charge_source_id: Optional[str] = None
    charge_quantity: Optional[QuantityInput] = None
    source_batch_id: Optional[str] = None
    timestamp: Optional[datetime] = None
    notes: Optional[str] = None


@dataclass(frozen=True)
class OperationResult:
    """Committed container snapshots and log entries of one operation."""

    containers: Tuple[ContainerRow, ...] = ()
    entries: Tuple[LogEntryRow, ...] = ()
    batch: Optional[ProductionBatchRow] = None

    @property
    def container(self) -> Optional[ContainerRow]:
        return self.containers[0] if self.containers else None


@dataclass(frozen=True)
class BatchResult:
    """A stored production batch and the log entry written with it."""

    batch: ProductionBatchRow
    entry: LogEntryRow


@dataclass(frozen=True)
class SummaryLine:
    containers: int
    wine_gallons: Decimal
    proof_gallons: Decimal


@dataclass(frozen=True)
class InventorySummary:
    """Totals of filled, active containers grouped by product and by account."""

    by_product: Dict[str, SummaryLine]
    by_account: Dict[str, SummaryLine]
    total: SummaryLine


@dataclass(frozen=True)
class ConsistencyIssue:
    """A container whose snapshot disagrees with the sum of its log deltas."""

    container_id: str
    container_name: str
    snapshot_net_weight_lbs: Decimal
    logged_net_weight_lbs: Decimal
    snapshot_proof_gallons: Decimal
    logged_proof_gallons: Decimal

    @property
    def net_weight_drift(self) -> Decimal:
        return self.snapshot_net_weight_lbs - self.logged_net_weight_lbs

    @property
    def proof_gallons_drift(self) -> Decimal:
        return self.snapshot_proof_gallons - self.logged_proof_gallons


def _resolve_timestamp(candidate: Optional[datetime]) -> datetime:
    """Return ``candidate`` or the current UTC time when it is ``None``."""

    return candidate if candidate is not None else datetime.now(UTC)


def _get_cache_bucket(context: RuntimeContext, name: str) -> Dict[str, Any]:
    """Return a mutable cache bucket dedicated to the supplied name.

    Buckets are keyed by domain area (containers, products, log, batches)
    and hold precomputed query results so repeated reads do not re-scan the
    workbook.
    """

    bucket = context._cache.get(name)
    if bucket is None:
        log.debug("Initializing cache bucket '%s'", name)
        bucket = {}
        context._cache[name] = bucket
    return bucket


def _invalidate_cache(context: RuntimeContext, *names: str) -> None:
    """Evict one or more cache buckets after mutating workbook state."""

    if not names:
        return

    log.debug("Invalidating cache buckets: %s", ", ".join(names))

    for name in names:
        context._cache.pop(name, None)


def _ensure_containers_cache(context: RuntimeContext) -> Dict[str, Any]:
    """Populate the container cache bucket on demand.

    Returns:
        dict[str, Any]: Bucket with ``all`` containers, ``active``
            containers and a ``by_id`` lookup.
    """

    bucket = _get_cache_bucket(context, "containers")
    if "all" not in bucket:
        all_containers = list(data_manager.iter_containers(context.workbook))
        bucket["all"] = all_containers
        bucket["active"] = [container for container in all_containers if container.is_active]
        bucket["by_id"] = {container.container_id: container for container in all_containers}
        log.debug(
            "Populated containers cache with %d entries (%d active)",
            len(all_containers),
            len(bucket["active"]),
        )
    return bucket


def _ensure_products_cache(context: RuntimeContext) -> Dict[str, Any]:
    bucket = _get_cache_bucket(context, "products")
    if "all" not in bucket:
        all_products = list(data_manager.iter_products(context.workbook))
        bucket["all"] = all_products
        bucket["by_id"] = {product.product_id: product for product in all_products}
        bucket["by_name"] = {product.product_name.casefold(): product for product in all_products}
        log.debug("Populated products cache with %d entries", len(all_products))
    return bucket


def _ensure_log_cache(context: RuntimeContext) -> Dict[str, Any]:
    """Populate the transaction log cache bucket on demand.

    Returns:
        dict[str, Any]: Bucket with ``all`` entries in sheet order and a
            ``by_id`` lookup.
    """

    bucket = _get_cache_bucket(context, "log")
    if "all" not in bucket:
        all_entries = list(data_manager.iter_log_entries(context.workbook))
        bucket["all"] = all_entries
        bucket["by_id"] = {entry.entry_id: entry for entry in all_entries}
        log.debug("Populated log cache with %d entries", len(all_entries))
    return bucket


def _ensure_batches_cache(context: RuntimeContext) -> Dict[str, Any]:
    bucket = _get_cache_bucket(context, "batches")
    if "all" not in bucket:
        all_batches = list(data_manager.iter_production_batches(context.workbook))
        bucket["all"] = all_batches
        bucket["by_id"] = {batch.batch_id: batch for batch in all_batches}
        log.debug("Populated batches cache with %d entries", len(all_batches))
    return bucket


def load_runtime_context(config_path: Optional[Path] = None) -> RuntimeContext:
    """Load configuration settings and a live workbook for the BLL.

    Args:
        config_path (Path | None): Optional override path for the configuration
            file. When omitted the data layer searches upward from the
            current working directory.

    Returns:
        RuntimeContext: Fully populated context ready for orchestration
            functions.

    Raises:
        FileNotFoundError: If the configuration file or workbook cannot be
            located.
        KeyError: When mandatory configuration options are missing.
    """
    located_config = data_manager.find_config_file(config_path)
    resolved_config = Path(located_config).expanduser().resolve()
    parser = data_manager.read_config(resolved_config)
    settings = data_manager.parse_settings(parser, base_path=resolved_config.parent)
    workbook = data_manager.open_workbook(settings.data_file)
    log.info("Loaded runtime context for workbook '%s'", settings.data_file)
    return RuntimeContext(settings=settings, workbook=workbook)


def ensure_schema_version(context: RuntimeContext) -> None:
    """Validate workbook compatibility before mutating state.

    Raises:
        RuntimeError: If the schema version declared in the configuration does
            not match ``EXPECTED_SCHEMA_VERSION``.
    """
    if context.settings.schema_version != EXPECTED_SCHEMA_VERSION:
        log.error(
            "Workbook schema mismatch: expected %s, found %s",
            EXPECTED_SCHEMA_VERSION,
            context.settings.schema_version,
        )
        raise RuntimeError(
            "Workbook schema mismatch: expected %s, found %s"
            % (EXPECTED_SCHEMA_VERSION, context.settings.schema_version)
        )

    log.debug("Schema version '%s' validated", context.settings.schema_version)


def persist_context(context: RuntimeContext) -> None:
    """Persist in-memory workbook changes to the configured data file."""
    data_manager.save_workbook(
        context.workbook,
        destination=context.settings.data_file,
    )
    log.info("Persisted workbook '%s'", context.settings.data_file)


def refresh_context(context: RuntimeContext) -> RuntimeContext:
    """Reload the workbook to discard unsaved modifications.

    Returns:
        RuntimeContext: Fresh context with a newly opened workbook and an
            empty cache.

    Raises:
        FileNotFoundError: If the backing workbook cannot be reloaded.
    """
    workbook = data_manager.refresh_workbook(context.settings.data_file)
    log.info("Reloaded workbook '%s'", context.settings.data_file)
    return RuntimeContext(settings=context.settings, workbook=workbook)


def commit(context: RuntimeContext, operations: Sequence[data_manager.WriteOperation], *, action: str) -> None:
    """Apply a write set to the workbook and save it, all or nothing.

    Args:
        context (RuntimeContext): Runtime context whose workbook is written.
        operations (Sequence[data_manager.WriteOperation]): The write set.
        action (str): Short description used in log lines and errors.

    Raises:
        ConflictError: When a container changed since it was read.
        PersistenceError: When the write set cannot be applied or saved. The
            in-memory workbook is rolled back first.
    """
    ensure_schema_version(context)
    try:
        journal = data_manager.apply_write_set(context.workbook, operations)
        try:
            persist_context(context)
        except OSError as exc:
            log.error("Saving workbook failed during %s: %s", action, exc)
            journal.rollback()
            raise PersistenceError(f"Could not save {action}: {exc}") from exc
        except Exception:
            log.exception("Unexpected error while saving %s; rolling back", action)
            journal.rollback()
            raise
    finally:
        _invalidate_cache(context, "containers", "products", "log", "batches")
    log.debug("Committed %s (%d operation(s))", action, len(operations))


def _commit_audit(context: RuntimeContext, entry: LogEntryRow, *, action: str) -> Optional[LogEntryRow]:
    """Commit a non-critical audit entry; a failed save only logs a warning."""
    try:
        commit(context, [data_manager.AppendLogEntry(entry)], action=action)
    except PersistenceError as exc:
        log.warning("Audit entry %s for %s was not recorded: %s", entry.entry_type, action, exc)
        return None
    return entry


def stage_container(
    operations: List[data_manager.WriteOperation],
    before: Optional[ContainerRow],
    after: ContainerRow,
) -> ContainerRow:
    """Queue a compare-and-set put of ``after`` and return it with its new version."""
    expected = before.version if before is not None else 0
    record = replace(after, version=expected + 1)
    operations.append(data_manager.PutContainer(record, expected_version=expected))
    return record


def _fmt(value: Decimal, places: str = "0.001") -> str:
    return str(value.quantize(Decimal(places), rounding=ROUND_HALF_UP))


def require_proof(proof: Number) -> Decimal:
    """Validate that a proof lies in ``[0, 200]`` and return it as Decimal.

    Raises:
        ValidationError: If the proof is out of range.
    """
    value = to_decimal(proof)
    if value < 0 or value > MAX_PROOF:
        log.error("Proof validation failed: %s", value)
        raise ValidationError(f"Proof must be between 0 and {MAX_PROOF}, got {value}")
    return value


def require_positive(amount: Number, label: str) -> Decimal:
    value = to_decimal(amount)
    if value <= 0:
        log.error("%s validation failed: %s", label, value)
        raise ValidationError(f"{label} must be greater than zero")
    return value


def require_quantity(quantity: QuantityInput, *, allow_zero: bool = False) -> Decimal:
    """Validate a tagged quantity and return its amount.

    Raises:
        ValidationError: For an unsupported quantity type, a negative amount,
            or a zero amount unless ``allow_zero`` is set.
    """
    if not isinstance(quantity, QUANTITY_TYPES):
        log.error("Unsupported quantity input: %r", quantity)
        raise ValidationError(f"Unsupported quantity input: {quantity!r}")
    amount = quantity.amount
    if amount < 0 or (amount == 0 and not allow_zero):
        log.error("Quantity validation failed: %s %s", amount, quantity.label)
        raise ValidationError(f"Amount must be greater than zero ({quantity.label})")
    return amount


def require_account(account: Optional[str], *, default: Optional[str] = None) -> str:
    candidate = (account or default or Account.STORAGE.value).strip().lower()
    try:
        return Account(candidate).value
    except ValueError as exc:
        log.error("Unknown account '%s'", candidate)
        raise ValidationError(f"Unknown account: {candidate}") from exc


def require_container_type(container_type: str) -> str:
    try:
        return ContainerType(str(container_type).strip().lower()).value
    except ValueError as exc:
        log.error("Unknown container type '%s'", container_type)
        raise ValidationError(f"Unknown container type: {container_type}") from exc


def _require_name(name: str, label: str) -> str:
    cleaned = (name or "").strip()
    if not cleaned:
        raise ValidationError(f"{label} name is required")
    return cleaned


def _require_unique_container_name(
    context: RuntimeContext,
    name: str,
    *,
    ignore_id: Optional[str] = None,
    pending: Sequence[str] = (),
) -> None:
    folded = name.casefold()
    clash = any(
        container.container_name.casefold() == folded and container.container_id != ignore_id
        for container in _ensure_containers_cache(context)["active"]
    )
    if clash or folded in {other.casefold() for other in pending}:
        log.warning("Duplicate container name '%s'", name)
        raise ValidationError(f"A container named '{name}' already exists")


def _require_known_product(context: RuntimeContext, product_type: str) -> str:
    name = _require_name(product_type, "Product")
    product = _ensure_products_cache(context)["by_name"].get(name.casefold())
    if product is None:
        log.warning("Fill references unknown product '%s'", name)
        raise MissingReferenceError(f"Unknown product: {name}")
    return product.product_name


def _require_active(container: ContainerRow) -> ContainerRow:
    if not container.is_active:
        log.warning("Operation on deleted container '%s'", container.container_id)
        raise ValidationError(f"Container '{container.container_name}' has been deleted")
    return container


def _require_filled(container: ContainerRow, action: str) -> ContainerRow:
    _require_active(container)
    if container.is_empty:
        log.warning("Cannot %s empty container '%s'", action, container.container_name)
        raise ValidationError(f"Cannot {action} '{container.container_name}': container is empty")
    return container


def list_containers(
    context: RuntimeContext,
    *,
    include_inactive: bool = False,
    status: Optional[ContainerStatus] = None,
) -> List[ContainerRow]:
    """Return cached container rows in sheet order.

    Args:
        context (RuntimeContext): Runtime context providing workbook access and
            caches.
        include_inactive (bool): Include deleted (retired) containers.
        status (ContainerStatus | None): Only return containers in this state.

    Returns:
        list[ContainerRow]: Copy of the cached container rows.
    """
    cache = _ensure_containers_cache(context)
    source = cache["all"] if include_inactive else cache["active"]
    if status is not None:
        wanted = ContainerStatus(status).value
        return [container for container in source if container.status == wanted]
    return list(source)


def get_container(context: RuntimeContext, container_id: str) -> ContainerRow:
    """Resolve a container by id, including deleted ones.

    Raises:
        MissingReferenceError: If ``container_id`` is unknown.
    """
    cache = _ensure_containers_cache(context)
    try:
        return cache["by_id"][container_id]
    except KeyError as exc:
        log.warning("Container lookup failed for id '%s'", container_id)
        raise MissingReferenceError(f"Unknown container id: {container_id}") from exc


def find_container(context: RuntimeContext, key: str) -> ContainerRow:
    """Resolve a container by id, or else by the name of an active container."""
    cache = _ensure_containers_cache(context)
    if key in cache["by_id"]:
        return cache["by_id"][key]
    folded = key.strip().casefold()
    for container in cache["active"]:
        if container.container_name.casefold() == folded:
            return container
    log.warning("Container lookup failed for '%s'", key)
    raise MissingReferenceError(f"Unknown container: {key}")


def list_products(context: RuntimeContext) -> List[ProductRow]:
    return list(_ensure_products_cache(context)["all"])


def get_product(context: RuntimeContext, product_id: str) -> ProductRow:
    """Resolve a product by id.

    Raises:
        MissingReferenceError: If ``product_id`` is unknown.
    """
    cache = _ensure_products_cache(context)
    try:
        return cache["by_id"][product_id]
    except KeyError as exc:
        log.warning("Product lookup failed for id '%s'", product_id)
        raise MissingReferenceError(f"Unknown product id: {product_id}") from exc


def find_product(context: RuntimeContext, key: str) -> ProductRow:
    cache = _ensure_products_cache(context)
    if key in cache["by_id"]:
        return cache["by_id"][key]
    product = cache["by_name"].get(key.strip().casefold())
    if product is None:
        log.warning("Product lookup failed for '%s'", key)
        raise MissingReferenceError(f"Unknown product: {key}")
    return product


def list_log_entries(
    context: RuntimeContext,
    *,
    container_id: Optional[str] = None,
    limit: Optional[int] = None,
) -> List[LogEntryRow]:
    """Return log entries newest first, optionally for a single container.

    A container filter matches the entry's own container as well as the
    source or destination side of transfers.
    """
    entries = _ensure_log_cache(context)["all"]
    if container_id is not None:
        entries = [
            entry
            for entry in entries
            if container_id in (entry.container_id, entry.source_container_id, entry.destination_container_id)
        ]
    ordered = tlog.newest_first(entries)
    return ordered[:limit] if limit is not None else ordered


def get_log_entry(context: RuntimeContext, entry_id: str) -> LogEntryRow:
    """Resolve a log entry by id.

    Raises:
        MissingReferenceError: If ``entry_id`` is not in the log.
    """
    cache = _ensure_log_cache(context)
    try:
        return cache["by_id"][entry_id]
    except KeyError as exc:
        log.warning("Log entry lookup failed for id '%s'", entry_id)
        raise MissingReferenceError(f"Unknown log entry id: {entry_id}") from exc


def list_production_batches(
    context: RuntimeContext,
    *,
    batch_type: Optional[BatchType] = None,
) -> List[ProductionBatchRow]:
    """Return stored batches, newest batch date first."""
    batches = _ensure_batches_cache(context)["all"]
    if batch_type is not None:
        wanted = BatchType(batch_type).value
        batches = [batch for batch in batches if batch.batch_type == wanted]
    return sorted(batches, key=lambda batch: batch.batch_date or date.min, reverse=True)


def get_production_batch(context: RuntimeContext, batch_id: str) -> ProductionBatchRow:
    """Resolve a production batch by id.

    Raises:
        MissingReferenceError: If ``batch_id`` is unknown.
    """
    try:
        return _ensure_batches_cache(context)["by_id"][batch_id]
    except KeyError as exc:
        log.warning("Production batch lookup failed for id '%s'", batch_id)
        raise MissingReferenceError(f"Unknown production batch id: {batch_id}") from exc


def find_production_batch(context: RuntimeContext, key: str) -> ProductionBatchRow:
    """Resolve a batch by id or by case-insensitive name.

    Raises:
        MissingReferenceError: If nothing matches ``key``.
        ValidationError: If several batches share the name.
    """
    cache = _ensure_batches_cache(context)
    if key in cache["by_id"]:
        return cache["by_id"][key]
    matches = [batch for batch in cache["all"] if batch.batch_name.casefold() == key.strip().casefold()]
    if not matches:
        raise MissingReferenceError(f"Unknown production batch: {key}")
    if len(matches) > 1:
        ids = ", ".join(batch.batch_id for batch in matches)
        raise ValidationError(f"Several batches are named '{key}'; use one of: {ids}")
    return matches[0]


def _new_container(command: AddContainerCommand, *, container_type: str, tare: Decimal, account: str, today: date) -> ContainerRow:
    blank = ContainerRow(
        container_id=f"C{uuid.uuid4().hex[:12]}",
        container_name=command.name.strip(),
        container_type=container_type,
        tare_weight_lbs=tare,
        status=ContainerStatus.EMPTY.value,
        fill=data_manager.FillRecord(
            product_type="",
            proof=Decimal("0"),
            fill_date=None,
            gross_weight_lbs=tare,
            net_weight_lbs=Decimal("0"),
            wine_gallons=Decimal("0"),
            proof_gallons=Decimal("0"),
            spirit_density=Decimal("0"),
            account=account,
            emptied_date=today,
        ),
        version=0,
    )
    return ledger.empty_fill(blank, on=today)


def _filled_from_spec(context: RuntimeContext, container: ContainerRow, spec: FillSpec, *, today: date) -> ContainerRow:
    """Validate ``spec`` and derive the container it produces."""
    require_quantity(spec.quantity, allow_zero=True)
    proof = require_proof(spec.proof)
    account = require_account(spec.account, default=container.fill.account or context.settings.default_account)
    product_type = _require_known_product(context, spec.product_type)
    if spec.quantity.needs_proof and proof <= 0 and spec.quantity.amount > 0:
        raise ValidationError(f"Proof must be greater than zero to fill by {spec.quantity.label}")
    after = ledger.apply_fill(
        container,
        spec.quantity,
        proof,
        product_type,
        spec.fill_date or today,
        account,
        temperature=spec.temperature,
    )
    if not after.is_empty:
        ledger.check_capacity(after, after.fill.wine_gallons)
    return after


def _prepare_new_container(
    context: RuntimeContext,
    command: AddContainerCommand,
    *,
    today: date,
    pending_names: Sequence[str] = (),
) -> ContainerRow:
    name = _require_name(command.name, "Container")
    _require_unique_container_name(context, name, pending=pending_names)
    container_type = require_container_type(command.container_type)
    tare = require_positive(command.tare_weight_lbs, "Tare weight")
    account = require_account(command.fill.account if command.fill else None, default=context.settings.default_account)
    container = _new_container(command, container_type=container_type, tare=tare, account=account, today=today)
    if command.fill is not None and require_quantity(command.fill.quantity, allow_zero=True) > 0:
        container = _filled_from_spec(context, container, command.fill, today=today)
        if container.is_empty:
            raise ValidationError("Initial fill is too small to register")
    return container


def _creation_entry(container: ContainerRow, *, timestamp: datetime, notes: Optional[str]) -> LogEntryRow:
    if container.is_empty:
        return tlog.entry_for_container(
            LogEntryType.CREATE_EMPTY_CONTAINER,
            container,
            timestamp=timestamp,
            proof=Decimal("0"),
            product_type="",
            notes=notes,
        )
    return tlog.entry_for_container(
        LogEntryType.CREATE_FILLED_CONTAINER,
        container,
        timestamp=timestamp,
        net_weight_lbs_change=container.fill.net_weight_lbs,
        proof_gallons_change=container.fill.proof_gallons,
        notes=notes,
    )


def add_container(context: RuntimeContext, command: AddContainerCommand) -> OperationResult:
    """Register a new container, empty or with an initial fill.

    Args:
        context (RuntimeContext): Runtime context providing workbook access and
            caches.
        command (AddContainerCommand): Name, type, tare and optional fill.

    Returns:
        OperationResult: The stored container and its creation entry
            (``CREATE_FILLED_CONTAINER`` or ``CREATE_EMPTY_CONTAINER``).

    Raises:
        ValidationError: On a duplicate name, unknown type, non-positive
            tare, invalid fill or exceeded capacity.
        PersistenceError: If the workbook cannot be saved.
    """
    timestamp = _resolve_timestamp(command.timestamp)
    container = _prepare_new_container(context, command, today=timestamp.date())

    operations: List[data_manager.WriteOperation] = []
    stored = stage_container(operations, None, container)
    entry = tlog.append(operations, _creation_entry(stored, timestamp=timestamp, notes=command.notes))
    commit(context, operations, action="add container")
    log.info(
        "Added container '%s' (%s, %s, net=%s lbs)",
        stored.container_name,
        stored.container_id,
        stored.status,
        stored.fill.net_weight_lbs,
    )
    return OperationResult(containers=(stored,), entries=(entry,))


def import_containers(context: RuntimeContext, command: ImportContainersCommand) -> OperationResult:
    """Register many containers in one write set.

    Every row is validated before anything is written; one invalid row
    rejects the whole import. A ``CREATE_BULK_CONTAINERS`` summary entry is
    recorded afterwards as a non-critical audit write.
    """
    if not command.containers:
        raise ValidationError("Nothing to import")
    timestamp = _resolve_timestamp(command.timestamp)
    today = timestamp.date()

    prepared: List[ContainerRow] = []
    for index, row in enumerate(command.containers, start=1):
        try:
            prepared.append(
                _prepare_new_container(
                    context,
                    row,
                    today=today,
                    pending_names=[container.container_name for container in prepared],
                )
            )
        except ValidationError as exc:
            log.warning("Import rejected at row %d: %s", index, exc)
            raise ValidationError(f"Row {index}: {exc}") from exc

    operations: List[data_manager.WriteOperation] = []
    stored: List[ContainerRow] = []
    entries: List[LogEntryRow] = []
    for container, row in zip(prepared, command.containers):
        record = stage_container(operations, None, container)
        stored.append(record)
        entries.append(tlog.append(operations, _creation_entry(record, timestamp=timestamp, notes=row.notes)))
    commit(context, operations, action="container import")

    summary = tlog.build_entry(
        LogEntryType.CREATE_BULK_CONTAINERS,
        timestamp=timestamp,
        notes=f"Imported {len(stored)} containers.",
    )
    if _commit_audit(context, summary, action="container import") is not None:
        entries.append(summary)
    log.info("Imported %d containers", len(stored))
    return OperationResult(containers=tuple(stored), entries=tuple(entries))


def update_container_info(context: RuntimeContext, command: UpdateContainerCommand) -> ContainerRow:
    """Edit a container's name, type or tare weight. No log entry is written.

    Raises:
        ValidationError: On a duplicate name, an unknown type, a tare change
            while filled, or a type whose capacity the contents exceed.
    """
    before = _require_active(get_container(context, command.container_id))
    after = before
    if command.name is not None:
        name = _require_name(command.name, "Container")
        _require_unique_container_name(context, name, ignore_id=before.container_id)
        after = replace(after, container_name=name)
    if command.container_type is not None:
        after = replace(after, container_type=require_container_type(command.container_type))
        if not after.is_empty:
            ledger.check_capacity(after, after.fill.wine_gallons)
    if command.tare_weight_lbs is not None:
        tare = require_positive(command.tare_weight_lbs, "Tare weight")
        if tare != before.tare_weight_lbs:
            if not before.is_empty:
                log.warning("Refusing tare change on filled container '%s'", before.container_name)
                raise ValidationError("Tare weight cannot change while the container is filled")
            after = ledger.empty_fill(replace(after, tare_weight_lbs=tare), on=before.fill.emptied_date or date.today())

    if after == before:
        return before

    operations: List[data_manager.WriteOperation] = []
    stored = stage_container(operations, before, after)
    commit(context, operations, action="container update")
    log.info("Updated container '%s' (%s)", stored.container_name, stored.container_id)
    return stored


def refill_container(context: RuntimeContext, command: RefillCommand) -> OperationResult:
    """Fill an empty container from scratch and log ``REFILL_CONTAINER``."""
    timestamp = _resolve_timestamp(command.timestamp)
    before = _require_active(get_container(context, command.container_id))
    if not before.is_empty:
        log.warning("Refill refused: '%s' is not empty", before.container_name)
        raise ValidationError(f"Cannot refill '{before.container_name}': container is not empty")
    require_quantity(command.fill.quantity)
    after = _filled_from_spec(context, before, command.fill, today=timestamp.date())
    if after.is_empty:
        raise ValidationError("Refill amount is too small")

    operations: List[data_manager.WriteOperation] = []
    stored = stage_container(operations, before, after)
    entry = tlog.append(
        operations,
        tlog.entry_for_container(
            LogEntryType.REFILL_CONTAINER,
            stored,
            timestamp=timestamp,
            net_weight_lbs_change=stored.fill.net_weight_lbs,
            proof_gallons_change=stored.fill.proof_gallons,
            notes=command.notes,
        ),
    )
    commit(context, operations, action="refill")
    log.info(
        "Refilled '%s' with %s lbs at %s proof",
        stored.container_name,
        stored.fill.net_weight_lbs,
        stored.fill.proof,
    )
    return OperationResult(containers=(stored,), entries=(entry,))


def edit_fill(context: RuntimeContext, command: EditFillCommand) -> OperationResult:
    """Replace a container's fill and log the correction.

    The entry type follows the status change: ``EDIT_FILL_FROM_EMPTY``
    (empty to filled), ``EDIT_EMPTY_FROM_FILLED`` (filled to empty) or
    ``EDIT_FILL_DATA_CORRECTION`` (filled to filled). Deltas are new minus
    old.

    Raises:
        ValidationError: When the container would stay empty, or the fill is
            invalid.
    """
    timestamp = _resolve_timestamp(command.timestamp)
    before = _require_active(get_container(context, command.container_id))
    after = _filled_from_spec(context, before, command.fill, today=timestamp.date())

    if before.is_empty and after.is_empty:
        log.warning("Edit fill on '%s' would leave it empty", before.container_name)
        raise ValidationError("Container is empty and the edit does not fill it")
    if before.is_empty:
        entry_type = LogEntryType.EDIT_FILL_FROM_EMPTY
    elif after.is_empty:
        entry_type = LogEntryType.EDIT_EMPTY_FROM_FILLED
    else:
        entry_type = LogEntryType.EDIT_FILL_DATA_CORRECTION

    operations: List[data_manager.WriteOperation] = []
    stored = stage_container(operations, before, after)
    entry = tlog.append(
        operations,
        tlog.entry_for_container(
            entry_type,
            stored,
            timestamp=timestamp,
            net_weight_lbs_change=stored.fill.net_weight_lbs - before.fill.net_weight_lbs,
            proof_gallons_change=stored.fill.proof_gallons - before.fill.proof_gallons,
            proof=stored.fill.proof if not stored.is_empty else before.fill.proof,
            notes=command.notes,
        ),
    )
    commit(context, operations, action="fill edit")
    log.info("Edited fill of '%s' (%s)", stored.container_name, entry_type.value)
    return OperationResult(containers=(stored,), entries=(entry,))


def _available(container: ContainerRow, quantity: QuantityInput) -> Decimal:
    """What ``container`` holds, expressed in the unit of ``quantity``."""
    if isinstance(quantity, WineGallons):
        return container.fill.wine_gallons
    if isinstance(quantity, ProofGallons):
        return container.fill.proof_gallons
    return container.fill.net_weight_lbs


def _weight_for(container: ContainerRow, quantity: QuantityInput) -> Decimal:
    """Net pounds that ``quantity`` represents at the container's proof."""
    proof = container.fill.proof
    if isinstance(quantity, NetWeight):
        return quantity.amount
    if isinstance(quantity, GrossWeight):
        raise ValidationError("Gross weight describes a whole fill; give a partial amount as net weight")
    if quantity.needs_proof and proof <= 0:
        raise ValidationError(f"Proof must be greater than zero to measure by {quantity.label}")
    density = density_of(proof)
    if isinstance(quantity, WineGallons):
        return quantity.amount * density
    return quantity.amount / (proof / 100) * density


def transfer(context: RuntimeContext, command: TransferCommand) -> OperationResult:
    """Move spirit from a filled source into an empty or compatible container.

    An empty destination takes the source's proof, product and account. A
    filled destination must hold the same product; the two are combined at
    the weight-averaged proof. Re-deriving the combined fill at that proof
    does not keep proof gallons exactly, so the difference is booked on the
    destination as an ``EDIT_FILL_DATA_CORRECTION``. Asking for the whole
    available amount (within tolerance) empties the source exactly.

    Args:
        context (RuntimeContext): Runtime context providing workbook access and
            caches.
        command (TransferCommand): Source, destination and amount.

    Returns:
        OperationResult: Source and destination snapshots plus the paired
            ``TRANSFER_OUT``/``TRANSFER_IN`` entries, followed by the
            re-gauge correction when a combine changed proof gallons.

    Raises:
        ValidationError: If the amount exceeds what is available, the
            destination is invalid, or its capacity would be exceeded.
        ConflictError: If either container changed since it was read.
    """
    timestamp = _resolve_timestamp(command.timestamp)
    today = timestamp.date()
    if command.source_id == command.destination_id:
        raise ValidationError("Source and destination must differ")
    source = _require_filled(get_container(context, command.source_id), "transfer from")
    destination = _require_active(get_container(context, command.destination_id))

    amount = require_quantity(command.quantity)
    if isinstance(command.quantity, GrossWeight):
        raise ValidationError("Transfers take net weight, wine gallons or proof gallons")
    if command.quantity.needs_proof and source.fill.proof <= 0:
        raise ValidationError(f"Proof must be greater than zero to transfer by {command.quantity.label}")
    available = _available(source, command.quantity)
    if amount > available + EMPTY_TOLERANCE:
        log.warning(
            "Transfer from '%s' refused: requested %s > available %s %s",
            source.container_name,
            amount,
            available,
            command.quantity.label,
        )
        raise ValidationError(f"Cannot transfer > {_fmt(available)} {command.quantity.label} from {source.container_name}")

    proof = source.fill.proof
    if abs(amount - available) <= EMPTY_TOLERANCE:
        net_moved = source.fill.net_weight_lbs
        pg_moved = source.fill.proof_gallons
        source_after = ledger.empty_fill(source, on=today)
    else:
        net_moved = round_weight(_weight_for(source, command.quantity))
        if ledger.is_empty_quantity(net_moved):
            raise ValidationError("Transfer amount is too small")
        pg_moved = from_weight(0, net_moved, proof).proof_gallons
        source_after = ledger.apply_delta(source, -net_moved, on=today)

    regauge_pg = Decimal("0")
    if destination.is_empty:
        destination_after = ledger.apply_fill(
            destination,
            NetWeight(net_moved),
            proof,
            source.fill.product_type,
            today,
            source.fill.account,
        )
    else:
        if destination.fill.product_type != source.fill.product_type:
            log.warning(
                "Transfer refused: '%s' holds %s, source holds %s",
                destination.container_name,
                destination.fill.product_type,
                source.fill.product_type,
            )
            raise ValidationError(
                f"{destination.container_name} holds {destination.fill.product_type}; "
                f"cannot combine with {source.fill.product_type}"
            )
        combined_net = destination.fill.net_weight_lbs + net_moved
        combined_proof = (
            (destination.fill.proof * destination.fill.net_weight_lbs + proof * net_moved) / combined_net
        ).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
        destination_after = ledger.with_proof(destination, combined_net, combined_proof, on=today)
        regauge_pg = destination_after.fill.proof_gallons - (destination.fill.proof_gallons + pg_moved)
    ledger.check_capacity(destination_after, destination_after.fill.wine_gallons)

    operations: List[data_manager.WriteOperation] = []
    stored_source = stage_container(operations, source, source_after)
    stored_destination = stage_container(operations, destination, destination_after)
    out_entry = tlog.append(
        operations,
        tlog.entry_for_container(
            LogEntryType.TRANSFER_OUT,
            source,
            timestamp=timestamp,
            net_weight_lbs_change=-net_moved,
            proof_gallons_change=-pg_moved,
            destination_container_id=destination.container_id,
            destination_container_name=destination.container_name,
            notes=command.notes or f"To {destination.container_name}",
        ),
    )
    in_entry = tlog.append(
        operations,
        tlog.entry_for_container(
            LogEntryType.TRANSFER_IN,
            destination,
            timestamp=timestamp,
            net_weight_lbs_change=net_moved,
            proof_gallons_change=pg_moved,
            proof=proof,
            product_type=source.fill.product_type,
            source_container_id=source.container_id,
            source_container_name=source.container_name,
            notes=command.notes or f"From {source.container_name}",
        ),
    )
    entries = [out_entry, in_entry]
    if regauge_pg:
        # Averaging proof by weight does not hold proof gallons exactly.
        entries.append(
            tlog.append(
                operations,
                tlog.entry_for_container(
                    LogEntryType.EDIT_FILL_DATA_CORRECTION,
                    destination,
                    timestamp=timestamp,
                    proof_gallons_change=regauge_pg,
                    proof=destination_after.fill.proof,
                    source_container_id=source.container_id,
                    source_container_name=source.container_name,
                    notes=f"Proof gallons re-gauged after combining at {_fmt(destination_after.fill.proof, '0.01')} proof",
                ),
            )
        )
    commit(context, operations, action="transfer")
    log.info(
        "Transferred %s lbs (%s PG) from '%s' to '%s'",
        net_moved,
        pg_moved,
        source.container_name,
        destination.container_name,
    )
    return OperationResult(containers=(stored_source, stored_destination), entries=tuple(entries))


def bottle(context: RuntimeContext, command: BottleCommand) -> OperationResult:
    """Record a bottling run from one container.

    Bottled volume is ``bottle_count * bottle_size_ml / ML_PER_GALLON``:

    * more than the container holds: ``BOTTLE_EMPTY`` removes the full
      contents and the excess is logged as ``BOTTLING_GAIN``. The gain names
      the container as its source but carries no container id, so it stays
      out of the container's running balance;
    * the same, within ``BOTTLING_TOLERANCE_GALLONS``: ``BOTTLE_EMPTY`` only;
    * less: ``BOTTLE_PARTIAL``, then the remainder is kept, written off as
      ``BOTTLING_LOSS``, or replaced by an operator-measured loss or gain
      before the container is emptied.

    Raises:
        ValidationError: On an empty container, bad counts or sizes, or an
            adjustment missing its amount.
    """
    timestamp = _resolve_timestamp(command.timestamp)
    today = timestamp.date()
    before = _require_filled(get_container(context, command.container_id), "bottle from")
    if int(command.bottle_count) <= 0:
        raise ValidationError("Bottle count must be greater than zero")
    size_ml = require_positive(command.bottle_size_ml, "Bottle size")
    action = RemainderAction(command.remainder_action)

    fill = before.fill
    proof = fill.proof
    density = density_of(proof)
    wg_bottled = wine_gallons_for_bottles(int(command.bottle_count), size_ml)
    lbs_bottled = round_weight(wg_bottled * density)
    pg_bottled = round_volume(wg_bottled * proof / 100)
    description = f"Bottled {int(command.bottle_count)} x {_fmt(size_ml, '1')}mL"

    def entry(entry_type: LogEntryType, net_change: Decimal, pg_change: Decimal, notes: str) -> LogEntryRow:
        return tlog.entry_for_container(
            entry_type,
            before,
            timestamp=timestamp,
            net_weight_lbs_change=net_change,
            proof_gallons_change=pg_change,
            notes=notes,
        )

    entries: List[LogEntryRow] = []
    if wg_bottled > fill.wine_gallons + BOTTLING_TOLERANCE_GALLONS:
        excess_wg = wg_bottled - fill.wine_gallons
        entries.append(
            entry(
                LogEntryType.BOTTLE_EMPTY,
                -fill.net_weight_lbs,
                -fill.proof_gallons,
                f"{description}. Container emptied with gain.",
            )
        )
        # The excess never sat in the container, so the gain is kept off its books.
        entries.append(
            tlog.build_entry(
                LogEntryType.BOTTLING_GAIN,
                timestamp=timestamp,
                container_name=before.container_name,
                product_type=fill.product_type,
                proof=proof,
                net_weight_lbs_change=round_weight(excess_wg * density),
                proof_gallons_change=round_volume(excess_wg * proof / 100),
                source_container_id=before.container_id,
                source_container_name=before.container_name,
                notes=f"Gain of {_fmt(excess_wg)} WG recorded during bottling.",
            )
        )
        after = ledger.empty_fill(before, on=today)
    elif abs(wg_bottled - fill.wine_gallons) <= BOTTLING_TOLERANCE_GALLONS:
        entries.append(entry(LogEntryType.BOTTLE_EMPTY, -fill.net_weight_lbs, -fill.proof_gallons, f"{description}."))
        after = ledger.empty_fill(before, on=today)
    else:
        entries.append(entry(LogEntryType.BOTTLE_PARTIAL, -lbs_bottled, -pg_bottled, f"{description}."))
        if action is RemainderAction.KEEP:
            after = ledger.apply_delta(before, -lbs_bottled, on=today)
        elif action is RemainderAction.LOSS:
            remainder_wg = fill.wine_gallons - wg_bottled
            entries.append(
                entry(
                    LogEntryType.BOTTLING_LOSS,
                    -(fill.net_weight_lbs - lbs_bottled),
                    -(fill.proof_gallons - pg_bottled),
                    f"Remainder of {_fmt(remainder_wg)} WG written off as loss.",
                )
            )
            after = ledger.empty_fill(before, on=today)
        else:
            if command.adjustment_wine_gallons is None:
                raise ValidationError("A manual adjustment needs an amount in wine gallons")
            adjustment_wg = to_decimal(command.adjustment_wine_gallons)
            if adjustment_wg < 0:
                raise ValidationError("Adjustment amount must be zero or positive")
            direction = AdjustmentDirection(command.adjustment_direction)
            sign = Decimal("1") if direction is AdjustmentDirection.ADD else Decimal("-1")
            entry_type = LogEntryType.BOTTLING_GAIN if direction is AdjustmentDirection.ADD else LogEntryType.BOTTLING_LOSS
            label = "gain" if direction is AdjustmentDirection.ADD else "loss"
            entries.append(
                entry(
                    entry_type,
                    sign * round_weight(adjustment_wg * density),
                    sign * round_volume(adjustment_wg * proof / 100),
                    f"Manual bottling {label}: {_fmt(adjustment_wg, '0.01')} WG.",
                )
            )
            after = ledger.empty_fill(before, on=today)

    operations: List[data_manager.WriteOperation] = []
    stored = stage_container(operations, before, after)
    for item in entries:
        tlog.append(operations, item)
    commit(context, operations, action="bottling")
    log.info(
        "Bottled %s WG from '%s' (%s)",
        _fmt(wg_bottled),
        before.container_name,
        ", ".join(item.entry_type for item in entries),
    )
    return OperationResult(containers=(stored,), entries=tuple(entries))


def proof_down(context: RuntimeContext, command: ProofDownCommand) -> OperationResult:
    """Add water to bring a container down to ``target_proof``.

    Proof gallons stay constant; the final volume is
    ``proof_gallons / (target_proof / 100)`` and the added water is weighed
    at water density.

    Raises:
        ValidationError: Unless ``0 < target_proof < current proof``, or when
            the diluted volume exceeds the container's capacity.
    """
    timestamp = _resolve_timestamp(command.timestamp)
    before = _require_filled(get_container(context, command.container_id), "proof down")
    target = require_proof(command.target_proof)
    current = before.fill.proof
    if not 0 < target < current:
        log.warning("Proof-down refused for '%s': target %s, current %s", before.container_name, target, current)
        raise ValidationError(f"Target proof must be above 0 and below the current proof ({current})")

    proof_gallons = before.fill.proof_gallons
    after = ledger.apply_fill(
        before,
        ProofGallons(proof_gallons),
        target,
        before.fill.product_type,
        before.fill.fill_date or timestamp.date(),
        before.fill.account,
    )
    ledger.check_capacity(after, after.fill.wine_gallons)
    water_lbs = after.fill.net_weight_lbs - before.fill.net_weight_lbs
    water_wg = after.fill.wine_gallons - before.fill.wine_gallons

    operations: List[data_manager.WriteOperation] = []
    stored = stage_container(operations, before, after)
    entry = tlog.append(
        operations,
        tlog.entry_for_container(
            LogEntryType.PROOF_DOWN,
            stored,
            timestamp=timestamp,
            net_weight_lbs_change=water_lbs,
            proof_gallons_change=Decimal("0"),
            notes=command.notes
            or f"Proofed down from {current} to {target}; added {_fmt(water_wg)} gal ({water_lbs} lbs) water.",
        ),
    )
    commit(context, operations, action="proof down")
    log.info("Proofed '%s' down from %s to %s", stored.container_name, current, target)
    return OperationResult(containers=(stored,), entries=(entry,))


def adjust_contents(context: RuntimeContext, command: AdjustContentsCommand) -> OperationResult:
    """Record a sample removal or a manual addition as ``SAMPLE_ADJUST``.

    The amount is converted at the container's current proof. A removal of
    everything (within tolerance) empties the container.
    """
    timestamp = _resolve_timestamp(command.timestamp)
    direction = AdjustmentDirection(command.direction)
    before = _require_filled(get_container(context, command.container_id), "adjust")
    require_quantity(command.quantity)
    lbs = round_weight(_weight_for(before, command.quantity))

    if direction is AdjustmentDirection.REMOVE:
        if lbs > before.fill.net_weight_lbs + EMPTY_TOLERANCE:
            log.warning("Removal from '%s' refused: %s lbs > %s lbs", before.container_name, lbs, before.fill.net_weight_lbs)
            raise ValidationError(f"Cannot remove > {_fmt(before.fill.net_weight_lbs, '0.01')} lbs (or its volumetric equivalent)")
        after = ledger.apply_delta(before, -lbs, on=timestamp.date())
    else:
        after = ledger.apply_delta(before, lbs, on=timestamp.date())
        ledger.check_capacity(after, after.fill.wine_gallons)

    operations: List[data_manager.WriteOperation] = []
    stored = stage_container(operations, before, after)
    entry = tlog.append(
        operations,
        tlog.entry_for_container(
            LogEntryType.SAMPLE_ADJUST,
            before,
            timestamp=timestamp,
            net_weight_lbs_change=stored.fill.net_weight_lbs - before.fill.net_weight_lbs,
            proof_gallons_change=stored.fill.proof_gallons - before.fill.proof_gallons,
            notes=command.notes
            or f"{'Addition' if direction is AdjustmentDirection.ADD else 'Sample or tax adjustment'} via {command.quantity.label}.",
        ),
    )
    commit(context, operations, action="adjustment")
    log.info("Adjusted '%s' by %s lbs", stored.container_name, entry.net_weight_lbs_change)
    return OperationResult(containers=(stored,), entries=(entry,))


def change_account(context: RuntimeContext, command: ChangeAccountCommand) -> OperationResult:
    """Move a container's contents to another bonded account."""
    timestamp = _resolve_timestamp(command.timestamp)
    before = _require_active(get_container(context, command.container_id))
    account = require_account(command.account)
    if account == before.fill.account:
        raise ValidationError(f"'{before.container_name}' is already in the {account} account")

    after = replace(before, fill=replace(before.fill, account=account))
    operations: List[data_manager.WriteOperation] = []
    stored = stage_container(operations, before, after)
    commit(context, operations, action="account change")
    log.info("Moved '%s' from %s to %s", stored.container_name, before.fill.account, account)

    audit = tlog.entry_for_container(
        LogEntryType.CHANGE_ACCOUNT,
        stored,
        timestamp=timestamp,
        notes=f"Account changed from {before.fill.account} to {account}.",
    )
    recorded = _commit_audit(context, audit, action="account change")
    return OperationResult(containers=(stored,), entries=(recorded,) if recorded else ())


def delete_container(context: RuntimeContext, command: DeleteContainerCommand) -> OperationResult:
    """Retire a container; its contents, if any, are logged as removed."""
    timestamp = _resolve_timestamp(command.timestamp)
    before = _require_active(get_container(context, command.container_id))
    after = replace(before, is_active=False)

    operations: List[data_manager.WriteOperation] = []
    stored = stage_container(operations, before, after)
    if before.is_empty:
        entry = tlog.entry_for_container(
            LogEntryType.DELETE_EMPTY_CONTAINER,
            before,
            timestamp=timestamp,
            notes=command.notes,
        )
    else:
        entry = tlog.entry_for_container(
            LogEntryType.DELETE_FILLED_CONTAINER,
            before,
            timestamp=timestamp,
            net_weight_lbs_change=-before.fill.net_weight_lbs,
            proof_gallons_change=-before.fill.proof_gallons,
            notes=command.notes,
        )
    tlog.append(operations, entry)
    commit(context, operations, action="container deletion")
    log.info("Deleted container '%s' (%s)", before.container_name, entry.entry_type)
    return OperationResult(containers=(stored,), entries=(entry,))


def _require_unique_product_name(context: RuntimeContext, name: str, *, ignore_id: Optional[str] = None) -> None:
    existing = _ensure_products_cache(context)["by_name"].get(name.casefold())
    if existing is not None and existing.product_id != ignore_id:
        log.warning("Duplicate product name '%s'", name)
        raise ValidationError(f"A product named '{name}' already exists")


def add_product(context: RuntimeContext, name: str, description: str = "") -> ProductRow:
    """Add a product to the catalog.

    Raises:
        ValidationError: If the name is blank or already used.
    """
    product_name = _require_name(name, "Product")
    _require_unique_product_name(context, product_name)
    product = ProductRow(
        product_id=f"P{uuid.uuid4().hex[:12]}",
        product_name=product_name,
        description=(description or "").strip(),
    )
    commit(context, [data_manager.PutProduct(product)], action="product creation")
    log.info("Added product '%s' (%s)", product.product_name, product.product_id)
    return product


def rename_product(context: RuntimeContext, product_id: str, new_name: str, description: Optional[str] = None) -> ProductRow:
    """Rename a product. Containers and log entries keep the old name."""
    before = get_product(context, product_id)
    product_name = _require_name(new_name, "Product")
    _require_unique_product_name(context, product_name, ignore_id=product_id)
    after = replace(
        before,
        product_name=product_name,
        description=before.description if description is None else description.strip(),
    )
    commit(context, [data_manager.PutProduct(after)], action="product rename")
    log.info("Renamed product '%s' to '%s'", before.product_name, after.product_name)
    return after


def delete_product(context: RuntimeContext, product_id: str, *, timestamp: Optional[datetime] = None) -> ProductRow:
    """Remove a product no active, filled container still holds.

    Raises:
        ValidationError: If any active filled container holds the product.
        MissingReferenceError: If ``product_id`` is unknown.
    """
    product = get_product(context, product_id)
    holders = [
        container.container_name
        for container in list_containers(context, status=ContainerStatus.FILLED)
        if container.fill.product_type == product.product_name
    ]
    if holders:
        log.warning("Refusing to delete product '%s' held by %s", product.product_name, holders)
        raise ValidationError(f"Product '{product.product_name}' is still held by: {', '.join(holders)}")

    commit(context, [data_manager.DeleteProduct(product.product_id)], action="product deletion")
    log.info("Deleted product '%s'", product.product_name)
    audit = tlog.build_entry(
        LogEntryType.DELETE_PRODUCT,
        timestamp=_resolve_timestamp(timestamp),
        product_type=product.product_name,
        notes=f"Deleted product {product.product_name}.",
    )
    _commit_audit(context, audit, action="product deletion")
    return product


def _optional_gravity(value: Optional[Number], label: str) -> Optional[Decimal]:
    return None if value is None else require_positive(value, label)


def record_production(context: RuntimeContext, command: ProductionCommand) -> BatchResult:
    """Store a fermentation batch and log it as ``PRODUCTION``; no container changes."""
    timestamp = _resolve_timestamp(command.timestamp)
    batch_name = _require_name(command.batch_name, "Batch")
    product_type = _require_known_product(context, command.product_type)
    volume = require_positive(command.start_volume_gallons, "Starting volume")
    batch = ProductionBatchRow(
        batch_id=f"B{uuid.uuid4().hex[:12]}",
        batch_name=batch_name,
        batch_type=BatchType.FERMENTATION.value,
        product_type=product_type,
        batch_date=command.batch_date or timestamp.date(),
        volume_gallons=volume,
        original_gravity=_optional_gravity(command.original_gravity, "Original gravity"),
        final_gravity=_optional_gravity(command.final_gravity, "Final gravity"),
        ingredients=(command.ingredients or "").strip() or None,
        notes=command.notes,
    )

    operations: List[data_manager.WriteOperation] = [data_manager.PutProductionBatch(batch)]
    entry = tlog.append(
        operations,
        tlog.build_entry(
            LogEntryType.PRODUCTION,
            timestamp=timestamp,
            product_type=product_type,
            notes=command.notes or f"Fermentation {batch_name} started with {_fmt(volume, '0.01')} gal.",
        ),
    )
    commit(context, operations, action="production record")
    log.info("Recorded production batch '%s' (%s)", batch_name, batch.batch_id)
    return BatchResult(batch=batch, entry=entry)


def edit_production_batch(context: RuntimeContext, command: EditProductionBatchCommand) -> ProductionBatchRow:
    """Correct a stored batch. Nothing is logged and no container changes.

    Raises:
        MissingReferenceError: If the batch is unknown.
        ValidationError: On blank names, non-positive amounts, an unknown
            product, or a fermentation-only field sent for a distillation.
    """
    before = get_production_batch(context, command.batch_id)
    fermentation_fields = (
        command.product_type,
        command.volume_gallons,
        command.original_gravity,
        command.final_gravity,
        command.ingredients,
    )
    if before.batch_type != BatchType.FERMENTATION.value and any(value is not None for value in fermentation_fields):
        raise ValidationError("Only the name, date and notes of a distillation batch can be edited")

    after = replace(
        before,
        batch_name=before.batch_name if command.batch_name is None else _require_name(command.batch_name, "Batch"),
        batch_date=command.batch_date or before.batch_date,
        product_type=(
            before.product_type if command.product_type is None else _require_known_product(context, command.product_type)
        ),
        volume_gallons=(
            before.volume_gallons
            if command.volume_gallons is None
            else require_positive(command.volume_gallons, "Starting volume")
        ),
        original_gravity=(
            before.original_gravity
            if command.original_gravity is None
            else _optional_gravity(command.original_gravity, "Original gravity")
        ),
        final_gravity=(
            before.final_gravity
            if command.final_gravity is None
            else _optional_gravity(command.final_gravity, "Final gravity")
        ),
        ingredients=before.ingredients if command.ingredients is None else command.ingredients.strip() or None,
        notes=before.notes if command.notes is None else command.notes,
    )
    commit(context, [data_manager.PutProductionBatch(after)], action="production batch edit")
    log.info("Edited production batch '%s' (%s)", after.batch_name, after.batch_id)
    return after


def delete_production_batch(context: RuntimeContext, command: DeleteProductionBatchCommand) -> BatchResult:
    """Remove a batch and log ``DELETE_PRODUCTION_BATCH`` in the same write set.

    Containers filled by a distillation keep their contents.
    """
    batch = get_production_batch(context, command.batch_id)
    entry = tlog.build_entry(
        LogEntryType.DELETE_PRODUCTION_BATCH,
        timestamp=_resolve_timestamp(command.timestamp),
        product_type=batch.product_type or None,
        notes=command.notes or f"Production batch {batch.batch_name} ({batch.batch_type}, {batch.batch_id}) deleted.",
    )
    operations: List[data_manager.WriteOperation] = [data_manager.DeleteProductionBatch(batch.batch_id)]
    tlog.append(operations, entry)
    commit(context, operations, action="production batch deletion")
    log.info("Deleted production batch '%s' (%s)", batch.batch_name, batch.batch_id)
    return BatchResult(batch=batch, entry=entry)


def record_distillation(context: RuntimeContext, command: DistillationCommand) -> OperationResult:
    """Fill an empty container with a distillation yield.

    Stores a distillation batch and writes ``CREATE_FILLED_CONTAINER`` for
    the destination next to a batch-level ``DISTILLATION_FINISH`` entry; when
    a charge source is given its pull is logged as ``TRANSFER_OUT`` in the
    same write set.

    Raises:
        ValidationError: If the destination is not empty, the yield is not
            positive, the capacity is exceeded, the charge exceeds what the
            source holds, or ``source_batch_id`` is not a fermentation.
        MissingReferenceError: If ``source_batch_id`` is unknown.
    """
    timestamp = _resolve_timestamp(command.timestamp)
    today = timestamp.date()
    batch_name = _require_name(command.batch_name, "Batch")
    destination = _require_active(get_container(context, command.destination_id))
    if not destination.is_empty:
        raise ValidationError(f"Distillation destination '{destination.container_name}' must be empty")
    require_quantity(command.yield_quantity)
    if require_proof(command.yield_proof) <= 0:
        raise ValidationError("Yield proof must be greater than zero")
    if command.source_batch_id is not None:
        source_batch = get_production_batch(context, command.source_batch_id)
        if source_batch.batch_type != BatchType.FERMENTATION.value:
            raise ValidationError(f"Batch '{source_batch.batch_name}' is not a fermentation")
    spec = FillSpec(
        quantity=command.yield_quantity,
        proof=command.yield_proof,
        product_type=command.product_type,
        account=require_account(command.account, default=Account.STORAGE.value),
        temperature=command.temperature,
    )
    destination_after = _filled_from_spec(context, destination, spec, today=today)
    if destination_after.is_empty:
        raise ValidationError("Distillation yield is too small")

    operations: List[data_manager.WriteOperation] = []
    containers: List[ContainerRow] = []
    entries: List[LogEntryRow] = []

    if command.charge_source_id is not None:
        if command.charge_quantity is None:
            raise ValidationError("A charge source needs a charge quantity")
        if command.charge_source_id == destination.container_id:
            raise ValidationError("Charge source and destination must differ")
        source = _require_filled(get_container(context, command.charge_source_id), "charge from")
        amount = require_quantity(command.charge_quantity)
        available = _available(source, command.charge_quantity)
        if amount > available + EMPTY_TOLERANCE:
            raise ValidationError(
                f"Cannot pull > {_fmt(available)} {command.charge_quantity.label} from {source.container_name}"
            )
        if abs(amount - available) <= EMPTY_TOLERANCE:
            net_pulled = source.fill.net_weight_lbs
            pg_pulled = source.fill.proof_gallons
            source_after = ledger.empty_fill(source, on=today)
        else:
            net_pulled = round_weight(_weight_for(source, command.charge_quantity))
            pg_pulled = from_weight(0, net_pulled, source.fill.proof).proof_gallons
            source_after = ledger.apply_delta(source, -net_pulled, on=today)
        containers.append(stage_container(operations, source, source_after))
        entries.append(
            tlog.append(
                operations,
                tlog.entry_for_container(
                    LogEntryType.TRANSFER_OUT,
                    source,
                    timestamp=timestamp,
                    net_weight_lbs_change=-net_pulled,
                    proof_gallons_change=-pg_pulled,
                    notes=f"Pulled {_fmt(pg_pulled)} PG for distillation batch {batch_name}.",
                ),
            )
        )

    stored_destination = stage_container(operations, destination, destination_after)
    containers.insert(0, stored_destination)
    fill = stored_destination.fill
    batch = ProductionBatchRow(
        batch_id=f"B{uuid.uuid4().hex[:12]}",
        batch_name=batch_name,
        batch_type=BatchType.DISTILLATION.value,
        product_type=fill.product_type,
        batch_date=today,
        source_batch_id=command.source_batch_id,
        yield_proof=fill.proof,
        yield_proof_gallons=fill.proof_gallons,
        destination_container_id=stored_destination.container_id,
        notes=command.notes,
    )
    operations.append(data_manager.PutProductionBatch(batch))
    entries.append(
        tlog.append(
            operations,
            tlog.build_entry(
                LogEntryType.DISTILLATION_FINISH,
                timestamp=timestamp,
                product_type=fill.product_type,
                proof=fill.proof,
                proof_gallons_change=fill.proof_gallons,
                notes=command.notes or f"Produced {_fmt(fill.proof_gallons)} PG of {fill.product_type} in batch {batch_name}.",
            ),
        )
    )
    entries.append(
        tlog.append(
            operations,
            tlog.entry_for_container(
                LogEntryType.CREATE_FILLED_CONTAINER,
                stored_destination,
                timestamp=timestamp,
                net_weight_lbs_change=fill.net_weight_lbs,
                proof_gallons_change=fill.proof_gallons,
                notes=f"Filled with {_fmt(fill.proof_gallons)} PG from distillation batch {batch_name}.",
            ),
        )
    )
    commit(context, operations, action="distillation")
    log.info("Recorded distillation batch '%s' into '%s'", batch_name, stored_destination.container_name)
    return OperationResult(containers=tuple(containers), entries=tuple(entries), batch=batch)


def summarize_inventory(context: RuntimeContext) -> InventorySummary:
    """Total wine and proof gallons of filled, active containers."""
    by_product: Dict[str, List[Decimal]] = {}
    by_account: Dict[str, List[Decimal]] = {}
    totals = [Decimal("0"), Decimal("0"), Decimal("0")]
    for container in list_containers(context, status=ContainerStatus.FILLED):
        fill = container.fill
        for key, bucket in ((fill.product_type, by_product), (fill.account, by_account)):
            line = bucket.setdefault(key, [Decimal("0"), Decimal("0"), Decimal("0")])
            line[0] += 1
            line[1] += fill.wine_gallons
            line[2] += fill.proof_gallons
        totals[0] += 1
        totals[1] += fill.wine_gallons
        totals[2] += fill.proof_gallons

    def to_line(values: List[Decimal]) -> SummaryLine:
        return SummaryLine(containers=int(values[0]), wine_gallons=values[1], proof_gallons=values[2])

    summary = InventorySummary(
        by_product={key: to_line(values) for key, values in sorted(by_product.items())},
        by_account={key: to_line(values) for key, values in sorted(by_account.items())},
        total=to_line(totals),
    )
    log.debug("Summarized inventory across %d filled containers", summary.total.containers)
    return summary


def check_consistency(context: RuntimeContext, *, tolerance: Decimal = CONSISTENCY_TOLERANCE) -> List[ConsistencyIssue]:
    """Compare each active container with the sum of its logged deltas.

    This is a maintenance report, not a runtime guard. Entries deleted with
    :func:`spirits_ledger.undo.remove_entry` show up here as drift.

    Args:
        context (RuntimeContext): Runtime context providing workbook access and
            caches.
        tolerance (Decimal): Largest drift, in lbs and in proof gallons,
            that is not reported.

    Returns:
        list[ConsistencyIssue]: One issue per drifting container, in sheet
            order. Empty when the log and the snapshots agree.
    """
    sums: Dict[str, List[Decimal]] = {}
    for entry in _ensure_log_cache(context)["all"]:
        if entry.container_id is None:
            continue
        totals = sums.setdefault(entry.container_id, [Decimal("0"), Decimal("0")])
        totals[0] += entry.net_weight_lbs_change
        totals[1] += entry.proof_gallons_change

    issues: List[ConsistencyIssue] = []
    for container in list_containers(context):
        logged_net, logged_pg = sums.get(container.container_id, [Decimal("0"), Decimal("0")])
        issue = ConsistencyIssue(
            container_id=container.container_id,
            container_name=container.container_name,
            snapshot_net_weight_lbs=container.fill.net_weight_lbs,
            logged_net_weight_lbs=logged_net,
            snapshot_proof_gallons=container.fill.proof_gallons,
            logged_proof_gallons=logged_pg,
        )
        if abs(issue.net_weight_drift) > tolerance or abs(issue.proof_gallons_drift) > tolerance:
            issues.append(issue)
    if issues:
        log.warning("Consistency check found %d drifting container(s)", len(issues))
    else:
        log.info("Consistency check passed")
    return issues
