"""Construction of transaction log entries.

Entries are immutable once written. Every quantity-changing operation
appends one or more entries to the same write set as its container puts so
that snapshot and log always commit together.
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from decimal import Decimal
from typing import Iterable, List, MutableSequence, Optional

from .constants import LogEntryType
from .conversions import Number, to_decimal
from .data_manager import AppendLogEntry, ContainerRow, LogEntryRow, WriteOperation


UNDOABLE_TYPES: frozenset[LogEntryType] = frozenset(
    {
        LogEntryType.TRANSFER_OUT,
        LogEntryType.TRANSFER_IN,
        LogEntryType.SAMPLE_ADJUST,
        LogEntryType.BOTTLE_PARTIAL,
        LogEntryType.BOTTLE_EMPTY,
        LogEntryType.BOTTLING_GAIN,
        LogEntryType.BOTTLING_LOSS,
        LogEntryType.PROOF_DOWN,
    }
)


def generate_entry_id(*, prefix: str = "L", when: Optional[datetime] = None) -> str:
    """Generate a sortable, unique log entry identifier.

    Returns:
        str: ``{prefix}{YYYYMMDDHHMMSSffffff}{6 hex chars}``. The random
            suffix keeps entries written in the same microsecond distinct.
    """
    when = when or datetime.now(UTC)
    return f"{prefix}{when.strftime('%Y%m%d%H%M%S%f')}{uuid.uuid4().hex[:6]}"


def build_entry(
    entry_type: LogEntryType,
    *,
    timestamp: datetime,
    container_id: Optional[str] = None,
    container_name: Optional[str] = None,
    product_type: Optional[str] = None,
    proof: Number = Decimal("0"),
    net_weight_lbs_change: Number = Decimal("0"),
    proof_gallons_change: Number = Decimal("0"),
    source_container_id: Optional[str] = None,
    source_container_name: Optional[str] = None,
    destination_container_id: Optional[str] = None,
    destination_container_name: Optional[str] = None,
    linked_entry_id: Optional[str] = None,
    notes: Optional[str] = None,
) -> LogEntryRow:
    """Materialize a log entry, assigning its id and timestamp."""
    return LogEntryRow(
        entry_id=generate_entry_id(when=timestamp),
        timestamp_iso=timestamp.isoformat(),
        entry_type=LogEntryType(entry_type).value,
        container_id=container_id,
        container_name=container_name,
        product_type=product_type,
        proof=to_decimal(proof),
        net_weight_lbs_change=to_decimal(net_weight_lbs_change),
        proof_gallons_change=to_decimal(proof_gallons_change),
        source_container_id=source_container_id,
        source_container_name=source_container_name,
        destination_container_id=destination_container_id,
        destination_container_name=destination_container_name,
        linked_entry_id=linked_entry_id,
        notes=notes,
    )


def entry_for_container(
    entry_type: LogEntryType,
    container: ContainerRow,
    *,
    timestamp: datetime,
    net_weight_lbs_change: Number = Decimal("0"),
    proof_gallons_change: Number = Decimal("0"),
    proof: Optional[Number] = None,
    product_type: Optional[str] = None,
    **extra: Optional[str],
) -> LogEntryRow:
    """Build an entry about ``container``, defaulting product and proof to its fill."""
    return build_entry(
        entry_type,
        timestamp=timestamp,
        container_id=container.container_id,
        container_name=container.container_name,
        product_type=product_type if product_type is not None else container.fill.product_type,
        proof=proof if proof is not None else container.fill.proof,
        net_weight_lbs_change=net_weight_lbs_change,
        proof_gallons_change=proof_gallons_change,
        **extra,
    )


def append(write_set: MutableSequence[WriteOperation], entry: LogEntryRow) -> LogEntryRow:
    """Queue ``entry`` on ``write_set`` and hand it back."""
    write_set.append(AppendLogEntry(entry))
    return entry


def is_undoable(entry: LogEntryRow) -> bool:
    try:
        return LogEntryType(entry.entry_type) in UNDOABLE_TYPES
    except ValueError:
        return False


def parse_timestamp(entry: LogEntryRow) -> datetime:
    """Return the entry's timestamp as an aware UTC datetime."""
    when = datetime.fromisoformat(entry.timestamp_iso)
    if when.tzinfo is None:
        when = when.replace(tzinfo=UTC)
    return when


def newest_first(entries: Iterable[LogEntryRow]) -> List[LogEntryRow]:
    """Order entries by timestamp, newest first; ties keep reverse sheet order."""
    indexed = list(enumerate(entries))
    indexed.sort(key=lambda pair: (pair[1].timestamp_iso, pair[0]), reverse=True)
    return [entry for _, entry in indexed]


__all__ = [
    "UNDOABLE_TYPES",
    "generate_entry_id",
    "build_entry",
    "entry_for_container",
    "append",
    "is_undoable",
    "parse_timestamp",
    "newest_first",
]
