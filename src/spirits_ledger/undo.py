"""Undo and removal of transaction log entries.

Undo reverses an entry's effect on the container it references and then
settles the log through an :class:`UndoStrategy`:

* :class:`HardUndo` deletes the original entry.
* :class:`SoftUndo` keeps it and appends an ``UNDO_REVERSAL`` entry linked
  to it, so the audit trail stays complete.

The default strategy comes from the ``[Undo] Strategy`` setting.
Removal deletes an entry without touching any container; it exists to clean
up duplicate or mistaken entries and will show up as drift in
:func:`spirits_ledger.core_logic.check_consistency`.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import UTC, date, datetime, timedelta
from typing import List, MutableSequence, Optional, Set, Union

from . import core_logic, data_manager, ledger, log
from . import transaction_log as tlog
from .constants import EMPTY_TOLERANCE, LogEntryType, UndoStrategyName
from .conversions import solve_proof
from .data_manager import ContainerRow, LogEntryRow
from .errors import EligibilityError, MissingReferenceError, ValidationError


@dataclass(frozen=True)
class UndoEligibility:
    """Whether an entry can be undone, and if not, why."""

    eligible: bool
    reason: str = ""

    def __bool__(self) -> bool:
        return self.eligible


@dataclass(frozen=True)
class UndoResult:
    entry: LogEntryRow
    container: ContainerRow
    strategy: str
    reversal: Optional[LogEntryRow] = None


class UndoStrategy(ABC):
    """How the log is settled once an entry's container effect is reversed."""

    name: UndoStrategyName

    @abstractmethod
    def settle(
        self,
        operations: MutableSequence[data_manager.WriteOperation],
        entry: LogEntryRow,
        before: ContainerRow,
        after: ContainerRow,
        *,
        timestamp: datetime,
    ) -> Optional[LogEntryRow]:
        """Queue the log side of the undo onto ``operations``.

        Returns:
            LogEntryRow | None: The compensating entry, if one is written.
        """


class HardUndo(UndoStrategy):
    """Delete the undone entry from the log."""

    name = UndoStrategyName.HARD

    def settle(self, operations, entry, before, after, *, timestamp):
        operations.append(data_manager.DeleteLogEntry(entry.entry_id))
        return None


class SoftUndo(UndoStrategy):
    """Keep the undone entry and append a linked ``UNDO_REVERSAL``."""

    name = UndoStrategyName.SOFT

    def settle(self, operations, entry, before, after, *, timestamp):
        reversal = tlog.build_entry(
            LogEntryType.UNDO_REVERSAL,
            timestamp=timestamp,
            container_id=entry.container_id,
            container_name=entry.container_name,
            product_type=entry.product_type,
            proof=entry.proof,
            net_weight_lbs_change=after.fill.net_weight_lbs - before.fill.net_weight_lbs,
            proof_gallons_change=after.fill.proof_gallons - before.fill.proof_gallons,
            linked_entry_id=entry.entry_id,
            notes=f"Reverses {entry.entry_type} {entry.entry_id}",
        )
        return tlog.append(operations, reversal)


_STRATEGIES = {
    UndoStrategyName.HARD: HardUndo,
    UndoStrategyName.SOFT: SoftUndo,
}


def strategy_for(name: Union[str, UndoStrategyName]) -> UndoStrategy:
    """Instantiate the strategy registered under ``name``.

    Raises:
        ValueError: If ``name`` is not a known strategy.
    """
    return _STRATEGIES[UndoStrategyName(str(getattr(name, "value", name)).lower())]()


def default_strategy(context: core_logic.RuntimeContext) -> UndoStrategy:
    return strategy_for(context.settings.undo_strategy)


def _reversed_entry_ids(context: core_logic.RuntimeContext) -> Set[str]:
    return {
        entry.linked_entry_id
        for entry in core_logic.list_log_entries(context)
        if entry.entry_type == LogEntryType.UNDO_REVERSAL.value and entry.linked_entry_id
    }


def check_undo_eligibility(
    context: core_logic.RuntimeContext,
    entry_id: str,
    now: Optional[datetime] = None,
) -> UndoEligibility:
    """Decide whether ``entry_id`` can be undone right now.

    Ineligibility is reported through the result, never raised. An entry is
    eligible when its type is undoable, it references a container that still
    exists and is active, it is within the configured undo window, and no
    soft undo has already reversed it.

    Args:
        context (core_logic.RuntimeContext): Runtime context providing
            workbook access and caches.
        entry_id (str): Log entry to check.
        now (datetime | None): Reference time for the window; defaults to the
            current UTC time.

    Returns:
        UndoEligibility: ``eligible`` plus a human-readable ``reason``.
    """
    now = now or datetime.now(UTC)
    try:
        entry = core_logic.get_log_entry(context, entry_id)
    except MissingReferenceError:
        return UndoEligibility(False, "Log entry not found")

    if not tlog.is_undoable(entry):
        return UndoEligibility(False, f"{entry.entry_type} entries cannot be undone")
    if not entry.container_id:
        return UndoEligibility(False, "Entry does not reference a container")
    try:
        container = core_logic.get_container(context, entry.container_id)
    except MissingReferenceError:
        return UndoEligibility(False, "Container no longer exists")
    if not container.is_active:
        return UndoEligibility(False, "Container has been deleted")

    window_days = context.settings.undo_window_days
    if now - tlog.parse_timestamp(entry) > timedelta(days=window_days):
        return UndoEligibility(False, f"Entry is older than {window_days} days")
    if entry.entry_id in _reversed_entry_ids(context):
        return UndoEligibility(False, "Entry has already been undone")
    return UndoEligibility(True)


def reverse_on_container(container: ContainerRow, entry: LogEntryRow, *, on: date) -> ContainerRow:
    """Apply the negation of ``entry``'s deltas to the container's current state.

    Deltas are applied at the container's current proof. An empty container
    is refilled at the entry's proof and product. A proof-down is reversed by
    removing the water and solving for the proof that holds the remaining
    proof gallons.

    Raises:
        ValidationError: If the reversal would remove more than the
            container holds.
    """
    net_delta = -entry.net_weight_lbs_change
    current = container.fill.net_weight_lbs

    if net_delta < 0 and -net_delta > current + EMPTY_TOLERANCE:
        log.warning(
            "Undo of %s would remove %s lbs from '%s' holding %s lbs",
            entry.entry_id,
            -net_delta,
            container.container_name,
            current,
        )
        raise ValidationError(
            f"Cannot undo: {container.container_name} holds only {current} lbs"
        )

    if entry.entry_type == LogEntryType.PROOF_DOWN.value and not container.is_empty:
        remaining = current + net_delta
        previous_proof = solve_proof(remaining, container.fill.proof_gallons)
        return ledger.with_proof(container, remaining, previous_proof, on=on)

    if container.is_empty:
        if ledger.is_empty_quantity(net_delta):
            raise ValidationError(f"Cannot undo: {container.container_name} is empty")
        return ledger.with_proof(
            container,
            net_delta,
            entry.proof,
            on=on,
            product_type=entry.product_type or container.fill.product_type,
        )

    return ledger.apply_delta(container, net_delta, on=on)


def undo_entry(
    context: core_logic.RuntimeContext,
    entry_id: str,
    strategy: Optional[UndoStrategy] = None,
    now: Optional[datetime] = None,
) -> UndoResult:
    """Reverse an eligible entry and settle the log with ``strategy``.

    Only the container the entry references is touched; for transfers the
    paired entry on the other container stays until it is undone itself.

    Args:
        context (core_logic.RuntimeContext): Runtime context providing
            workbook access and caches.
        entry_id (str): Entry to undo.
        strategy (UndoStrategy | None): Overrides the configured strategy.
        now (datetime | None): Reference time; defaults to the current UTC time.

    Returns:
        UndoResult: The undone entry, the restored container, the strategy
            name and the compensating entry for soft undo.

    Raises:
        EligibilityError: If the entry cannot be undone.
        ValidationError: If the container can no longer absorb the reversal.
        ConflictError: If the container changed since it was read.
    """
    now = now or datetime.now(UTC)
    eligibility = check_undo_eligibility(context, entry_id, now)
    if not eligibility:
        log.warning("Undo of '%s' refused: %s", entry_id, eligibility.reason)
        raise EligibilityError(entry_id, eligibility.reason)

    entry = core_logic.get_log_entry(context, entry_id)
    before = core_logic.get_container(context, entry.container_id)
    strategy = strategy or default_strategy(context)

    after = reverse_on_container(before, entry, on=now.date())
    if not after.is_empty:
        ledger.check_capacity(after, after.fill.wine_gallons)

    operations: List[data_manager.WriteOperation] = []
    stored = core_logic.stage_container(operations, before, after)
    reversal = strategy.settle(operations, entry, before, stored, timestamp=now)
    core_logic.commit(context, operations, action=f"undo of {entry.entry_type}")
    log.info(
        "Undid %s '%s' on '%s' (%s undo)",
        entry.entry_type,
        entry.entry_id,
        stored.container_name,
        strategy.name.value,
    )
    return UndoResult(entry=entry, container=stored, strategy=strategy.name.value, reversal=reversal)


def remove_entry(context: core_logic.RuntimeContext, entry_id: str) -> LogEntryRow:
    """Delete a log entry without touching any container.

    Raises:
        MissingReferenceError: If ``entry_id`` is not in the log.
    """
    entry = core_logic.get_log_entry(context, entry_id)
    core_logic.commit(context, [data_manager.DeleteLogEntry(entry.entry_id)], action="entry removal")
    log.info("Removed log entry '%s' (%s)", entry.entry_id, entry.entry_type)
    return entry


__all__ = [
    "UndoEligibility",
    "UndoResult",
    "UndoStrategy",
    "HardUndo",
    "SoftUndo",
    "strategy_for",
    "default_strategy",
    "check_undo_eligibility",
    "reverse_on_container",
    "undo_entry",
    "remove_entry",
]
