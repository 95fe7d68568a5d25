"""Tests for undoing and removing transaction log entries."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from decimal import Decimal

import pytest

from spirits_ledger import core_logic, undo
from spirits_ledger.constants import LogEntryType, UndoStrategyName
from spirits_ledger.conversions import NetWeight, ProofGallons
from spirits_ledger.errors import EligibilityError, ValidationError

MOMENT = datetime(2026, 3, 2, 9, 30, tzinfo=UTC)
SOON = MOMENT + timedelta(hours=1)


@pytest.fixture
def context(runtime_context):
    return runtime_context


def _transfer(context, source, destination, quantity):
    return core_logic.transfer(
        context,
        core_logic.TransferCommand(source.container_id, destination.container_id, quantity, timestamp=MOMENT),
    )


def _sample(context, container, lbs):
    return core_logic.adjust_contents(
        context,
        core_logic.AdjustContentsCommand(container.container_id, NetWeight(Decimal(lbs)), timestamp=MOMENT),
    )


# ---------------------------------------------------------------------------
# Strategy selection
# ---------------------------------------------------------------------------


def test_strategy_for_accepts_names_and_enums():
    assert isinstance(undo.strategy_for("hard"), undo.HardUndo)
    assert isinstance(undo.strategy_for("SOFT"), undo.SoftUndo)
    assert isinstance(undo.strategy_for(UndoStrategyName.SOFT), undo.SoftUndo)


def test_strategy_for_rejects_unknown_names():
    with pytest.raises(ValueError):
        undo.strategy_for("sideways")


def test_default_strategy_follows_configuration(context, soft_undo_context):
    assert isinstance(undo.default_strategy(context), undo.HardUndo)
    assert isinstance(undo.default_strategy(soft_undo_context), undo.SoftUndo)


# ---------------------------------------------------------------------------
# Eligibility
# ---------------------------------------------------------------------------


def test_eligible_entry(context, make_container):
    entry = _sample(context, make_container(), "10").entries[0]

    eligibility = undo.check_undo_eligibility(context, entry.entry_id, SOON)

    assert eligibility
    assert eligibility.reason == ""


def test_unknown_entry_is_not_eligible(context):
    eligibility = undo.check_undo_eligibility(context, "L-missing", SOON)

    assert not eligibility
    assert eligibility.reason == "Log entry not found"


def test_creation_entries_cannot_be_undone(context, make_container):
    make_container()
    (entry,) = core_logic.list_log_entries(context)

    eligibility = undo.check_undo_eligibility(context, entry.entry_id, SOON)

    assert not eligibility
    assert "CREATE_FILLED_CONTAINER entries cannot be undone" == eligibility.reason


def test_entries_outside_the_window_are_not_eligible(context, make_container):
    entry = _sample(context, make_container(), "10").entries[0]

    eligibility = undo.check_undo_eligibility(context, entry.entry_id, MOMENT + timedelta(days=31))

    assert not eligibility
    assert "older than 30 days" in eligibility.reason


def test_entries_on_deleted_containers_are_not_eligible(context, make_container):
    barrel = make_container()
    entry = _sample(context, barrel, "10").entries[0]
    core_logic.delete_container(context, core_logic.DeleteContainerCommand(barrel.container_id))

    eligibility = undo.check_undo_eligibility(context, entry.entry_id, SOON)

    assert eligibility.reason == "Container has been deleted"


def test_undo_of_ineligible_entry_raises(context, make_container):
    make_container()
    (entry,) = core_logic.list_log_entries(context)

    with pytest.raises(EligibilityError) as excinfo:
        undo.undo_entry(context, entry.entry_id, now=SOON)

    assert excinfo.value.entry_id == entry.entry_id
    assert "cannot be undone" in str(excinfo.value)


# ---------------------------------------------------------------------------
# Hard and soft undo
# ---------------------------------------------------------------------------


def test_hard_undo_restores_container_and_deletes_entry(context, make_container):
    barrel = make_container()
    entry = _sample(context, barrel, "10").entries[0]

    result = undo.undo_entry(context, entry.entry_id, now=SOON)

    assert result.strategy == "hard"
    assert result.reversal is None
    assert result.container.fill.net_weight_lbs == Decimal("300.00")
    assert result.container.fill.proof_gallons == Decimal("40.120")
    assert entry.entry_id not in {item.entry_id for item in core_logic.list_log_entries(context)}
    assert core_logic.check_consistency(context) == []
    assert not undo.check_undo_eligibility(context, entry.entry_id, SOON)


def test_soft_undo_appends_linked_reversal(soft_undo_context, make_container):
    context = soft_undo_context
    barrel = make_container(context=context)
    entry = _sample(context, barrel, "10").entries[0]

    result = undo.undo_entry(context, entry.entry_id, now=SOON)

    assert result.strategy == "soft"
    reversal = result.reversal
    assert reversal.entry_type == LogEntryType.UNDO_REVERSAL.value
    assert reversal.linked_entry_id == entry.entry_id
    assert reversal.net_weight_lbs_change == Decimal("10.00")
    assert entry.entry_id in {item.entry_id for item in core_logic.list_log_entries(context)}
    assert core_logic.check_consistency(context) == []

    eligibility = undo.check_undo_eligibility(context, entry.entry_id, SOON)
    assert eligibility.reason == "Entry has already been undone"


def test_explicit_strategy_overrides_configuration(context, make_container):
    entry = _sample(context, make_container(), "10").entries[0]

    result = undo.undo_entry(context, entry.entry_id, strategy=undo.SoftUndo(), now=SOON)

    assert result.strategy == "soft"
    assert result.reversal is not None


def test_undo_transfer_out_only_touches_source(context, make_container):
    source = make_container("Tank A", container_type="tank", quantity=ProofGallons(Decimal("80")))
    destination = make_container("Tank B", container_type="tank", quantity=None)
    out_entry, _ = _transfer(context, source, destination, ProofGallons(Decimal("50"))).entries

    result = undo.undo_entry(context, out_entry.entry_id, now=SOON)

    assert result.container.container_id == source.container_id
    assert result.container.fill.net_weight_lbs == Decimal("598.20")
    assert result.container.fill.proof_gallons == Decimal("80.000")
    assert core_logic.get_container(context, destination.container_id).fill.proof_gallons == Decimal("50.001")


def test_undo_refills_an_emptied_container(context, make_container):
    barrel = make_container()
    entry = _sample(context, barrel, "300").entries[0]
    assert core_logic.get_container(context, barrel.container_id).is_empty

    result = undo.undo_entry(context, entry.entry_id, now=SOON)

    container = result.container
    assert not container.is_empty
    assert container.fill.proof == Decimal("100")
    assert container.fill.product_type == "Bourbon"
    assert container.fill.net_weight_lbs == Decimal("300.00")


def test_undo_bottle_empty_after_a_gain_restores_the_original_contents(context, make_container):
    barrel = make_container()
    bottled = core_logic.bottle(
        context,
        core_logic.BottleCommand(barrel.container_id, bottle_count=300, bottle_size_ml=Decimal("750"), timestamp=MOMENT),
    )
    emptied, gain = bottled.entries

    result = undo.undo_entry(context, emptied.entry_id, now=SOON)

    assert result.container.fill.net_weight_lbs == Decimal("300.00")
    assert result.container.fill.proof_gallons == barrel.fill.proof_gallons
    assert core_logic.check_consistency(context) == []
    eligibility = undo.check_undo_eligibility(context, gain.entry_id, SOON)
    assert not eligibility
    assert eligibility.reason == "Entry does not reference a container"


def test_undo_cannot_remove_more_than_container_holds(context, make_container):
    source = make_container("Barrel 1")
    destination = make_container("Barrel 2", quantity=None)
    _, in_entry = _transfer(context, source, destination, NetWeight(Decimal("100"))).entries
    _sample(context, destination, "100")

    with pytest.raises(ValidationError, match="holds only"):
        undo.undo_entry(context, in_entry.entry_id, now=SOON)


def test_undo_proof_down_solves_previous_proof(context, make_container):
    barrel = make_container(quantity=ProofGallons(Decimal("40")), proof=Decimal("150"))
    entry = core_logic.proof_down(
        context, core_logic.ProofDownCommand(barrel.container_id, Decimal("100"), timestamp=MOMENT)
    ).entries[0]

    result = undo.undo_entry(context, entry.entry_id, now=SOON)

    container = result.container
    assert container.fill.proof == Decimal("150.00")
    assert container.fill.net_weight_lbs == Decimal("187.83")
    assert abs(container.fill.proof_gallons - Decimal("40")) <= Decimal("0.001")


# ---------------------------------------------------------------------------
# Removal
# ---------------------------------------------------------------------------


def test_remove_entry_leaves_containers_alone(context, make_container):
    barrel = make_container()
    entry = _sample(context, barrel, "10").entries[0]

    removed = undo.remove_entry(context, entry.entry_id)

    assert removed == entry
    assert core_logic.get_container(context, barrel.container_id).fill.net_weight_lbs == Decimal("290.00")
    (issue,) = core_logic.check_consistency(context)
    assert issue.net_weight_drift == Decimal("-10.00")


def test_remove_entry_accepts_any_type(context):
    entry = core_logic.record_production(
        context, core_logic.ProductionCommand("Mash 1", "Bourbon", Decimal("100"), timestamp=MOMENT)
    ).entry

    undo.remove_entry(context, entry.entry_id)

    assert core_logic.list_log_entries(context) == []
