"""Unit tests for container state transitions."""

from __future__ import annotations

from dataclasses import replace
from datetime import date
from decimal import Decimal

import pytest

from spirits_ledger import ledger
from spirits_ledger.constants import ContainerStatus
from spirits_ledger.conversions import GrossWeight, NetWeight, ProofGallons, WineGallons
from spirits_ledger.data_manager import ContainerRow, FillRecord
from spirits_ledger.errors import ValidationError

TODAY = date(2026, 3, 2)


def _empty_barrel(tare: str = "100") -> ContainerRow:
    return ContainerRow(
        container_id="C1",
        container_name="Barrel 1",
        container_type="barrel",
        tare_weight_lbs=Decimal(tare),
        status=ContainerStatus.EMPTY.value,
        fill=FillRecord(
            product_type="",
            proof=Decimal("0"),
            fill_date=None,
            gross_weight_lbs=Decimal(tare),
            net_weight_lbs=Decimal("0"),
            wine_gallons=Decimal("0"),
            proof_gallons=Decimal("0"),
            spirit_density=Decimal("0"),
            account="storage",
            emptied_date=TODAY,
        ),
    )


def _filled_barrel() -> ContainerRow:
    return ledger.apply_fill(_empty_barrel(), NetWeight(Decimal("300")), 100, "Bourbon", TODAY, "storage")


def _assert_status_invariant(container: ContainerRow) -> None:
    assert container.is_empty == (container.fill.net_weight_lbs <= Decimal("0.001"))


def test_apply_fill_by_net_weight():
    container = _filled_barrel()

    assert container.status == ContainerStatus.FILLED.value
    assert container.fill.net_weight_lbs == Decimal("300.00")
    assert container.fill.gross_weight_lbs == Decimal("400.00")
    assert container.fill.proof_gallons == Decimal("40.120")
    assert container.fill.fill_date == TODAY
    assert container.fill.emptied_date is None
    _assert_status_invariant(container)


@pytest.mark.parametrize(
    "quantity",
    [GrossWeight(Decimal("400")), WineGallons(Decimal("40.120")), ProofGallons(Decimal("40.120"))],
)
def test_apply_fill_accepts_every_unit(quantity):
    container = ledger.apply_fill(_empty_barrel(), quantity, 100, "Bourbon", TODAY, "storage")

    assert abs(container.fill.net_weight_lbs - Decimal("300")) <= Decimal("0.01")
    _assert_status_invariant(container)


def test_apply_fill_with_temperature_stores_true_proof():
    container = ledger.apply_fill(
        _empty_barrel(), NetWeight(Decimal("300")), 100, "Bourbon", TODAY, "storage", temperature=70
    )

    assert container.fill.proof == Decimal("96.8")


def test_apply_fill_of_nothing_is_empty():
    container = ledger.apply_fill(_empty_barrel(), NetWeight(Decimal("0.0005")), 100, "Bourbon", TODAY, "storage")

    assert container.is_empty
    assert container.fill.proof == Decimal("0")
    assert container.fill.emptied_date == TODAY
    _assert_status_invariant(container)


def test_apply_delta_recomputes_at_current_proof():
    container = ledger.apply_delta(_filled_barrel(), Decimal("-10"), on=TODAY)

    assert container.fill.net_weight_lbs == Decimal("290.00")
    assert container.fill.proof == Decimal("100")
    assert container.fill.wine_gallons == Decimal("38.783")
    assert not container.is_empty


def test_apply_delta_to_zero_empties_and_stamps_date():
    later = date(2026, 4, 1)

    container = ledger.apply_delta(_filled_barrel(), Decimal("-300"), on=later)

    assert container.is_empty
    assert container.fill.emptied_date == later
    assert container.fill.gross_weight_lbs == container.tare_weight_lbs
    assert container.fill.proof_gallons == Decimal("0.000")
    _assert_status_invariant(container)


def test_empty_fill_keeps_product_and_account_for_reference():
    container = ledger.empty_fill(_filled_barrel(), on=TODAY)

    assert container.fill.product_type == "Bourbon"
    assert container.fill.account == "storage"
    assert container.fill.fill_date is None


def test_with_proof_rederives_at_new_strength():
    container = ledger.with_proof(_filled_barrel(), Decimal("300"), Decimal("120"), on=TODAY)

    assert container.fill.proof == Decimal("120")
    assert container.fill.net_weight_lbs == Decimal("300.00")
    assert container.fill.proof_gallons > Decimal("40.120")


def test_with_proof_can_relabel_product():
    container = ledger.with_proof(_empty_barrel(), Decimal("50"), Decimal("80"), on=TODAY, product_type="Rum")

    assert container.fill.product_type == "Rum"
    assert not container.is_empty


def test_check_capacity_rejects_overfill():
    with pytest.raises(ValidationError, match="capacity"):
        ledger.check_capacity(_empty_barrel(), Decimal("53.5"))


def test_check_capacity_accepts_exact_capacity():
    ledger.check_capacity(_empty_barrel(), Decimal("53"))


def test_check_capacity_rejects_unknown_type():
    with pytest.raises(ValidationError, match="Unknown container type"):
        ledger.check_capacity(replace(_empty_barrel(), container_type="bucket"), Decimal("1"))


def test_is_empty_quantity_uses_tolerance():
    assert ledger.is_empty_quantity(Decimal("0.001"))
    assert not ledger.is_empty_quantity(Decimal("0.002"))
