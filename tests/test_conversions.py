"""Unit tests for the quantity conversion engine."""

from __future__ import annotations

from decimal import Decimal

import pytest

from spirits_ledger import conversions
from spirits_ledger.constants import ML_PER_GALLON
from spirits_ledger.conversions import GrossWeight, NetWeight, ProofGallons, WineGallons


# ---------------------------------------------------------------------------
# Density model
# ---------------------------------------------------------------------------


def test_density_of_pure_water_and_pure_ethanol():
    """The endpoints of the mixing model are the component densities."""

    assert conversions.density_of(0) == Decimal("8.345")
    assert conversions.density_of(200) == Decimal("6.610")


def test_density_of_100_proof_is_about_7_48():
    assert conversions.density_of(100) == Decimal("7.4775")


def test_density_of_clamps_negative_proof():
    assert conversions.density_of(-10) == conversions.density_of(0)


def test_density_strictly_decreases_with_proof():
    """Higher proof always means a lighter gallon."""

    proofs = [Decimal(value) / 2 for value in range(0, 401)]
    densities = [conversions.density_of(proof) for proof in proofs]
    assert all(lighter < heavier for heavier, lighter in zip(densities, densities[1:]))


# ---------------------------------------------------------------------------
# Conversions
# ---------------------------------------------------------------------------


def test_from_weight_example_barrel():
    """tare 100, gross 400, proof 100 gives 300 lbs and about 40.1 gallons."""

    derived = conversions.from_weight(100, 400, 100)

    assert derived.net_weight_lbs == Decimal("300.00")
    assert derived.spirit_density == Decimal("7.478")
    assert derived.wine_gallons == Decimal("40.120")
    assert derived.proof_gallons == Decimal("40.120")
    assert derived.gross_weight_lbs == Decimal("400.00")


def test_from_weight_gross_below_tare_is_empty():
    derived = conversions.from_weight(100, 90, 100)
    assert derived.net_weight_lbs == Decimal("0.00")
    assert derived.wine_gallons == Decimal("0.000")
    assert derived.proof_gallons == Decimal("0.000")


def test_from_wine_gallons_derives_weight_and_gross():
    derived = conversions.from_wine_gallons(Decimal("40"), 100, Decimal("50"))

    assert derived.net_weight_lbs == Decimal("299.10")
    assert derived.gross_weight_lbs == Decimal("349.10")
    assert derived.proof_gallons == Decimal("40.000")


def test_from_proof_gallons_at_zero_proof_yields_nothing():
    derived = conversions.from_proof_gallons(Decimal("10"), 0, Decimal("50"))

    assert derived.wine_gallons == Decimal("0.000")
    assert derived.proof_gallons == Decimal("0.000")
    assert derived.net_weight_lbs == Decimal("0.00")
    assert derived.gross_weight_lbs == Decimal("50.00")


def test_from_proof_gallons_divides_by_strength():
    derived = conversions.from_proof_gallons(Decimal("40"), 150, 0)

    assert derived.wine_gallons == Decimal("26.667")
    assert derived.proof_gallons == Decimal("40.000")


@pytest.mark.parametrize("proof", [Decimal("0"), Decimal("40"), Decimal("100"), Decimal("151.5"), Decimal("200")])
def test_weight_to_volume_round_trip_recovers_net_weight(proof):
    """Going weight -> wine gallons -> weight stays within 0.01 lb."""

    forward = conversions.from_weight(Decimal("112.5"), Decimal("587.33"), proof)
    back = conversions.from_wine_gallons(forward.wine_gallons, proof, Decimal("112.5"))

    assert abs(back.net_weight_lbs - forward.net_weight_lbs) <= Decimal("0.01")


def test_convert_dispatches_on_quantity_type():
    tare = Decimal("100")

    assert conversions.convert(NetWeight(Decimal("300")), 100, tare) == conversions.from_weight(tare, 400, 100)
    assert conversions.convert(GrossWeight(Decimal("400")), 100, tare) == conversions.from_weight(tare, 400, 100)
    assert conversions.convert(WineGallons(Decimal("40")), 100, tare) == conversions.from_wine_gallons(40, 100, tare)
    assert conversions.convert(ProofGallons(Decimal("40")), 100, tare) == conversions.from_proof_gallons(40, 100, tare)


def test_convert_rejects_untagged_numbers():
    with pytest.raises(TypeError):
        conversions.convert(Decimal("300"), 100, 0)  # type: ignore[arg-type]


def test_quantity_labels_and_proof_requirements():
    assert NetWeight(Decimal("1")).label == "lbs"
    assert not GrossWeight(Decimal("1")).needs_proof
    assert WineGallons(Decimal("1")).needs_proof
    assert ProofGallons(Decimal("1")).label == "proof gallons"


def test_to_decimal_goes_through_str_for_floats():
    assert conversions.to_decimal(0.1) == Decimal("0.1")
    assert conversions.to_decimal(None) == Decimal("0")
    with pytest.raises(TypeError):
        conversions.to_decimal(True)


# ---------------------------------------------------------------------------
# Temperature correction
# ---------------------------------------------------------------------------


def test_true_proof_without_temperature_is_observed_proof():
    assert conversions.true_proof(Decimal("100")) == Decimal("100")


def test_true_proof_at_reference_temperature_is_unchanged():
    assert conversions.true_proof(Decimal("100"), 60) == Decimal("100.0")


def test_true_proof_corrects_warm_reading_down():
    assert conversions.true_proof(Decimal("100"), 70) == Decimal("96.8")


def test_true_proof_rounds_temperature_to_even_degree():
    """71F rounds up to 72F before the lookup."""

    assert conversions.true_proof(Decimal("100"), 71) == conversions.true_proof(Decimal("100"), 72)


def test_true_proof_corrects_cold_reading_up():
    assert conversions.true_proof(Decimal("100"), 50) > Decimal("100")


def test_temperature_outside_table_gets_no_correction():
    assert conversions.temperature_correction(120, 100) == Decimal("0")
    assert conversions.true_proof(Decimal("100"), 120) == Decimal("100")


def test_from_weight_applies_temperature_once():
    derived = conversions.from_weight(100, 400, 100, temperature=70)

    assert derived.proof == Decimal("96.8")
    assert derived.spirit_density == conversions.round_volume(conversions.density_of(Decimal("96.8")))


# ---------------------------------------------------------------------------
# Inverses and helpers
# ---------------------------------------------------------------------------


@pytest.mark.parametrize("proof", [Decimal("40"), Decimal("80"), Decimal("125"), Decimal("190")])
def test_solve_proof_inverts_the_linear_model(proof):
    derived = conversions.from_wine_gallons(Decimal("50"), proof, 0)

    solved = conversions.solve_proof(derived.net_weight_lbs, derived.proof_gallons)

    assert abs(solved - proof) <= Decimal("0.05")


def test_solve_proof_of_nothing_is_zero():
    assert conversions.solve_proof(0, 10) == Decimal("0")
    assert conversions.solve_proof(10, 0) == Decimal("0")


def test_wine_gallons_for_bottles():
    result = conversions.wine_gallons_for_bottles(400, 750)

    assert result == Decimal(300000) / ML_PER_GALLON
    assert conversions.round_volume(result) == Decimal("79.252")
