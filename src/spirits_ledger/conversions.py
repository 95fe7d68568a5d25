"""Quantity conversion engine.

Pure functions that map one of {net/gross weight, wine gallons, proof
gallons} plus proof (and optionally a temperature) onto the full set of
derived quantities for a container with a known tare weight. Nothing here
touches storage, and nothing here validates ranges: callers reject proof
outside ``[0, 200]`` before calling in.

Every conversion goes through :func:`density_of`, the linear volume-fraction
mixing model, so moving between representations is lossless up to rounding.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import ClassVar, Optional, Union

from .constants import (
    DENSITY_ETHANOL_LBS_PER_GALLON,
    DENSITY_WATER_LBS_PER_GALLON,
    MAX_PROOF,
    ML_PER_GALLON,
    TEMPERATURE_CORRECTIONS,
)


WEIGHT_PLACES = Decimal("0.01")
VOLUME_PLACES = Decimal("0.001")
PROOF_PLACES = Decimal("0.01")
ZERO = Decimal("0")
HUNDRED = Decimal("100")

Number = Union[Decimal, int, float, str]


@dataclass(frozen=True)
class DerivedQuantities:
    """Complete set of quantities describing a container's contents."""

    net_weight_lbs: Decimal
    wine_gallons: Decimal
    proof_gallons: Decimal
    spirit_density: Decimal
    gross_weight_lbs: Decimal
    proof: Decimal


@dataclass(frozen=True)
class NetWeight:
    """Quantity expressed as net product weight in pounds."""

    lbs: Decimal
    label: ClassVar[str] = "lbs"
    needs_proof: ClassVar[bool] = False

    @property
    def amount(self) -> Decimal:
        return to_decimal(self.lbs)


@dataclass(frozen=True)
class GrossWeight:
    """Quantity expressed as a scale reading including the container's tare."""

    lbs: Decimal
    label: ClassVar[str] = "lbs gross"
    needs_proof: ClassVar[bool] = False

    @property
    def amount(self) -> Decimal:
        return to_decimal(self.lbs)


@dataclass(frozen=True)
class WineGallons:
    """Quantity expressed as volumetric gallons of the mixture."""

    gallons: Decimal
    label: ClassVar[str] = "wine gallons"
    needs_proof: ClassVar[bool] = True

    @property
    def amount(self) -> Decimal:
        return to_decimal(self.gallons)


@dataclass(frozen=True)
class ProofGallons:
    """Quantity expressed as strength-adjusted proof gallons."""

    gallons: Decimal
    label: ClassVar[str] = "proof gallons"
    needs_proof: ClassVar[bool] = True

    @property
    def amount(self) -> Decimal:
        return to_decimal(self.gallons)


QuantityInput = Union[NetWeight, GrossWeight, WineGallons, ProofGallons]


def to_decimal(value: Optional[Number]) -> Decimal:
    """Coerce user or worksheet input into a :class:`Decimal`.

    ``None`` becomes zero. Floats go through ``str`` so that ``0.1`` stays
    ``Decimal("0.1")`` instead of its binary expansion.
    """
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise TypeError("Boolean values are not quantities")
    return Decimal(str(value))


def round_weight(value: Decimal) -> Decimal:
    return value.quantize(WEIGHT_PLACES, rounding=ROUND_HALF_UP)


def round_volume(value: Decimal) -> Decimal:
    return value.quantize(VOLUME_PLACES, rounding=ROUND_HALF_UP)


def density_of(proof: Number) -> Decimal:
    """Return the lbs-per-gallon of an ethanol/water mixture at ``proof``.

    Linear mixing of the component densities by volume fraction. Negative
    proof is clamped to zero (pure water).
    """
    prf = to_decimal(proof)
    if prf < ZERO:
        prf = ZERO
    ethanol_fraction = prf / MAX_PROOF
    return (
        ethanol_fraction * DENSITY_ETHANOL_LBS_PER_GALLON
        + (1 - ethanol_fraction) * DENSITY_WATER_LBS_PER_GALLON
    )


def temperature_correction(temperature_f: Number, observed_proof: Number) -> Decimal:
    """Look up the proof correction for a hydrometer reading.

    The temperature is rounded to the nearest even degree and the proof to
    the nearest multiple of five, matching the table's grid. Readings outside
    the table get no correction.
    """
    temperature = to_decimal(temperature_f)
    proof = to_decimal(observed_proof)
    rounded_temperature = int((temperature / 2).quantize(Decimal("1"), rounding=ROUND_HALF_UP)) * 2
    rounded_proof = int((proof / 5).quantize(Decimal("1"), rounding=ROUND_HALF_UP)) * 5
    row = TEMPERATURE_CORRECTIONS.get(rounded_temperature)
    if row is None:
        return ZERO
    return row.get(rounded_proof, ZERO)


def true_proof(observed_proof: Number, temperature_f: Optional[Number] = None) -> Decimal:
    """Map an observed proof to true proof; without a temperature it is unchanged."""
    proof = to_decimal(observed_proof)
    if proof < ZERO:
        proof = ZERO
    if temperature_f is None:
        return proof
    corrected = proof + temperature_correction(temperature_f, proof)
    return min(max(corrected, ZERO), MAX_PROOF)


def _derived(
    net: Decimal,
    wine_gallons: Decimal,
    proof_gallons: Decimal,
    density: Decimal,
    gross: Decimal,
    proof: Decimal,
) -> DerivedQuantities:
    return DerivedQuantities(
        net_weight_lbs=round_weight(net),
        wine_gallons=round_volume(wine_gallons),
        proof_gallons=round_volume(proof_gallons),
        spirit_density=round_volume(density),
        gross_weight_lbs=round_weight(gross),
        proof=proof,
    )


def from_weight(
    tare: Number,
    gross: Number,
    proof: Number,
    temperature: Optional[Number] = None,
) -> DerivedQuantities:
    """Derive every quantity from a scale reading."""
    tare_lbs = to_decimal(tare)
    gross_lbs = to_decimal(gross)
    prf = true_proof(proof, temperature)

    net = gross_lbs - tare_lbs if gross_lbs > tare_lbs else ZERO
    density = density_of(prf)
    wine_gallons = net / density if net > ZERO and density > ZERO else ZERO
    proof_gallons = wine_gallons * (prf / HUNDRED)
    return _derived(net, wine_gallons, proof_gallons, density, gross_lbs, prf)


def from_wine_gallons(
    wine_gallons: Number,
    proof: Number,
    tare: Number,
    temperature: Optional[Number] = None,
) -> DerivedQuantities:
    """Derive every quantity from a volume in wine gallons."""
    wg = to_decimal(wine_gallons)
    tare_lbs = to_decimal(tare)
    prf = true_proof(proof, temperature)

    density = density_of(prf)
    net = wg * density
    proof_gallons = wg * (prf / HUNDRED)
    return _derived(net, wg, proof_gallons, density, net + tare_lbs, prf)


def from_proof_gallons(
    proof_gallons: Number,
    proof: Number,
    tare: Number,
    temperature: Optional[Number] = None,
) -> DerivedQuantities:
    """Derive every quantity from proof gallons; zero proof yields nothing."""
    pg = to_decimal(proof_gallons)
    tare_lbs = to_decimal(tare)
    prf = true_proof(proof, temperature)

    if prf > ZERO:
        wg = pg / (prf / HUNDRED)
    else:
        wg = ZERO
        pg = ZERO
    density = density_of(prf)
    net = wg * density
    return _derived(net, wg, pg, density, net + tare_lbs, prf)


def convert(
    quantity: QuantityInput,
    proof: Number,
    tare: Number,
    temperature: Optional[Number] = None,
) -> DerivedQuantities:
    """Dispatch a tagged quantity to the matching conversion."""
    if isinstance(quantity, NetWeight):
        return from_weight(tare, to_decimal(tare) + quantity.amount, proof, temperature)
    if isinstance(quantity, GrossWeight):
        return from_weight(tare, quantity.amount, proof, temperature)
    if isinstance(quantity, WineGallons):
        return from_wine_gallons(quantity.amount, proof, tare, temperature)
    if isinstance(quantity, ProofGallons):
        return from_proof_gallons(quantity.amount, proof, tare, temperature)
    raise TypeError(f"Unsupported quantity input: {quantity!r}")


def solve_proof(net_weight_lbs: Number, proof_gallons: Number) -> Decimal:
    """Return the proof at which ``net_weight_lbs`` holds ``proof_gallons``.

    Closed-form inverse of the linear mixing model:
    ``net / (100 * pg) = W / proof + (E - W) / 200``.
    """
    net = to_decimal(net_weight_lbs)
    pg = to_decimal(proof_gallons)
    if net <= ZERO or pg <= ZERO:
        return ZERO
    slope = (DENSITY_ETHANOL_LBS_PER_GALLON - DENSITY_WATER_LBS_PER_GALLON) / MAX_PROOF
    denominator = net / (HUNDRED * pg) - slope
    if denominator <= ZERO:
        return MAX_PROOF
    proof = DENSITY_WATER_LBS_PER_GALLON / denominator
    return min(proof, MAX_PROOF).quantize(PROOF_PLACES, rounding=ROUND_HALF_UP)


def wine_gallons_for_bottles(bottle_count: int, bottle_size_ml: Number) -> Decimal:
    """Volume in wine gallons filled into ``bottle_count`` bottles."""
    return Decimal(bottle_count) * to_decimal(bottle_size_ml) / ML_PER_GALLON


__all__ = [
    "DerivedQuantities",
    "NetWeight",
    "GrossWeight",
    "WineGallons",
    "ProofGallons",
    "QuantityInput",
    "to_decimal",
    "round_weight",
    "round_volume",
    "density_of",
    "temperature_correction",
    "true_proof",
    "from_weight",
    "from_wine_gallons",
    "from_proof_gallons",
    "convert",
    "solve_proof",
    "wine_gallons_for_bottles",
]
