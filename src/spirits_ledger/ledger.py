"""Container state transitions.

Pure functions that take a :class:`~spirits_ledger.data_manager.ContainerRow`
snapshot and return the snapshot that results from a fill, a weight delta,
a proof change or an explicit empty. Nothing here writes to the workbook or
bumps versions; the orchestrators in :mod:`spirits_ledger.core_logic` own
that.

A container moves between two states only: empty and filled. Whenever the
net weight drops to the empty tolerance the fill is zeroed (proof 0, gross
equal to tare) and the emptied date is stamped.
"""

from __future__ import annotations

from dataclasses import replace
from datetime import date
from decimal import Decimal
from typing import Optional

from . import log
from .constants import EMPTY_TOLERANCE, ContainerStatus, ContainerType
from .conversions import (
    DerivedQuantities,
    Number,
    QuantityInput,
    convert,
    from_weight,
    to_decimal,
)
from .data_manager import ContainerRow, FillRecord
from .errors import ValidationError


def is_empty_quantity(net_weight_lbs: Number) -> bool:
    """Return ``True`` when a net weight is within the empty tolerance."""
    return to_decimal(net_weight_lbs) <= EMPTY_TOLERANCE


def _filled_record(
    derived: DerivedQuantities,
    *,
    product_type: str,
    fill_date: Optional[date],
    account: str,
) -> FillRecord:
    return FillRecord(
        product_type=product_type,
        proof=derived.proof,
        fill_date=fill_date,
        gross_weight_lbs=derived.gross_weight_lbs,
        net_weight_lbs=derived.net_weight_lbs,
        wine_gallons=derived.wine_gallons,
        proof_gallons=derived.proof_gallons,
        spirit_density=derived.spirit_density,
        account=account,
        emptied_date=None,
    )


def empty_fill(container: ContainerRow, *, on: date) -> ContainerRow:
    """Return ``container`` emptied on ``on``.

    The product type and account of the last fill are kept for reference.
    """
    derived = from_weight(container.tare_weight_lbs, container.tare_weight_lbs, 0)
    fill = FillRecord(
        product_type=container.fill.product_type,
        proof=Decimal("0"),
        fill_date=None,
        gross_weight_lbs=derived.gross_weight_lbs,
        net_weight_lbs=derived.net_weight_lbs,
        wine_gallons=derived.wine_gallons,
        proof_gallons=derived.proof_gallons,
        spirit_density=derived.spirit_density,
        account=container.fill.account,
        emptied_date=on,
    )
    return replace(container, status=ContainerStatus.EMPTY.value, fill=fill)


def _settle(
    container: ContainerRow,
    derived: DerivedQuantities,
    *,
    product_type: str,
    fill_date: Optional[date],
    account: str,
    on: date,
) -> ContainerRow:
    if is_empty_quantity(derived.net_weight_lbs):
        relabeled = replace(container, fill=replace(container.fill, product_type=product_type, account=account))
        return empty_fill(relabeled, on=on)
    fill = _filled_record(derived, product_type=product_type, fill_date=fill_date, account=account)
    return replace(container, status=ContainerStatus.FILLED.value, fill=fill)


def apply_fill(
    container: ContainerRow,
    quantity: QuantityInput,
    proof: Number,
    product_type: str,
    fill_date: date,
    account: str,
    temperature: Optional[Number] = None,
) -> ContainerRow:
    """Derive a fresh fill from whichever unit the caller supplied.

    The previous contents are discarded. A quantity at or below the empty
    tolerance produces an empty container.
    """
    derived = convert(quantity, proof, container.tare_weight_lbs, temperature)
    return _settle(
        container,
        derived,
        product_type=product_type,
        fill_date=fill_date,
        account=account,
        on=fill_date,
    )


def apply_delta(container: ContainerRow, net_weight_delta: Number, *, on: date) -> ContainerRow:
    """Add (or with a negative delta, remove) net weight at the current proof."""
    new_net = container.fill.net_weight_lbs + to_decimal(net_weight_delta)
    if is_empty_quantity(new_net):
        return empty_fill(container, on=on)

    derived = from_weight(container.tare_weight_lbs, container.tare_weight_lbs + new_net, container.fill.proof)
    return _settle(
        container,
        derived,
        product_type=container.fill.product_type,
        fill_date=container.fill.fill_date or on,
        account=container.fill.account,
        on=on,
    )


def with_proof(
    container: ContainerRow,
    net_weight_lbs: Number,
    proof: Number,
    *,
    on: date,
    product_type: Optional[str] = None,
) -> ContainerRow:
    """Re-derive the fill for ``net_weight_lbs`` of spirit at ``proof``."""
    tare = container.tare_weight_lbs
    derived = from_weight(tare, tare + to_decimal(net_weight_lbs), proof)
    return _settle(
        container,
        derived,
        product_type=product_type if product_type is not None else container.fill.product_type,
        fill_date=container.fill.fill_date or on,
        account=container.fill.account,
        on=on,
    )


def check_capacity(container: ContainerRow, wine_gallons: Number) -> None:
    """Reject contents that exceed the container type's nominal capacity.

    Raises:
        ValidationError: If ``wine_gallons`` is above capacity or the
            container type is unknown.
    """
    try:
        capacity = ContainerType(container.container_type).capacity_gallons
    except ValueError as exc:
        raise ValidationError(f"Unknown container type: {container.container_type}") from exc
    requested = to_decimal(wine_gallons)
    if requested > capacity + EMPTY_TOLERANCE:
        log.warning(
            "Capacity check failed for '%s': %s gal > %s gal",
            container.container_name,
            requested,
            capacity,
        )
        raise ValidationError(
            f"{container.container_name} would hold {requested} gal, "
            f"exceeding its {capacity} gal capacity"
        )


__all__ = [
    "is_empty_quantity",
    "empty_fill",
    "apply_fill",
    "apply_delta",
    "with_proof",
    "check_capacity",
]
