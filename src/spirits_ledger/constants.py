"""Enumerations and static tables shared across the spirits ledger modules.

Centralises domain constants so that the data access layer (DAL), the
conversion engine, the business logic layer (BLL), and the CLI rely on a
single source of truth for identifiers, capacities, and physical constants.
"""

from __future__ import annotations

from decimal import Decimal
from enum import Enum
from typing import Dict, Mapping


# Central schema version expected by all layers when validating workbooks.
EXPECTED_SCHEMA_VERSION = "1.0.0"

# Net weight (lbs) at or below which a container counts as empty. The same
# tolerance bounds the "requested vs. available" checks of transfers,
# adjustments and distillation charges.
EMPTY_TOLERANCE = Decimal("0.001")

# Wine gallons within which a bottling run counts as matching the container.
# Bottle counts resolve volume to the hundredth of a gallon, so a run that
# agrees with the container at that precision empties it cleanly.
BOTTLING_TOLERANCE_GALLONS = Decimal("0.005")

# Lbs per US gallon of the two mixture components.
DENSITY_WATER_LBS_PER_GALLON = Decimal("8.345")
DENSITY_ETHANOL_LBS_PER_GALLON = Decimal("6.610")

MAX_PROOF = Decimal("200")
ML_PER_GALLON = Decimal("3785.41")

DEFAULT_UNDO_WINDOW_DAYS = 30


class ContainerStatus(str, Enum):
    """Enumerate the two fill states a container can be in."""

    EMPTY = "empty"
    FILLED = "filled"


class ContainerType(str, Enum):
    """Enumerate the supported container types."""

    BARREL = "barrel"
    DRUM = "drum"
    TANK = "tank"
    TOTE = "tote"
    SMALL_TOTE = "small_tote"
    STILL = "still"
    FERMENTER = "fermenter"

    @property
    def capacity_gallons(self) -> Decimal:
        return CONTAINER_CAPACITIES_GALLONS[self]


CONTAINER_CAPACITIES_GALLONS: Mapping[ContainerType, Decimal] = {
    ContainerType.BARREL: Decimal("53"),
    ContainerType.DRUM: Decimal("55"),
    ContainerType.TANK: Decimal("1000"),
    ContainerType.TOTE: Decimal("275"),
    ContainerType.SMALL_TOTE: Decimal("135"),
    ContainerType.STILL: Decimal("250"),
    ContainerType.FERMENTER: Decimal("500"),
}


class Account(str, Enum):
    """Enumerate the bonded accounts a fill can be reported under."""

    STORAGE = "storage"
    PRODUCTION = "production"
    PROCESSING = "processing"


class LogEntryType(str, Enum):
    """Enumerate the closed set of transaction log entry types."""

    CREATE_EMPTY_CONTAINER = "CREATE_EMPTY_CONTAINER"
    CREATE_FILLED_CONTAINER = "CREATE_FILLED_CONTAINER"
    REFILL_CONTAINER = "REFILL_CONTAINER"
    EDIT_FILL_DATA_CORRECTION = "EDIT_FILL_DATA_CORRECTION"
    EDIT_FILL_FROM_EMPTY = "EDIT_FILL_FROM_EMPTY"
    EDIT_EMPTY_FROM_FILLED = "EDIT_EMPTY_FROM_FILLED"
    TRANSFER_OUT = "TRANSFER_OUT"
    TRANSFER_IN = "TRANSFER_IN"
    SAMPLE_ADJUST = "SAMPLE_ADJUST"
    BOTTLE_PARTIAL = "BOTTLE_PARTIAL"
    BOTTLE_EMPTY = "BOTTLE_EMPTY"
    BOTTLING_GAIN = "BOTTLING_GAIN"
    BOTTLING_LOSS = "BOTTLING_LOSS"
    PROOF_DOWN = "PROOF_DOWN"
    CHANGE_ACCOUNT = "CHANGE_ACCOUNT"
    DELETE_FILLED_CONTAINER = "DELETE_FILLED_CONTAINER"
    DELETE_EMPTY_CONTAINER = "DELETE_EMPTY_CONTAINER"
    DELETE_PRODUCT = "DELETE_PRODUCT"
    CREATE_BULK_CONTAINERS = "CREATE_BULK_CONTAINERS"
    PRODUCTION = "PRODUCTION"
    DISTILLATION_FINISH = "DISTILLATION_FINISH"
    DELETE_PRODUCTION_BATCH = "DELETE_PRODUCTION_BATCH"
    UNDO_REVERSAL = "UNDO_REVERSAL"


class BatchType(str, Enum):
    """Kinds of production batch kept on the batch sheet."""

    FERMENTATION = "fermentation"
    DISTILLATION = "distillation"


class RemainderAction(str, Enum):
    """What to do with spirit left in a container after a partial bottling."""

    KEEP = "keep"
    LOSS = "loss"
    ADJUST = "adjust"


class AdjustmentDirection(str, Enum):
    """Direction of a sample or manual adjustment."""

    ADD = "add"
    REMOVE = "remove"


class UndoStrategyName(str, Enum):
    """Enumerate the available undo strategies."""

    HARD = "hard"
    SOFT = "soft"


class SheetName(str, Enum):
    """Enumerate the workbook sheet names managed by the DAL."""

    CONTAINERS = "Containers"
    PRODUCTS = "Products"
    TRANSACTION_LOG = "TransactionLog"
    PRODUCTION_BATCHES = "ProductionBatches"


BOTTLE_SIZES_ML: Mapping[str, int] = {
    "50mL": 50,
    "100mL": 100,
    "200mL": 200,
    "375mL": 375,
    "500mL": 500,
    "700mL": 700,
    "750mL": 750,
    "1L": 1000,
    "1.75L": 1750,
}

DEFAULT_PRODUCTS: tuple[tuple[str, str], ...] = (
    ("Bourbon", "Straight bourbon whiskey"),
    ("Rye Whiskey", "Straight rye whiskey"),
    ("Vodka", "Neutral spirit, charcoal filtered"),
    ("Gin", "Distilled gin"),
    ("Rum", "Molasses rum"),
    ("Low Wines", "First distillation run"),
    ("Unspecified Spirit", ""),
)


# Change in proof per degree Fahrenheit below 60F, at selected observed proofs.
# Readings above 60F read high, so the correction is negative there.
_CORRECTION_PER_DEGREE: Mapping[int, Decimal] = {
    0: Decimal("0.00"),
    20: Decimal("0.08"),
    40: Decimal("0.17"),
    60: Decimal("0.24"),
    80: Decimal("0.29"),
    100: Decimal("0.32"),
    120: Decimal("0.33"),
    140: Decimal("0.32"),
    160: Decimal("0.30"),
    180: Decimal("0.26"),
    200: Decimal("0.21"),
}

REFERENCE_TEMPERATURE_F = 60
TEMPERATURE_TABLE_MIN_F = 30
TEMPERATURE_TABLE_MAX_F = 100


def _coefficient_for(proof: int) -> Decimal:
    lower = (proof // 20) * 20
    if lower == proof or lower >= 200:
        return _CORRECTION_PER_DEGREE[min(lower, 200)]
    upper = lower + 20
    span = _CORRECTION_PER_DEGREE[upper] - _CORRECTION_PER_DEGREE[lower]
    return _CORRECTION_PER_DEGREE[lower] + span * Decimal(proof - lower) / Decimal(20)


def _build_temperature_corrections() -> Dict[int, Dict[int, Decimal]]:
    table: Dict[int, Dict[int, Decimal]] = {}
    for temperature in range(TEMPERATURE_TABLE_MIN_F, TEMPERATURE_TABLE_MAX_F + 1, 2):
        delta = Decimal(REFERENCE_TEMPERATURE_F - temperature)
        table[temperature] = {
            proof: (_coefficient_for(proof) * delta).quantize(Decimal("0.1"))
            for proof in range(0, 201, 5)
        }
    return table


# Proof correction keyed by even temperature (F), then by proof rounded to 5.
TEMPERATURE_CORRECTIONS: Mapping[int, Mapping[int, Decimal]] = _build_temperature_corrections()


__all__ = [
    "EXPECTED_SCHEMA_VERSION",
    "EMPTY_TOLERANCE",
    "BOTTLING_TOLERANCE_GALLONS",
    "DENSITY_WATER_LBS_PER_GALLON",
    "DENSITY_ETHANOL_LBS_PER_GALLON",
    "MAX_PROOF",
    "ML_PER_GALLON",
    "DEFAULT_UNDO_WINDOW_DAYS",
    "ContainerStatus",
    "ContainerType",
    "CONTAINER_CAPACITIES_GALLONS",
    "Account",
    "LogEntryType",
    "BatchType",
    "RemainderAction",
    "AdjustmentDirection",
    "UndoStrategyName",
    "SheetName",
    "BOTTLE_SIZES_ML",
    "DEFAULT_PRODUCTS",
    "REFERENCE_TEMPERATURE_F",
    "TEMPERATURE_TABLE_MIN_F",
    "TEMPERATURE_TABLE_MAX_F",
    "TEMPERATURE_CORRECTIONS",
]
