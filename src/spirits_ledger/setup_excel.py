"""Utility for initializing the spirits ledger workbook.

The module doubles as a script (``spirits-setup``) and as a library used by
tests or other tooling, so the workbook bootstrap logic stays the same
regardless of the execution path.
"""

from __future__ import annotations

import argparse
import configparser
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Sequence, Tuple
import sys

import openpyxl
from openpyxl.styles import Font

from .constants import DEFAULT_PRODUCTS, SheetName
from .data_manager import ProductRow, append_product, save_workbook

SHEET_COLUMNS: Mapping[str, Sequence[str]] = {
    SheetName.CONTAINERS.value: [
        "ContainerID",
        "ContainerName",
        "ContainerType",
        "TareWeightLbs",
        "Status",
        "ProductType",
        "Proof",
        "FillDate",
        "GrossWeightLbs",
        "NetWeightLbs",
        "WineGallons",
        "ProofGallons",
        "SpiritDensity",
        "Account",
        "EmptiedDate",
        "Version",
        "IsActive",
    ],
    SheetName.PRODUCTS.value: [
        "ProductID",
        "ProductName",
        "Description",
    ],
    SheetName.TRANSACTION_LOG.value: [
        "EntryID",
        "Timestamp",
        "EntryType",
        "ContainerID",
        "ContainerName",
        "ProductType",
        "Proof",
        "NetWeightLbsChange",
        "ProofGallonsChange",
        "SourceContainerID",
        "SourceContainerName",
        "DestinationContainerID",
        "DestinationContainerName",
        "LinkedEntryID",
        "Notes",
    ],
    SheetName.PRODUCTION_BATCHES.value: [
        "BatchID",
        "BatchName",
        "BatchType",
        "ProductType",
        "BatchDate",
        "VolumeGallons",
        "OriginalGravity",
        "FinalGravity",
        "Ingredients",
        "SourceBatchID",
        "YieldProof",
        "YieldProofGallons",
        "DestinationContainerID",
        "Notes",
    ],
}

CONFIG_FILE = "config.ini"


@dataclass(frozen=True)
class SetupSettings:
    """Configuration values needed to bootstrap a workbook."""

    data_file: Path
    distillery_name: str


def load_settings(config_path: Path) -> SetupSettings:
    """Read ``config.ini`` and produce :class:`SetupSettings`.

    Relative paths inside the config file are resolved against the config
    file's directory.
    """

    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    parser = configparser.ConfigParser(inline_comment_prefixes=(";", "#"))
    parser.read(config_path)

    try:
        data_file_raw = parser.get("System", "DataFile")
        distillery_name = parser.get("System", "DistilleryName")
    except (configparser.NoSectionError, configparser.NoOptionError) as exc:
        raise KeyError(f"Missing required configuration entry: {exc}") from exc

    data_file_path = Path(data_file_raw)
    if not data_file_path.is_absolute():
        data_file_path = (config_path.parent / data_file_path).resolve()

    return SetupSettings(data_file=data_file_path, distillery_name=distillery_name)


def create_master_workbook(
    destination: Path,
    *,
    sheet_columns: Mapping[str, Sequence[str]] = SHEET_COLUMNS,
    default_products: Sequence[Tuple[str, str]] = DEFAULT_PRODUCTS,
    overwrite: bool = False,
) -> Path:
    """Create the ledger workbook at ``destination`` with its product catalog.

    Parameters are overridable to facilitate testing. When ``overwrite`` is
    ``False`` (the default) this function raises ``FileExistsError`` if the
    target already exists.
    """

    destination = destination.expanduser().resolve()
    if destination.exists() and not overwrite:
        raise FileExistsError(
            f"Refusing to overwrite existing workbook: {destination}"
        )

    destination.parent.mkdir(parents=True, exist_ok=True)

    workbook = openpyxl.Workbook()

    # Remove the default sheet openpyxl generates so we can create ours.
    if workbook.active and workbook.active.title == "Sheet":
        workbook.remove(workbook.active)

    bold_font = Font(bold=True)

    for sheet_name, columns in sheet_columns.items():
        worksheet = workbook.create_sheet(title=sheet_name)
        for column_index, column_name in enumerate(columns, start=1):
            cell = worksheet.cell(row=1, column=column_index)
            cell.value = column_name
            cell.font = bold_font

    for name, description in default_products:
        append_product(
            workbook,
            ProductRow(product_id=f"P{uuid.uuid4().hex[:12]}", product_name=name, description=description),
        )

    save_workbook(workbook, destination)
    return destination


def run_from_config(config_path: Path, *, overwrite: bool = False) -> Path:
    settings = load_settings(config_path)
    return create_master_workbook(settings.data_file, overwrite=overwrite)


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    """Parse CLI arguments for the setup script."""

    parser = argparse.ArgumentParser(description="Initialize the spirits ledger workbook")
    parser.add_argument(
        "--config",
        default=CONFIG_FILE,
        help="Path to configuration file (default: config.ini)",
    )
    parser.add_argument(
        "--force",
        action="store_true",
        help="Overwrite the target workbook if it already exists.",
    )
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point for the setup script."""

    args = parse_args(argv)
    config_path = Path(args.config).expanduser().resolve()

    print("--- Spirits Ledger Setup ---")
    print(f"Using configuration: {config_path}")

    try:
        output_path = run_from_config(config_path, overwrite=args.force)
    except (FileNotFoundError, KeyError) as exc:
        print(f"\n[ERROR] {exc}")
        return 1
    except FileExistsError as exc:
        print(f"\n[ERROR] {exc}")
        print("Run with --force to overwrite the existing file if appropriate.")
        return 1
    except OSError as exc:
        print(f"\n[ERROR] Unable to write workbook: {exc}")
        return 1

    print(f"\n[SUCCESS] Created workbook at '{output_path}'.")
    return 0


if __name__ == "__main__":  # pragma: no cover - exercised via manual runs
    sys.exit(main())
