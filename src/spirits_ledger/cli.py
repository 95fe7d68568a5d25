"""Command-line entry points for the spirits ledger.

All orchestration in this module is limited to argparse wiring, translating
command-line arguments into the command objects consumed by the business
layer, and printing what came back. Every write command commits and saves
its own write set, so nothing is persisted here.

Containers can be referenced by id or by the name of an active container.
"""

from __future__ import annotations

import argparse
from dataclasses import dataclass
from datetime import date
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Callable, Dict, Iterable, Mapping, MutableMapping, Optional, Sequence

from . import core_logic, log, undo
from .constants import (
    BOTTLE_SIZES_ML,
    Account,
    AdjustmentDirection,
    BatchType,
    ContainerType,
    RemainderAction,
    UndoStrategyName,
)
from .conversions import GrossWeight, NetWeight, ProofGallons, QuantityInput, WineGallons
from .data_manager import ContainerRow, LogEntryRow, ProductionBatchRow
from .errors import ConflictError, EligibilityError, ValidationError

SubParsers = argparse._SubParsersAction


@dataclass(frozen=True)
class CommandSpec:
    """Describe how a CLI sub-command is configured and executed."""

    name: str
    help_text: str
    register: Callable[[SubParsers], argparse.ArgumentParser]
    execute: Callable[[core_logic.RuntimeContext, argparse.Namespace], int]


def build_parser() -> argparse.ArgumentParser:
    """Construct the top-level CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="spirits-cli",
        description="Command-line tools for the bulk spirits ledger workbook.",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Optional path to config.ini (searched upward from the working directory by default).",
    )
    return parser


def configure_subcommands(parser: argparse.ArgumentParser) -> Mapping[str, CommandSpec]:
    """Wire all CLI sub-commands onto the supplied parser."""
    subparsers = parser.add_subparsers(dest="command", required=True, title="commands")
    write_specs = register_write_commands(subparsers)
    read_specs = register_read_commands(subparsers)
    return build_command_table([*write_specs.values(), *read_specs.values()])


def register_write_commands(subparsers: SubParsers) -> Dict[str, CommandSpec]:
    """Declare mutating CLI commands such as transfers and bottling runs."""
    specs = {
        "add-container": register_add_container_command(subparsers),
        "edit-container": register_edit_container_command(subparsers),
        "refill": register_refill_command(subparsers),
        "edit-fill": register_edit_fill_command(subparsers),
        "transfer": register_transfer_command(subparsers),
        "bottle": register_bottle_command(subparsers),
        "proof-down": register_proof_down_command(subparsers),
        "adjust": register_adjust_command(subparsers),
        "change-account": register_change_account_command(subparsers),
        "delete-container": register_delete_container_command(subparsers),
        "add-product": register_add_product_command(subparsers),
        "rename-product": register_rename_product_command(subparsers),
        "delete-product": register_delete_product_command(subparsers),
        "production": register_production_command(subparsers),
        "edit-production": register_edit_production_command(subparsers),
        "delete-production": register_delete_production_command(subparsers),
        "distill": register_distill_command(subparsers),
        "undo": register_undo_command(subparsers),
        "remove-entry": register_remove_entry_command(subparsers),
    }
    for spec in specs.values():
        spec.register(subparsers)
    return specs


def register_read_commands(subparsers: SubParsers) -> Dict[str, CommandSpec]:
    """Declare read-only CLI commands such as reports."""
    specs = {
        "inventory": register_inventory_command(subparsers),
        "log": register_log_command(subparsers),
        "products": register_products_command(subparsers),
        "batches": register_batches_command(subparsers),
        "summary": register_summary_command(subparsers),
        "check": register_check_command(subparsers),
    }
    for spec in specs.values():
        spec.register(subparsers)
    return specs


# ---------------------------------------------------------------------------
# Argument helpers
# ---------------------------------------------------------------------------


def decimal_argument(raw: str) -> Decimal:
    """argparse ``type`` for Decimal values."""
    try:
        return Decimal(raw)
    except InvalidOperation as exc:
        raise argparse.ArgumentTypeError(f"invalid number: {raw!r}") from exc


def bottle_size_argument(raw: str) -> Decimal:
    """Accept a named bottle size (``750mL``, ``1L``) or a size in millilitres."""
    if raw in BOTTLE_SIZES_ML:
        return Decimal(BOTTLE_SIZES_ML[raw])
    return decimal_argument(raw)


def add_quantity_arguments(parser: argparse.ArgumentParser, *, prefix: str = "", required: bool = True) -> None:
    """Add the mutually exclusive quantity flags, optionally with a prefix."""
    group = parser.add_mutually_exclusive_group(required=required)
    group.add_argument(f"--{prefix}net-lbs", type=decimal_argument, help="Net weight in pounds.")
    group.add_argument(f"--{prefix}gross-lbs", type=decimal_argument, help="Gross weight in pounds, container included.")
    group.add_argument(f"--{prefix}wine-gallons", type=decimal_argument, help="Volume in wine gallons.")
    group.add_argument(f"--{prefix}proof-gallons", type=decimal_argument, help="Volume in proof gallons.")


def add_fill_arguments(parser: argparse.ArgumentParser, *, required: bool = True) -> None:
    add_quantity_arguments(parser, required=required)
    parser.add_argument("--proof", type=decimal_argument, required=required)
    parser.add_argument("--product", required=required, help="Product name from the catalog.")
    parser.add_argument("--account", choices=[member.value for member in Account], default=None)
    parser.add_argument(
        "--temperature",
        type=decimal_argument,
        default=None,
        help="Temperature in F at which --proof was read; corrects it to true proof.",
    )
    parser.add_argument("--fill-date", type=date.fromisoformat, default=None, help="YYYY-MM-DD")


def translate_quantity(args: argparse.Namespace, *, prefix: str = "") -> Optional[QuantityInput]:
    """Build the tagged quantity from whichever quantity flag was given."""
    dest = prefix.replace("-", "_")
    for attribute, kind in (
        ("net_lbs", NetWeight),
        ("gross_lbs", GrossWeight),
        ("wine_gallons", WineGallons),
        ("proof_gallons", ProofGallons),
    ):
        value = getattr(args, f"{dest}{attribute}", None)
        if value is not None:
            return kind(value)
    return None


def translate_fill(args: argparse.Namespace) -> core_logic.FillSpec:
    quantity = translate_quantity(args)
    if quantity is None:
        raise ValidationError("A fill needs one of --net-lbs, --gross-lbs, --wine-gallons or --proof-gallons")
    return core_logic.FillSpec(
        quantity=quantity,
        proof=args.proof,
        product_type=args.product,
        account=args.account,
        temperature=args.temperature,
        fill_date=args.fill_date,
    )


def resolve_container_id(context: core_logic.RuntimeContext, key: str) -> str:
    """Turn a container id or active container name into its id."""
    return core_logic.find_container(context, key).container_id


def _simple_registrar(
    name: str,
    help_text: str,
    configure: Callable[[argparse.ArgumentParser], None],
) -> Callable[[SubParsers], argparse.ArgumentParser]:
    def registrar(action: SubParsers) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        configure(parser)
        parser.set_defaults(command=name)
        return parser

    return registrar


# ---------------------------------------------------------------------------
# Write command registrations
# ---------------------------------------------------------------------------


def register_add_container_command(subparsers: SubParsers) -> CommandSpec:
    """Register the parser and executor for ``add-container``."""
    name = "add-container"
    help_text = "Register a new container, empty or with an initial fill."

    def configure(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--name", required=True)
        parser.add_argument("--type", dest="container_type", choices=[member.value for member in ContainerType], required=True)
        parser.add_argument("--tare-lbs", type=decimal_argument, required=True)
        add_fill_arguments(parser, required=False)
        parser.add_argument("--notes", default=None)

    return CommandSpec(name, help_text, _simple_registrar(name, help_text, configure), run_add_container)


def register_edit_container_command(subparsers: SubParsers) -> CommandSpec:
    """Register the parser and executor for ``edit-container``."""
    name = "edit-container"
    help_text = "Change a container's name, type or tare weight."

    def configure(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--container", required=True)
        parser.add_argument("--name", default=None)
        parser.add_argument("--type", dest="container_type", choices=[member.value for member in ContainerType], default=None)
        parser.add_argument("--tare-lbs", type=decimal_argument, default=None)

    return CommandSpec(name, help_text, _simple_registrar(name, help_text, configure), run_edit_container)


def register_refill_command(subparsers: SubParsers) -> CommandSpec:
    """Register the parser and executor for ``refill``."""
    name = "refill"
    help_text = "Fill an empty container."

    def configure(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--container", required=True)
        add_fill_arguments(parser)
        parser.add_argument("--notes", default=None)

    return CommandSpec(name, help_text, _simple_registrar(name, help_text, configure), run_refill)


def register_edit_fill_command(subparsers: SubParsers) -> CommandSpec:
    """Register the parser and executor for ``edit-fill``."""
    name = "edit-fill"
    help_text = "Replace a container's fill with corrected measurements."

    def configure(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--container", required=True)
        add_fill_arguments(parser)
        parser.add_argument("--notes", default=None)

    return CommandSpec(name, help_text, _simple_registrar(name, help_text, configure), run_edit_fill)


def register_transfer_command(subparsers: SubParsers) -> CommandSpec:
    """Register the parser and executor for ``transfer``."""
    name = "transfer"
    help_text = "Move spirit from one container to another."

    def configure(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--source", required=True)
        parser.add_argument("--destination", required=True)
        add_quantity_arguments(parser)
        parser.add_argument("--notes", default=None)

    return CommandSpec(name, help_text, _simple_registrar(name, help_text, configure), run_transfer)


def register_bottle_command(subparsers: SubParsers) -> CommandSpec:
    """Register the parser and executor for ``bottle``."""
    name = "bottle"
    help_text = "Record a bottling run from a container."

    def configure(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--container", required=True)
        parser.add_argument("--bottles", type=int, required=True)
        parser.add_argument(
            "--size",
            type=bottle_size_argument,
            required=True,
            help=f"Bottle size in mL or one of: {', '.join(BOTTLE_SIZES_ML)}.",
        )
        parser.add_argument(
            "--remainder",
            choices=[member.value for member in RemainderAction],
            default=RemainderAction.KEEP.value,
            help="What to do with spirit left after a partial run.",
        )
        parser.add_argument("--adjustment-gallons", type=decimal_argument, default=None)
        parser.add_argument(
            "--adjustment-direction",
            choices=[member.value for member in AdjustmentDirection],
            default=AdjustmentDirection.REMOVE.value,
        )
        parser.add_argument("--notes", default=None)

    return CommandSpec(name, help_text, _simple_registrar(name, help_text, configure), run_bottle)


def register_proof_down_command(subparsers: SubParsers) -> CommandSpec:
    """Register the parser and executor for ``proof-down``."""
    name = "proof-down"
    help_text = "Add water to bring a container down to a target proof."

    def configure(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--container", required=True)
        parser.add_argument("--target-proof", type=decimal_argument, required=True)
        parser.add_argument("--notes", default=None)

    return CommandSpec(name, help_text, _simple_registrar(name, help_text, configure), run_proof_down)


def register_adjust_command(subparsers: SubParsers) -> CommandSpec:
    """Register the parser and executor for ``adjust``."""
    name = "adjust"
    help_text = "Record a sample removal or a manual addition."

    def configure(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--container", required=True)
        add_quantity_arguments(parser)
        parser.add_argument(
            "--direction",
            choices=[member.value for member in AdjustmentDirection],
            default=AdjustmentDirection.REMOVE.value,
        )
        parser.add_argument("--notes", default=None)

    return CommandSpec(name, help_text, _simple_registrar(name, help_text, configure), run_adjust)


def register_change_account_command(subparsers: SubParsers) -> CommandSpec:
    """Register the parser and executor for ``change-account``."""
    name = "change-account"
    help_text = "Move a container to another bonded account."

    def configure(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--container", required=True)
        parser.add_argument("--account", choices=[member.value for member in Account], required=True)

    return CommandSpec(name, help_text, _simple_registrar(name, help_text, configure), run_change_account)


def register_delete_container_command(subparsers: SubParsers) -> CommandSpec:
    """Register the parser and executor for ``delete-container``."""
    name = "delete-container"
    help_text = "Retire a container."

    def configure(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--container", required=True)
        parser.add_argument("--notes", default=None)

    return CommandSpec(name, help_text, _simple_registrar(name, help_text, configure), run_delete_container)


def register_add_product_command(subparsers: SubParsers) -> CommandSpec:
    """Register the parser and executor for ``add-product``."""
    name = "add-product"
    help_text = "Add a product to the catalog."

    def configure(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--name", required=True)
        parser.add_argument("--description", default="")

    return CommandSpec(name, help_text, _simple_registrar(name, help_text, configure), run_add_product)


def register_rename_product_command(subparsers: SubParsers) -> CommandSpec:
    """Register the parser and executor for ``rename-product``."""
    name = "rename-product"
    help_text = "Rename a product; existing containers keep the old name."

    def configure(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--product", required=True, help="Product id or current name.")
        parser.add_argument("--name", required=True)
        parser.add_argument("--description", default=None)

    return CommandSpec(name, help_text, _simple_registrar(name, help_text, configure), run_rename_product)


def register_delete_product_command(subparsers: SubParsers) -> CommandSpec:
    """Register the parser and executor for ``delete-product``."""
    name = "delete-product"
    help_text = "Remove a product no filled container holds."

    def configure(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--product", required=True, help="Product id or name.")

    return CommandSpec(name, help_text, _simple_registrar(name, help_text, configure), run_delete_product)


def register_production_command(subparsers: SubParsers) -> CommandSpec:
    """Register the parser and executor for ``production``."""
    name = "production"
    help_text = "Record the start of a fermentation batch."

    def configure(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--batch", required=True)
        parser.add_argument("--product", required=True)
        parser.add_argument("--volume-gallons", type=decimal_argument, required=True)
        parser.add_argument("--og", type=decimal_argument, default=None, help="Original gravity.")
        parser.add_argument("--fg", type=decimal_argument, default=None, help="Final gravity.")
        parser.add_argument("--ingredients", default=None)
        parser.add_argument("--date", type=date.fromisoformat, default=None, help="YYYY-MM-DD")
        parser.add_argument("--notes", default=None)

    return CommandSpec(name, help_text, _simple_registrar(name, help_text, configure), run_production)



def register_edit_production_command(subparsers: SubParsers) -> CommandSpec:
    """Register the parser and executor for ``edit-production``."""
    name = "edit-production"
    help_text = "Correct a stored production batch."

    def configure(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--batch", required=True, help="Batch id or name.")
        parser.add_argument("--name", default=None)
        parser.add_argument("--date", type=date.fromisoformat, default=None, help="YYYY-MM-DD")
        parser.add_argument("--product", default=None)
        parser.add_argument("--volume-gallons", type=decimal_argument, default=None)
        parser.add_argument("--og", type=decimal_argument, default=None, help="Original gravity.")
        parser.add_argument("--fg", type=decimal_argument, default=None, help="Final gravity.")
        parser.add_argument("--ingredients", default=None)
        parser.add_argument("--notes", default=None)

    return CommandSpec(name, help_text, _simple_registrar(name, help_text, configure), run_edit_production)


def register_delete_production_command(subparsers: SubParsers) -> CommandSpec:
    """Register the parser and executor for ``delete-production``."""
    name = "delete-production"
    help_text = "Delete a production batch; containers are not touched."

    def configure(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--batch", required=True, help="Batch id or name.")
        parser.add_argument("--notes", default=None)

    return CommandSpec(name, help_text, _simple_registrar(name, help_text, configure), run_delete_production)


def register_distill_command(subparsers: SubParsers) -> CommandSpec:
    """Register the parser and executor for ``distill``."""
    name = "distill"
    help_text = "Record a finished distillation run into an empty container."

    def configure(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--batch", required=True)
        parser.add_argument("--product", required=True)
        parser.add_argument("--destination", required=True)
        add_quantity_arguments(parser)
        parser.add_argument("--proof", type=decimal_argument, required=True)
        parser.add_argument("--temperature", type=decimal_argument, default=None)
        parser.add_argument(
            "--account",
            choices=[member.value for member in Account],
            default=Account.STORAGE.value,
            help="Account the yield is entered into.",
        )
        parser.add_argument("--charge-source", default=None, help="Container the charge was pulled from.")
        parser.add_argument("--source-batch", default=None, help="Fermentation batch id or name that was charged.")
        add_quantity_arguments(parser, prefix="charge-", required=False)
        parser.add_argument("--notes", default=None)

    return CommandSpec(name, help_text, _simple_registrar(name, help_text, configure), run_distill)


def register_undo_command(subparsers: SubParsers) -> CommandSpec:
    """Register the parser and executor for ``undo``."""
    name = "undo"
    help_text = "Reverse a recent log entry on its container."

    def configure(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--entry-id", required=True)
        parser.add_argument(
            "--strategy",
            choices=[member.value for member in UndoStrategyName],
            default=None,
            help="Overrides [Undo] Strategy from config.ini.",
        )

    return CommandSpec(name, help_text, _simple_registrar(name, help_text, configure), run_undo)


def register_remove_entry_command(subparsers: SubParsers) -> CommandSpec:
    """Register the parser and executor for ``remove-entry``."""
    name = "remove-entry"
    help_text = "Delete a log entry without touching any container."

    def configure(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--entry-id", required=True)

    return CommandSpec(name, help_text, _simple_registrar(name, help_text, configure), run_remove_entry)


# ---------------------------------------------------------------------------
# Read command registrations
# ---------------------------------------------------------------------------


def register_inventory_command(subparsers: SubParsers) -> CommandSpec:
    """Register the parser and executor for ``inventory``."""
    name = "inventory"
    help_text = "List containers and their contents."

    def configure(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--all", dest="include_inactive", action="store_true", help="Include deleted containers.")

    return CommandSpec(name, help_text, _simple_registrar(name, help_text, configure), run_inventory_report)


def register_log_command(subparsers: SubParsers) -> CommandSpec:
    """Register the parser and executor for ``log``."""
    name = "log"
    help_text = "Display the transaction log, newest first."

    def configure(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--container", default=None)
        parser.add_argument("--limit", type=int, default=None)

    return CommandSpec(name, help_text, _simple_registrar(name, help_text, configure), run_log_report)


def register_products_command(subparsers: SubParsers) -> CommandSpec:
    """Register the parser and executor for ``products``."""
    name = "products"
    help_text = "List the product catalog."
    return CommandSpec(name, help_text, _simple_registrar(name, help_text, lambda parser: None), run_products_report)


def register_batches_command(subparsers: SubParsers) -> CommandSpec:
    """Register the parser and executor for ``batches``."""
    name = "batches"
    help_text = "List production batches, newest first."

    def configure(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--type", dest="batch_type", choices=[member.value for member in BatchType], default=None)

    return CommandSpec(name, help_text, _simple_registrar(name, help_text, configure), run_batches_report)


def register_summary_command(subparsers: SubParsers) -> CommandSpec:
    """Register the parser and executor for ``summary``."""
    name = "summary"
    help_text = "Total wine and proof gallons by product and by account."
    return CommandSpec(name, help_text, _simple_registrar(name, help_text, lambda parser: None), run_summary_report)


def register_check_command(subparsers: SubParsers) -> CommandSpec:
    """Register the parser and executor for ``check``."""
    name = "check"
    help_text = "Compare container snapshots with the sum of their log entries."

    def configure(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--tolerance", type=decimal_argument, default=core_logic.CONSISTENCY_TOLERANCE)

    return CommandSpec(name, help_text, _simple_registrar(name, help_text, configure), run_consistency_check)


# ---------------------------------------------------------------------------
# Dispatch
# ---------------------------------------------------------------------------


def load_runtime_context(config_path: Optional[Path] = None) -> core_logic.RuntimeContext:
    """Resolve the runtime context for CLI operations."""
    return core_logic.load_runtime_context(config_path)


def dispatch_command(
    context: core_logic.RuntimeContext,
    args: argparse.Namespace,
    command_table: Mapping[str, CommandSpec],
) -> int:
    """Dispatch the parsed arguments to the configured executor."""
    if not hasattr(args, "command") or args.command is None:
        raise KeyError("No command specified")
    spec = command_table.get(args.command)
    if spec is None:
        raise KeyError(f"Unknown command: {args.command}")
    return spec.execute(context, args)


def build_command_table(specs: Iterable[CommandSpec]) -> MutableMapping[str, CommandSpec]:
    """Build an index of command specifications keyed by command name."""
    table: Dict[str, CommandSpec] = {}
    for spec in specs:
        if spec.name in table:
            raise ValueError(f"Duplicate command name: {spec.name}")
        table[spec.name] = spec
    return table


# ---------------------------------------------------------------------------
# Translation
# ---------------------------------------------------------------------------


def translate_add_container(args: argparse.Namespace) -> core_logic.AddContainerCommand:
    """Translate CLI args into an add-container command object."""
    fill = None
    if translate_quantity(args) is not None:
        if args.proof is None or args.product is None:
            raise ValidationError("An initial fill needs --proof and --product")
        fill = translate_fill(args)
    return core_logic.AddContainerCommand(
        name=args.name,
        container_type=args.container_type,
        tare_weight_lbs=args.tare_lbs,
        fill=fill,
        notes=args.notes,
    )


def translate_edit_container(context: core_logic.RuntimeContext, args: argparse.Namespace) -> core_logic.UpdateContainerCommand:
    return core_logic.UpdateContainerCommand(
        container_id=resolve_container_id(context, args.container),
        name=args.name,
        container_type=args.container_type,
        tare_weight_lbs=args.tare_lbs,
    )


def translate_refill(context: core_logic.RuntimeContext, args: argparse.Namespace) -> core_logic.RefillCommand:
    return core_logic.RefillCommand(
        container_id=resolve_container_id(context, args.container),
        fill=translate_fill(args),
        notes=args.notes,
    )


def translate_edit_fill(context: core_logic.RuntimeContext, args: argparse.Namespace) -> core_logic.EditFillCommand:
    return core_logic.EditFillCommand(
        container_id=resolve_container_id(context, args.container),
        fill=translate_fill(args),
        notes=args.notes,
    )


def translate_transfer(context: core_logic.RuntimeContext, args: argparse.Namespace) -> core_logic.TransferCommand:
    """Translate CLI args into a transfer command object."""
    return core_logic.TransferCommand(
        source_id=resolve_container_id(context, args.source),
        destination_id=resolve_container_id(context, args.destination),
        quantity=translate_quantity(args),
        notes=args.notes,
    )


def translate_bottle(context: core_logic.RuntimeContext, args: argparse.Namespace) -> core_logic.BottleCommand:
    """Translate CLI args into a bottling command object."""
    return core_logic.BottleCommand(
        container_id=resolve_container_id(context, args.container),
        bottle_count=args.bottles,
        bottle_size_ml=args.size,
        remainder_action=RemainderAction(args.remainder),
        adjustment_wine_gallons=args.adjustment_gallons,
        adjustment_direction=AdjustmentDirection(args.adjustment_direction),
        notes=args.notes,
    )


def translate_proof_down(context: core_logic.RuntimeContext, args: argparse.Namespace) -> core_logic.ProofDownCommand:
    return core_logic.ProofDownCommand(
        container_id=resolve_container_id(context, args.container),
        target_proof=args.target_proof,
        notes=args.notes,
    )


def translate_adjust(context: core_logic.RuntimeContext, args: argparse.Namespace) -> core_logic.AdjustContentsCommand:
    return core_logic.AdjustContentsCommand(
        container_id=resolve_container_id(context, args.container),
        quantity=translate_quantity(args),
        direction=AdjustmentDirection(args.direction),
        notes=args.notes,
    )


def translate_distill(context: core_logic.RuntimeContext, args: argparse.Namespace) -> core_logic.DistillationCommand:
    """Translate CLI args into a distillation command object."""
    charge_source = resolve_container_id(context, args.charge_source) if args.charge_source else None
    source_batch = core_logic.find_production_batch(context, args.source_batch).batch_id if args.source_batch else None
    return core_logic.DistillationCommand(
        batch_name=args.batch,
        product_type=args.product,
        destination_id=resolve_container_id(context, args.destination),
        yield_quantity=translate_quantity(args),
        yield_proof=args.proof,
        temperature=args.temperature,
        account=args.account,
        charge_source_id=charge_source,
        charge_quantity=translate_quantity(args, prefix="charge-"),
        source_batch_id=source_batch,
        notes=args.notes,
    )


# ---------------------------------------------------------------------------
# Output
# ---------------------------------------------------------------------------


def format_container(container: ContainerRow) -> str:
    """Render one container as a single report line."""
    fill = container.fill
    state = "" if container.is_active else " [deleted]"
    if container.is_empty:
        contents = f"empty since {fill.emptied_date.isoformat() if fill.emptied_date else '-'}"
    else:
        contents = (
            f"{fill.product_type} @ {fill.proof} proof, {fill.net_weight_lbs} lbs, "
            f"{fill.wine_gallons} WG, {fill.proof_gallons} PG ({fill.account})"
        )
    return f"{container.container_id}  {container.container_name:<20} {container.container_type:<10} {contents}{state}"


def format_entry(entry: LogEntryRow) -> str:
    """Render one log entry as a single report line."""
    target = entry.container_name or entry.product_type or "-"
    line = (
        f"{entry.entry_id}  {entry.timestamp_iso}  {entry.entry_type:<26} {target:<20} "
        f"{entry.net_weight_lbs_change:+} lbs {entry.proof_gallons_change:+} PG"
    )
    if entry.notes:
        line += f"  {entry.notes}"
    return line


def format_batch(batch: ProductionBatchRow) -> str:
    """Render one production batch as a single report line."""
    when = batch.batch_date.isoformat() if batch.batch_date else "-"
    if batch.batch_type == BatchType.DISTILLATION.value:
        detail = f"{batch.yield_proof_gallons} PG @ {batch.yield_proof} proof"
    else:
        detail = f"{batch.volume_gallons} gal"
        if batch.original_gravity is not None:
            detail += f", OG {batch.original_gravity}"
        if batch.final_gravity is not None:
            detail += f", FG {batch.final_gravity}"
    return f"{batch.batch_id}  {when}  {batch.batch_type:<12} {batch.batch_name:<20} {batch.product_type:<16} {detail}"


def print_result(result: core_logic.OperationResult) -> None:
    for container in result.containers:
        print(format_container(container))
    if result.batch is not None:
        print(format_batch(result.batch))
    for entry in result.entries:
        print(format_entry(entry))


# ---------------------------------------------------------------------------
# Execution
# ---------------------------------------------------------------------------


def run_add_container(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the add-container workflow in the BLL."""
    command = translate_add_container(args)
    print_result(core_logic.add_container(context, command))
    return 0


def run_edit_container(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    command = translate_edit_container(context, args)
    print(format_container(core_logic.update_container_info(context, command)))
    return 0


def run_refill(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    command = translate_refill(context, args)
    print_result(core_logic.refill_container(context, command))
    return 0


def run_edit_fill(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    command = translate_edit_fill(context, args)
    print_result(core_logic.edit_fill(context, command))
    return 0


def run_transfer(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the transfer workflow via the BLL."""
    command = translate_transfer(context, args)
    print_result(core_logic.transfer(context, command))
    return 0


def run_bottle(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the bottling workflow via the BLL."""
    command = translate_bottle(context, args)
    print_result(core_logic.bottle(context, command))
    return 0


def run_proof_down(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    command = translate_proof_down(context, args)
    print_result(core_logic.proof_down(context, command))
    return 0


def run_adjust(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    command = translate_adjust(context, args)
    print_result(core_logic.adjust_contents(context, command))
    return 0


def run_change_account(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    command = core_logic.ChangeAccountCommand(
        container_id=resolve_container_id(context, args.container),
        account=args.account,
    )
    print_result(core_logic.change_account(context, command))
    return 0


def run_delete_container(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    command = core_logic.DeleteContainerCommand(
        container_id=resolve_container_id(context, args.container),
        notes=args.notes,
    )
    print_result(core_logic.delete_container(context, command))
    return 0


def run_add_product(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the add-product workflow in the BLL."""
    product = core_logic.add_product(context, args.name, args.description)
    print(f"{product.product_id}  {product.product_name}")
    return 0


def run_rename_product(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    product_id = core_logic.find_product(context, args.product).product_id
    product = core_logic.rename_product(context, product_id, args.name, args.description)
    print(f"{product.product_id}  {product.product_name}")
    return 0


def run_delete_product(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    product_id = core_logic.find_product(context, args.product).product_id
    product = core_logic.delete_product(context, product_id)
    print(f"Deleted {product.product_name}")
    return 0


def run_production(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    command = core_logic.ProductionCommand(
        batch_name=args.batch,
        product_type=args.product,
        start_volume_gallons=args.volume_gallons,
        original_gravity=args.og,
        final_gravity=args.fg,
        ingredients=args.ingredients,
        batch_date=args.date,
        notes=args.notes,
    )
    result = core_logic.record_production(context, command)
    print(format_batch(result.batch))
    print(format_entry(result.entry))
    return 0


def run_edit_production(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    command = core_logic.EditProductionBatchCommand(
        batch_id=core_logic.find_production_batch(context, args.batch).batch_id,
        batch_name=args.name,
        batch_date=args.date,
        product_type=args.product,
        volume_gallons=args.volume_gallons,
        original_gravity=args.og,
        final_gravity=args.fg,
        ingredients=args.ingredients,
        notes=args.notes,
    )
    print(format_batch(core_logic.edit_production_batch(context, command)))
    return 0


def run_delete_production(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    command = core_logic.DeleteProductionBatchCommand(
        batch_id=core_logic.find_production_batch(context, args.batch).batch_id,
        notes=args.notes,
    )
    result = core_logic.delete_production_batch(context, command)
    print(f"Deleted batch {result.batch.batch_name}")
    print(format_entry(result.entry))
    return 0


def run_distill(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the distillation workflow via the BLL."""
    command = translate_distill(context, args)
    print_result(core_logic.record_distillation(context, command))
    return 0


def run_undo(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute an undo through the configured or requested strategy."""
    strategy = undo.strategy_for(args.strategy) if args.strategy else None
    result = undo.undo_entry(context, args.entry_id, strategy=strategy)
    print(f"Undid {result.entry.entry_type} {result.entry.entry_id} ({result.strategy} undo)")
    print(format_container(result.container))
    if result.reversal is not None:
        print(format_entry(result.reversal))
    return 0


def run_remove_entry(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    entry = undo.remove_entry(context, args.entry_id)
    print(f"Removed {entry.entry_type} {entry.entry_id}")
    return 0


def run_inventory_report(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the inventory listing workflow."""
    for container in core_logic.list_containers(context, include_inactive=args.include_inactive):
        print(format_container(container))
    return 0


def run_log_report(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the transaction log reporting workflow."""
    container_id = resolve_container_id(context, args.container) if args.container else None
    for entry in core_logic.list_log_entries(context, container_id=container_id, limit=args.limit):
        print(format_entry(entry))
    return 0


def run_products_report(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    for product in core_logic.list_products(context):
        print(f"{product.product_id}  {product.product_name:<20} {product.description}")
    return 0


def run_batches_report(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    for batch in core_logic.list_production_batches(context, batch_type=args.batch_type):
        print(format_batch(batch))
    return 0


def run_summary_report(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Execute the inventory summary workflow."""
    summary = core_logic.summarize_inventory(context)
    for title, lines in (("By product", summary.by_product), ("By account", summary.by_account)):
        print(title)
        for key, line in lines.items():
            print(f"  {key:<20} {line.containers:>4}  {line.wine_gallons} WG  {line.proof_gallons} PG")
    total = summary.total
    print(f"Total {total.containers} containers, {total.wine_gallons} WG, {total.proof_gallons} PG")
    return 0


def run_consistency_check(context: core_logic.RuntimeContext, args: argparse.Namespace) -> int:
    """Print drifting containers; exits 1 when any drift is found."""
    issues = core_logic.check_consistency(context, tolerance=args.tolerance)
    if not issues:
        print("Log and container snapshots agree.")
        return 0
    for issue in issues:
        print(
            f"{issue.container_id}  {issue.container_name}: "
            f"net drift {issue.net_weight_drift:+} lbs, PG drift {issue.proof_gallons_drift:+}"
        )
    return 1


def handle_cli_error(error: Exception) -> int:
    """Convert raised exceptions into user-friendly exit codes."""
    if isinstance(error, (ValidationError, EligibilityError)):
        log.error("%s", error)
        return 2
    if isinstance(error, FileNotFoundError):
        log.error("%s", error)
        return 3
    if isinstance(error, ConflictError):
        log.error("%s (reload and try again)", error)
        return 4
    log.error("%s", error)
    return 1


def main(argv: Sequence[str] | None = None) -> int:
    """CLI entry point that orchestrates parsing and execution."""
    parser = build_parser()
    command_table = configure_subcommands(parser)
    args = parser.parse_args(argv)
    try:
        context = load_runtime_context(getattr(args, "config", None))
        return dispatch_command(context, args, command_table)
    except Exception as error:  # pragma: no cover - centralised error handler tested separately
        return handle_cli_error(error)


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
