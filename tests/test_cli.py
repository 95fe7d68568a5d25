"""Unit tests describing the CLI presentation layer contract."""

from __future__ import annotations

import argparse
import re
from dataclasses import replace
from decimal import Decimal
from pathlib import Path
from typing import Iterable

import pytest

from spirits_ledger import cli, core_logic
from spirits_ledger.constants import AdjustmentDirection, LogEntryType, RemainderAction
from spirits_ledger.conversions import GrossWeight, NetWeight, ProofGallons, WineGallons
from spirits_ledger.errors import (
    ConflictError,
    EligibilityError,
    MissingReferenceError,
    PersistenceError,
    ValidationError,
)


WRITE_COMMANDS = {
    "add-container",
    "edit-container",
    "refill",
    "edit-fill",
    "transfer",
    "bottle",
    "proof-down",
    "adjust",
    "change-account",
    "delete-container",
    "add-product",
    "rename-product",
    "delete-product",
    "production",
    "distill",
    "edit-production",
    "delete-production",
    "undo",
    "remove-entry",
}

READ_COMMANDS = {
    "inventory",
    "log",
    "products",
    "batches",
    "summary",
    "check",
}


def _registered_choices(parser: argparse.ArgumentParser) -> Iterable[str]:
    for action in parser._actions:
        if isinstance(action, argparse._SubParsersAction):
            return action.choices.keys()
    return ()


def _full_parser() -> argparse.ArgumentParser:
    parser = cli.build_parser()
    cli.configure_subcommands(parser)
    return parser


# ---------------------------------------------------------------------------
# Parser construction
# ---------------------------------------------------------------------------


def test_build_parser_sets_program_metadata():
    """build_parser should set user-facing program metadata."""

    parser = cli.build_parser()
    assert isinstance(parser, argparse.ArgumentParser)
    assert parser.prog == "spirits-cli"
    assert "spirits" in (parser.description or "")


def test_build_parser_accepts_config_path():
    parser = cli.build_parser()
    parser.add_subparsers(dest="command")

    namespace = parser.parse_args(["--config", "ledger/config.ini"])

    assert namespace.config == Path("ledger/config.ini")


def test_configure_subcommands_registers_every_command(cli_parser):
    """configure_subcommands should wire mutating and reporting sub-commands."""

    command_table = cli.configure_subcommands(cli_parser)

    assert set(command_table) == WRITE_COMMANDS | READ_COMMANDS
    assert set(_registered_choices(cli_parser)) == WRITE_COMMANDS | READ_COMMANDS


def test_register_write_commands_returns_command_specs(subparsers_action):
    specs = cli.register_write_commands(subparsers_action)

    assert set(specs) == WRITE_COMMANDS
    for name, spec in specs.items():
        assert isinstance(spec, cli.CommandSpec)
        assert spec.name == name
        assert spec.help_text
        assert name in subparsers_action.choices


def test_register_read_commands_returns_command_specs(subparsers_action):
    specs = cli.register_read_commands(subparsers_action)

    assert set(specs) == READ_COMMANDS
    for name in READ_COMMANDS:
        assert name in subparsers_action.choices


def test_command_table_rejects_duplicate_names(command_spec_iterable):
    table = cli.build_command_table(command_spec_iterable)
    assert list(table) == ["alpha", "beta", "gamma"]

    with pytest.raises(ValueError, match="Duplicate command name: alpha"):
        cli.build_command_table([*command_spec_iterable, command_spec_iterable[0]])


# ---------------------------------------------------------------------------
# Argument parsing
# ---------------------------------------------------------------------------


def test_transfer_arguments_parse_into_decimals():
    namespace = _full_parser().parse_args(
        ["transfer", "--source", "Tank A", "--destination", "Tank B", "--proof-gallons", "50"]
    )

    assert namespace.command == "transfer"
    assert namespace.proof_gallons == Decimal("50")
    assert namespace.net_lbs is None


def test_quantity_flags_are_mutually_exclusive(capsys):
    with pytest.raises(SystemExit):
        _full_parser().parse_args(
            ["transfer", "--source", "A", "--destination", "B", "--net-lbs", "1", "--wine-gallons", "1"]
        )
    assert "not allowed with argument" in capsys.readouterr().err


def test_transfer_requires_a_quantity(capsys):
    with pytest.raises(SystemExit):
        _full_parser().parse_args(["transfer", "--source", "A", "--destination", "B"])
    capsys.readouterr()


def test_invalid_number_is_reported_by_argparse(capsys):
    with pytest.raises(SystemExit):
        _full_parser().parse_args(["proof-down", "--container", "A", "--target-proof", "strong"])
    assert "invalid number" in capsys.readouterr().err


@pytest.mark.parametrize("raw, expected", [("750mL", Decimal("750")), ("1.75L", Decimal("1750")), ("330", Decimal("330"))])
def test_bottle_size_argument(raw, expected):
    assert cli.bottle_size_argument(raw) == expected


def test_distill_accepts_prefixed_charge_quantity():
    namespace = _full_parser().parse_args(
        [
            "distill",
            "--batch",
            "Run 4",
            "--product",
            "Bourbon",
            "--destination",
            "Still 1",
            "--proof-gallons",
            "75",
            "--proof",
            "130",
            "--charge-source",
            "Tank A",
            "--charge-net-lbs",
            "500",
        ]
    )

    assert cli.translate_quantity(namespace) == ProofGallons(Decimal("75"))
    assert cli.translate_quantity(namespace, prefix="charge-") == NetWeight(Decimal("500"))


def test_distill_account_defaults_to_storage(capsys):
    base = ["distill", "--batch", "Run 4", "--product", "Bourbon", "--destination", "Still 1", "--proof-gallons", "75", "--proof", "130"]

    assert _full_parser().parse_args(base).account == "storage"
    assert _full_parser().parse_args([*base, "--account", "production"]).account == "production"
    with pytest.raises(SystemExit):
        _full_parser().parse_args([*base, "--account", "bonded"])
    capsys.readouterr()


# ---------------------------------------------------------------------------
# Translation
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    "flag, kind",
    [("net_lbs", NetWeight), ("gross_lbs", GrossWeight), ("wine_gallons", WineGallons), ("proof_gallons", ProofGallons)],
)
def test_translate_quantity_picks_the_given_unit(flag, kind):
    values = dict.fromkeys(("net_lbs", "gross_lbs", "wine_gallons", "proof_gallons"))
    values[flag] = Decimal("12.5")

    assert cli.translate_quantity(argparse.Namespace(**values)) == kind(Decimal("12.5"))


def test_translate_add_container_without_fill():
    args = _full_parser().parse_args(["add-container", "--name", "Drum 1", "--type", "drum", "--tare-lbs", "55"])

    command = cli.translate_add_container(args)

    assert command == core_logic.AddContainerCommand(
        name="Drum 1",
        container_type="drum",
        tare_weight_lbs=Decimal("55"),
        fill=None,
        notes=None,
    )


def test_translate_add_container_with_fill():
    args = _full_parser().parse_args(
        [
            "add-container",
            "--name",
            "Barrel 1",
            "--type",
            "barrel",
            "--tare-lbs",
            "100",
            "--gross-lbs",
            "400",
            "--proof",
            "100",
            "--product",
            "Bourbon",
            "--temperature",
            "70",
            "--fill-date",
            "2026-03-02",
        ]
    )

    fill = cli.translate_add_container(args).fill

    assert fill.quantity == GrossWeight(Decimal("400"))
    assert fill.temperature == Decimal("70")
    assert fill.fill_date.isoformat() == "2026-03-02"


def test_translate_add_container_requires_proof_with_fill():
    args = _full_parser().parse_args(
        ["add-container", "--name", "Barrel 1", "--type", "barrel", "--tare-lbs", "100", "--net-lbs", "300"]
    )

    with pytest.raises(ValidationError, match="--proof and --product"):
        cli.translate_add_container(args)


def test_translate_transfer_resolves_names(runtime_context, make_container):
    source = make_container("Tank A", container_type="tank")
    destination = make_container("Tank B", container_type="tank", quantity=None)
    args = _full_parser().parse_args(
        ["transfer", "--source", "tank a", "--destination", destination.container_id, "--net-lbs", "10"]
    )

    command = cli.translate_transfer(runtime_context, args)

    assert command.source_id == source.container_id
    assert command.destination_id == destination.container_id
    assert command.quantity == NetWeight(Decimal("10"))


def test_translate_bottle_maps_enums(runtime_context, make_container):
    barrel = make_container()
    args = _full_parser().parse_args(
        [
            "bottle",
            "--container",
            "Barrel 1",
            "--bottles",
            "100",
            "--size",
            "750mL",
            "--remainder",
            "adjust",
            "--adjustment-gallons",
            "0.5",
            "--adjustment-direction",
            "add",
        ]
    )

    command = cli.translate_bottle(runtime_context, args)

    assert command.container_id == barrel.container_id
    assert command.bottle_size_ml == Decimal("750")
    assert command.remainder_action is RemainderAction.ADJUST
    assert command.adjustment_direction is AdjustmentDirection.ADD


def test_resolve_container_id_reports_unknown_names(runtime_context):
    with pytest.raises(MissingReferenceError):
        cli.resolve_container_id(runtime_context, "Nowhere")


# ---------------------------------------------------------------------------
# Dispatch and error handling
# ---------------------------------------------------------------------------


def test_dispatch_command_routes_to_executor(command_spec_iterable):
    table = cli.build_command_table(command_spec_iterable)

    assert cli.dispatch_command(object(), argparse.Namespace(command="beta"), table) == 0
    with pytest.raises(KeyError):
        cli.dispatch_command(object(), argparse.Namespace(command="delta"), table)
    with pytest.raises(KeyError):
        cli.dispatch_command(object(), argparse.Namespace(command=None), table)


@pytest.mark.parametrize(
    "error, code",
    [
        (ValidationError("bad"), 2),
        (MissingReferenceError("unknown"), 2),
        (EligibilityError("L1", "too old"), 2),
        (FileNotFoundError("config.ini"), 3),
        (ConflictError("C1", 1, 2), 4),
        (PersistenceError("disk full"), 1),
        (RuntimeError("schema"), 1),
    ],
)
def test_handle_cli_error_maps_exit_codes(error, code):
    assert cli.handle_cli_error(error) == code


def test_format_container_marks_empty_and_deleted(make_container):
    container = make_container(quantity=None)

    line = cli.format_container(container)
    assert "empty since" in line
    assert "[deleted]" not in line

    retired = cli.format_container(replace(container, is_active=False))
    assert retired.endswith("[deleted]")


def test_format_entry_signs_deltas(runtime_context, make_container):
    make_container()
    (entry,) = core_logic.list_log_entries(runtime_context)

    line = cli.format_entry(entry)

    assert LogEntryType.CREATE_FILLED_CONTAINER.value in line
    assert "+300.00 lbs" in line


# ---------------------------------------------------------------------------
# End to end through main()
# ---------------------------------------------------------------------------


def _run(config_file: Path, *argv: str) -> int:
    return cli.main(["--config", str(config_file), *argv])


def test_main_runs_write_and_read_commands(config_file, capsys):
    assert _run(
        config_file,
        "add-container",
        "--name",
        "Barrel 1",
        "--type",
        "barrel",
        "--tare-lbs",
        "100",
        "--net-lbs",
        "300",
        "--proof",
        "100",
        "--product",
        "Bourbon",
    ) == 0
    assert _run(config_file, "add-container", "--name", "Barrel 2", "--type", "barrel", "--tare-lbs", "100") == 0
    assert _run(config_file, "transfer", "--source", "Barrel 1", "--destination", "Barrel 2", "--net-lbs", "100") == 0
    capsys.readouterr()

    assert _run(config_file, "inventory") == 0
    inventory = capsys.readouterr().out
    assert "Barrel 1" in inventory
    assert re.search(r"Barrel 1 .*Bourbon @ 100.* 200(\.0+)? lbs", inventory)

    assert _run(config_file, "log", "--container", "Barrel 2", "--limit", "1") == 0
    assert "TRANSFER_IN" in capsys.readouterr().out

    assert _run(config_file, "summary") == 0
    assert "Bourbon" in capsys.readouterr().out

    assert _run(config_file, "check") == 0
    assert "agree" in capsys.readouterr().out


def test_main_undo_through_configured_strategy(config_file, capsys):
    _run(
        config_file,
        "add-container",
        "--name",
        "Barrel 1",
        "--type",
        "barrel",
        "--tare-lbs",
        "100",
        "--net-lbs",
        "300",
        "--proof",
        "100",
        "--product",
        "Bourbon",
    )
    _run(config_file, "adjust", "--container", "Barrel 1", "--net-lbs", "10")
    context = core_logic.load_runtime_context(config_file)
    sample = core_logic.list_log_entries(context, limit=1)[0]
    capsys.readouterr()

    assert _run(config_file, "undo", "--entry-id", sample.entry_id, "--strategy", "soft") == 0
    assert "soft undo" in capsys.readouterr().out

    assert _run(config_file, "undo", "--entry-id", sample.entry_id) == 2


def test_main_reports_validation_errors(config_file):
    assert _run(config_file, "proof-down", "--container", "Missing", "--target-proof", "80") == 2


def test_main_reports_missing_config(tmp_path):
    assert _run(tmp_path / "absent" / "config.ini", "inventory") == 3


def test_main_check_exits_non_zero_on_drift(config_file, capsys):
    _run(config_file, "add-container", "--name", "Barrel 1", "--type", "barrel", "--tare-lbs", "100", "--net-lbs", "300", "--proof", "100", "--product", "Bourbon")
    _run(config_file, "adjust", "--container", "Barrel 1", "--net-lbs", "10")
    context = core_logic.load_runtime_context(config_file)
    sample = core_logic.list_log_entries(context, limit=1)[0]
    assert _run(config_file, "remove-entry", "--entry-id", sample.entry_id) == 0
    capsys.readouterr()

    assert _run(config_file, "check") == 1
    assert "net drift -10" in capsys.readouterr().out


def test_main_production_batch_lifecycle(config_file, capsys):
    assert _run(
        config_file,
        "production",
        "--batch",
        "Mash 3",
        "--product",
        "Bourbon",
        "--volume-gallons",
        "450",
        "--og",
        "1.070",
        "--date",
        "2026-03-01",
    ) == 0
    assert "Mash 3" in capsys.readouterr().out

    assert _run(config_file, "edit-production", "--batch", "mash 3", "--fg", "1.004", "--name", "Mash 3A") == 0
    assert "FG 1.004" in capsys.readouterr().out

    assert _run(config_file, "batches", "--type", "fermentation") == 0
    listing = capsys.readouterr().out
    assert "2026-03-01" in listing
    assert "Mash 3A" in listing
    assert _run(config_file, "batches", "--type", "distillation") == 0
    assert capsys.readouterr().out == ""

    assert _run(config_file, "delete-production", "--batch", "Mash 3A") == 0
    output = capsys.readouterr().out
    assert "Deleted batch Mash 3A" in output
    assert "DELETE_PRODUCTION_BATCH" in output

    context = core_logic.load_runtime_context(config_file)
    assert core_logic.list_production_batches(context) == []
    assert _run(config_file, "delete-production", "--batch", "Mash 3A") == 2
