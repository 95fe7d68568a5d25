"""Shared pytest fixtures and utilities for spirits ledger tests."""

from __future__ import annotations

import argparse
import sys
import uuid
from dataclasses import dataclass
from datetime import UTC, datetime
from decimal import Decimal
from pathlib import Path
from typing import Callable, Iterator

import pytest

# Ensure source packages are importable without installation.
PROJECT_ROOT = Path(__file__).resolve().parents[1]
SRC_DIR = PROJECT_ROOT / "src"

if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from spirits_ledger import cli, constants, core_logic  # noqa: E402
from spirits_ledger.conversions import NetWeight, QuantityInput  # noqa: E402
from spirits_ledger.setup_excel import create_master_workbook  # noqa: E402

DEFAULT_SCHEMA_VERSION = constants.EXPECTED_SCHEMA_VERSION
DEFAULT_ACCOUNT = constants.Account.STORAGE.value
BASE_TIME = datetime(2026, 3, 2, 9, 30, tzinfo=UTC)
_CONFIG_TEMPLATE = (
    "[System]\n"
    "DataFile = {data_file}\n"
    "DistilleryName = {distillery_name}\n"
    "SchemaVersion = {schema_version}\n\n"
    "[Defaults]\n"
    "Account = {default_account}\n\n"
    "[Undo]\n"
    "Strategy = {undo_strategy}\n"
    "WindowDays = {undo_window_days}\n"
)


@dataclass(frozen=True)
class ConfigBundle:
    """Container bundling together config metadata for tests."""

    directory: Path
    config_path: Path
    workbook_path: Path
    default_account: str
    schema_version: str
    distillery_name: str
    undo_strategy: str


@pytest.fixture(scope="session", autouse=True)
def _restore_sys_path() -> Iterator[None]:
    """Ensure sys.path modifications are undone after the test session."""

    original = sys.path.copy()
    try:
        yield
    finally:
        sys.path[:] = original


@pytest.fixture
def workbook_factory(tmp_path: Path) -> Callable[..., Path]:
    """Factory that creates an initialized ledger workbook in a temp folder."""

    def _create_workbook(*, subdir: str | None = None, filename: str = "spirits_ledger.xlsx") -> Path:
        base_dir = tmp_path if subdir is None else tmp_path / subdir
        base_dir.mkdir(parents=True, exist_ok=True)
        workbook_path = base_dir / filename
        create_master_workbook(workbook_path, overwrite=True)
        return workbook_path

    return _create_workbook


@pytest.fixture
def master_workbook_path(workbook_factory: Callable[..., Path]) -> Path:
    """Return a fresh ledger workbook ready for use in a test."""

    return workbook_factory(subdir=f"workbook_{uuid.uuid4().hex}")


@pytest.fixture
def config_factory(tmp_path: Path, workbook_factory: Callable[..., Path]) -> Callable[..., ConfigBundle]:
    """Provide a callable that creates config/workbook bundles on demand."""

    def _create_config(
        *,
        make_relative: bool = False,
        distillery_name: str = "Test Distillery",
        schema_version: str = DEFAULT_SCHEMA_VERSION,
        default_account: str = DEFAULT_ACCOUNT,
        undo_strategy: str = "hard",
        undo_window_days: int = 30,
    ) -> ConfigBundle:
        bundle_id = uuid.uuid4().hex
        bundle_dir = tmp_path / f"bundle_{bundle_id}"
        workbook_path = workbook_factory(subdir=f"bundle_{bundle_id}")
        data_file_entry = workbook_path.name if make_relative else str(workbook_path)
        config_path = bundle_dir / "config.ini"
        config_path.write_text(
            _CONFIG_TEMPLATE.format(
                data_file=data_file_entry,
                distillery_name=distillery_name,
                schema_version=schema_version,
                default_account=default_account,
                undo_strategy=undo_strategy,
                undo_window_days=undo_window_days,
            )
        )
        return ConfigBundle(
            directory=bundle_dir,
            config_path=config_path,
            workbook_path=workbook_path,
            default_account=default_account,
            schema_version=schema_version,
            distillery_name=distillery_name,
            undo_strategy=undo_strategy,
        )

    return _create_config


@pytest.fixture
def config_file(config_factory: Callable[..., ConfigBundle]) -> Path:
    """Convenience fixture returning only the config path."""

    return config_factory().config_path


@pytest.fixture
def runtime_context(config_file: Path) -> core_logic.RuntimeContext:
    """Load the runtime context for tests through the public API."""

    context = core_logic.load_runtime_context(config_file)
    core_logic.ensure_schema_version(context)
    return context


@pytest.fixture
def soft_undo_context(config_factory: Callable[..., ConfigBundle]) -> core_logic.RuntimeContext:
    """Runtime context whose configuration selects the soft undo strategy."""

    return core_logic.load_runtime_context(config_factory(undo_strategy="soft").config_path)


@pytest.fixture
def make_container(runtime_context: core_logic.RuntimeContext) -> Callable[..., core_logic.data_manager.ContainerRow]:
    """Add a container through the business layer and return the stored row.

    Defaults describe a barrel holding 300 lbs of 100 proof Bourbon.
    """

    def _make(
        name: str = "Barrel 1",
        *,
        context: core_logic.RuntimeContext | None = None,
        container_type: str = "barrel",
        tare: Decimal = Decimal("100"),
        quantity: QuantityInput | None = NetWeight(Decimal("300")),
        proof: Decimal = Decimal("100"),
        product: str = "Bourbon",
        account: str | None = None,
        temperature: Decimal | None = None,
        timestamp: datetime = BASE_TIME,
    ) -> core_logic.data_manager.ContainerRow:
        fill = None
        if quantity is not None:
            fill = core_logic.FillSpec(
                quantity=quantity,
                proof=proof,
                product_type=product,
                account=account,
                temperature=temperature,
            )
        command = core_logic.AddContainerCommand(
            name=name,
            container_type=container_type,
            tare_weight_lbs=tare,
            fill=fill,
            timestamp=timestamp,
        )
        return core_logic.add_container(context or runtime_context, command).container

    return _make


# ---------------------------------------------------------------------------
# CLI layer fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def cli_parser() -> argparse.ArgumentParser:
    """Return a fresh CLI parser instance for tests."""

    return argparse.ArgumentParser(prog="spirits-cli", description="Spirits CLI")


@pytest.fixture
def subparsers_action(cli_parser: argparse.ArgumentParser) -> argparse._SubParsersAction:
    """Return the subparser action used to register commands."""

    return cli_parser.add_subparsers(dest="command")


@pytest.fixture
def command_spec_iterable() -> list[cli.CommandSpec]:
    """Provide a list of command specs for indexing tests."""

    def _make_spec(name: str) -> cli.CommandSpec:
        return cli.CommandSpec(
            name,
            f"{name} help",
            lambda subparsers: subparsers.add_parser(name),
            lambda *_: 0,
        )

    return [_make_spec("alpha"), _make_spec("beta"), _make_spec("gamma")]


# ---------------------------------------------------------------------------
# Clock fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def set_fixed_datetime(monkeypatch: pytest.MonkeyPatch) -> Callable[[datetime], datetime]:
    """Patch ``core_logic.datetime`` to return a predetermined moment."""

    def _apply(moment: datetime) -> datetime:
        class _FixedDateTime:
            @staticmethod
            def now(tz=None):
                assert tz is UTC
                return moment

        monkeypatch.setattr(core_logic, "datetime", _FixedDateTime)
        return moment

    return _apply
