"""Shared pytest fixtures and utilities for IcarStok tests."""

from __future__ import annotations

import argparse
import sys
import uuid
from dataclasses import dataclass
from datetime import UTC, datetime
from decimal import Decimal
from pathlib import Path
from typing import Callable, Iterator, Optional

import pytest

# Ensure source packages are importable without installation.
PROJECT_ROOT = Path(__file__).resolve().parents[1]
SRC_DIR = PROJECT_ROOT / "src"

if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from icarstok import auth, cli, constants, core_logic, data_manager  # noqa: E402

DEFAULT_SCHEMA_VERSION = constants.EXPECTED_SCHEMA_VERSION
DEFAULT_APP_ID = "icarstok-test"
DEFAULT_USER_ID = "user-1"
TEST_PBKDF2_ROUNDS = 1_000
_CONFIG_TEMPLATE = (
    "[System]\n"
    "DataDir = {data_dir}\n"
    "AppID = {app_id}\n"
    "SchemaVersion = {schema_version}\n"
)
_AI_TEMPLATE = (
    "\n[AI]\n"
    "ApiKey = {api_key}\n"
    "TimeoutSeconds = 5\n"
    "MaxRetries = 1\n"
)


@dataclass(frozen=True)
class ConfigBundle:
    """Container bundling together config metadata for tests."""

    directory: Path
    config_path: Path
    data_dir: Path
    app_id: str
    schema_version: str


@pytest.fixture(scope="session", autouse=True)
def _restore_sys_path() -> Iterator[None]:
    """Ensure sys.path modifications are undone after the test session."""

    original = sys.path.copy()
    try:
        yield
    finally:
        sys.path[:] = original


@pytest.fixture
def config_factory(tmp_path: Path) -> Callable[..., ConfigBundle]:
    """Provide a callable that creates config bundles on demand."""

    def _create_config(
        *,
        make_relative: bool = False,
        app_id: str = DEFAULT_APP_ID,
        schema_version: str = DEFAULT_SCHEMA_VERSION,
        api_key: Optional[str] = None,
    ) -> ConfigBundle:
        bundle_dir = tmp_path / f"bundle_{uuid.uuid4().hex}"
        bundle_dir.mkdir(parents=True, exist_ok=True)
        data_dir = bundle_dir / "data"
        text = _CONFIG_TEMPLATE.format(
            data_dir="data" if make_relative else str(data_dir),
            app_id=app_id,
            schema_version=schema_version,
        )
        if api_key is not None:
            text += _AI_TEMPLATE.format(api_key=api_key)
        config_path = bundle_dir / "config.ini"
        config_path.write_text(text)
        return ConfigBundle(
            directory=bundle_dir,
            config_path=config_path,
            data_dir=data_dir,
            app_id=app_id,
            schema_version=schema_version,
        )

    return _create_config


@pytest.fixture
def config_file(config_factory: Callable[..., ConfigBundle]) -> Path:
    """Convenience fixture returning only the config path."""

    return config_factory().config_path


@pytest.fixture
def settings(config_file: Path) -> data_manager.ConfigSettings:
    """Parsed settings pointing at a temporary data directory."""

    return core_logic.load_settings(config_file)


@pytest.fixture
def runtime_context(settings: data_manager.ConfigSettings) -> core_logic.RuntimeContext:
    """Load the runtime context for tests through the public API."""

    context = core_logic.load_runtime_context(settings, DEFAULT_USER_ID)
    core_logic.ensure_schema_version(context)
    return context


@pytest.fixture
def product_factory(runtime_context: core_logic.RuntimeContext) -> Callable[..., data_manager.ProductRow]:
    """Store products with fixed identifiers directly through the DAL."""

    def _create_product(
        product_id: str,
        *,
        name: Optional[str] = None,
        current_stock: int = 0,
        min_stock: int = 0,
        cost_price: str = "0",
        sale_price: str = "0",
        supplier_id: Optional[str] = None,
    ) -> data_manager.ProductRow:
        workbook = data_manager.open_workbook(runtime_context.data_file)
        stored = data_manager.insert_product(
            workbook,
            data_manager.ProductRow(
                product_id=product_id,
                name=name or product_id.upper(),
                description="",
                sku=f"SKU-{product_id}",
                category="general",
                cost_price=Decimal(cost_price),
                sale_price=Decimal(sale_price),
                current_stock=current_stock,
                min_stock=min_stock,
                supplier_id=supplier_id,
            ),
        )
        data_manager.save_workbook(workbook, runtime_context.data_file)
        core_logic.refresh_context(runtime_context)
        return stored

    return _create_product


@pytest.fixture
def identity_provider(settings: data_manager.ConfigSettings) -> auth.IdentityProvider:
    """Identity provider with a cheap hash cost for fast tests."""

    return auth.IdentityProvider(data_manager.identity_path(settings), rounds=TEST_PBKDF2_ROUNDS)


# ---------------------------------------------------------------------------
# CLI layer fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def cli_parser() -> argparse.ArgumentParser:
    """Return a fresh CLI parser instance for tests."""

    return argparse.ArgumentParser(prog="icarstok", description="IcarStok CLI")


@pytest.fixture
def subparsers_action(
    cli_parser: argparse.ArgumentParser,
) -> argparse._SubParsersAction[argparse.ArgumentParser]:
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
# Clock control
# ---------------------------------------------------------------------------


@pytest.fixture
def set_fixed_datetime(monkeypatch: pytest.MonkeyPatch) -> Callable[[datetime], datetime]:
    """Patch ``data_manager.datetime`` so store timestamps are predictable."""

    def _apply(moment: datetime) -> datetime:
        class _FixedDateTime:
            @staticmethod
            def now(tz=None):
                assert tz is UTC
                return moment

        monkeypatch.setattr(data_manager, "datetime", _FixedDateTime)
        return moment

    return _apply
