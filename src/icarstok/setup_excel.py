"""Utility for initializing IcarStok workbooks.

The module doubles as a script (``icarstok-setup``) and as a library used by
the business layer, the identity provider, and tests. Shared helpers keep the
workbook bootstrap logic consistent regardless of the execution path.
"""

from __future__ import annotations

import argparse
from pathlib import Path
from typing import Mapping, Sequence
import sys

import openpyxl
from openpyxl.styles import Font

from . import data_manager
from .constants import USERS_SHEET, Collection
from .exceptions import ConfigError

# Column layout of every per-user partition workbook.
PARTITION_COLUMNS: Mapping[str, Sequence[str]] = {
    Collection.PRODUCTS.value: [
        "ProductID",
        "Name",
        "Description",
        "SKU",
        "Category",
        "CostPrice",
        "SalePrice",
        "CurrentStock",
        "MinStock",
        "SupplierID",
        "IsActive",
        "CreatedAt",
        "UpdatedAt",
    ],
    Collection.SUPPLIERS.value: [
        "SupplierID",
        "Name",
        "Contact",
        "Address",
        "PaymentTerms",
        "IsActive",
        "CreatedAt",
        "UpdatedAt",
    ],
    Collection.SALES.value: [
        "SaleID",
        "ProductID",
        "Quantity",
        "SalePrice",
        "SaleDate",
        "CreatedAt",
    ],
    Collection.PURCHASES.value: [
        "PurchaseID",
        "ProductID",
        "SupplierID",
        "Quantity",
        "CostPrice",
        "PurchaseDate",
        "CreatedAt",
    ],
}

IDENTITY_COLUMNS: Mapping[str, Sequence[str]] = {
    USERS_SHEET: [
        "UserID",
        "Email",
        "PasswordHash",
        "Salt",
        "CreatedAt",
    ],
}

CONFIG_FILE = "config.ini"


def _create_workbook(
    destination: Path,
    sheet_columns: Mapping[str, Sequence[str]],
    *,
    overwrite: bool,
) -> Path:
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

    workbook.save(destination)
    return destination


def create_partition_workbook(
    destination: Path,
    *,
    sheet_columns: Mapping[str, Sequence[str]] = PARTITION_COLUMNS,
    overwrite: bool = False,
) -> Path:
    """Create an empty per-user inventory workbook at ``destination``.

    When ``overwrite`` is ``False`` (the default) this function raises
    ``FileExistsError`` if the target already exists.
    """

    return _create_workbook(destination, sheet_columns, overwrite=overwrite)


def create_identity_workbook(
    destination: Path,
    *,
    sheet_columns: Mapping[str, Sequence[str]] = IDENTITY_COLUMNS,
    overwrite: bool = False,
) -> Path:
    """Create the workbook that stores registered users."""

    return _create_workbook(destination, sheet_columns, overwrite=overwrite)


def run_from_config(config_path: Path, *, overwrite: bool = False) -> Path:
    """Create the identity workbook for the application named in ``config.ini``."""

    parser = data_manager.read_config(config_path)
    settings = data_manager.parse_settings(parser, base_path=config_path.parent)
    return create_identity_workbook(
        data_manager.identity_path(settings),
        overwrite=overwrite,
    )


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    """Parse CLI arguments for the setup script."""

    parser = argparse.ArgumentParser(description="Initialize IcarStok data files")
    parser.add_argument(
        "--config",
        default=CONFIG_FILE,
        help="Path to configuration file (default: config.ini)",
    )
    parser.add_argument(
        "--force",
        action="store_true",
        help="Overwrite the identity workbook if it already exists.",
    )
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point for the setup script."""

    args = parse_args(argv)
    config_path = Path(args.config).expanduser().resolve()

    print("--- IcarStok Setup Script ---")
    print(f"Using configuration: {config_path}")

    try:
        output_path = run_from_config(config_path, overwrite=args.force)
    except FileNotFoundError as exc:
        print(f"\n[ERROR] {exc}")
        return 1
    except ConfigError as exc:
        print(f"\n[ERROR] {exc}")
        return 1
    except FileExistsError as exc:
        print(f"\n[ERROR] {exc}")
        print("Run with --force to overwrite the existing file if appropriate.")
        return 1
    except (PermissionError, OSError) as exc:
        print(f"\n[ERROR] Unable to write workbook: {exc}")
        return 1

    print(f"\n[SUCCESS] Created identity workbook at '{output_path}'.")
    return 0


if __name__ == "__main__":  # pragma: no cover - exercised via manual runs
    sys.exit(main())
