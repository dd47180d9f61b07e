"""Data access layer for IcarStok.

This module provides low-level helpers that read from and write to the
per-user ``inventory.xlsx`` partition workbooks and the shared identity
workbook. Business logic belongs elsewhere.

The public API is designed around three responsibilities:

1. Configuration handling: finding and parsing ``config.ini``.
2. Workbook lifecycle: locating, opening, and atomically persisting the Excel
   files that back each tenant/user partition.
3. Collection operations: loading structured documents, inserting them with
   store-assigned identifiers and timestamps, updating or deleting them by id,
   and adjusting stock with a conditional update.
"""


from __future__ import annotations

import configparser
import os
import re
import uuid
from dataclasses import dataclass, replace
from datetime import UTC, datetime
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, Iterable, Optional, Sequence

from openpyxl.workbook import Workbook
import openpyxl
from filelock import FileLock

from . import log
from .constants import USERS_SHEET, Collection
from .exceptions import ConfigError


CONFIG_FILE_NAME = "config.ini"
PARTITION_FILE_NAME = "inventory.xlsx"
IDENTITY_FILE_NAME = "identity.xlsx"
PRODUCTS_SHEET = Collection.PRODUCTS.value
SUPPLIERS_SHEET = Collection.SUPPLIERS.value
SALES_SHEET = Collection.SALES.value
PURCHASES_SHEET = Collection.PURCHASES.value

DEFAULT_AI_ENDPOINT = "https://generativelanguage.googleapis.com/v1beta/models"
DEFAULT_AI_MODEL = "gemini-2.0-flash"
DEFAULT_AI_TIMEOUT_SECONDS = 30.0
DEFAULT_AI_MAX_RETRIES = 2
LOCK_TIMEOUT_SECONDS = 10.0

_SAFE_SEGMENT_RE = re.compile(r"^[A-Za-z0-9_.-]+$")


@dataclass(frozen=True)
class ConfigSettings:
    """Typed representation of the ``config.ini`` settings we care about."""

    data_dir: Path
    app_id: str
    schema_version: str
    ai_api_key: str = ""
    ai_endpoint: str = DEFAULT_AI_ENDPOINT
    ai_model: str = DEFAULT_AI_MODEL
    ai_timeout_seconds: float = DEFAULT_AI_TIMEOUT_SECONDS
    ai_max_retries: int = DEFAULT_AI_MAX_RETRIES


@dataclass(frozen=True)
class ProductRow:
    """In-memory view of a document from the ``products`` collection."""

    product_id: str
    name: str
    description: str
    sku: str
    category: str
    cost_price: Decimal
    sale_price: Decimal
    current_stock: int
    min_stock: int
    supplier_id: Optional[str]
    is_active: bool = True
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


@dataclass(frozen=True)
class SupplierRow:
    """In-memory view of a document from the ``suppliers`` collection."""

    supplier_id: str
    name: str
    contact: str
    address: str
    payment_terms: str
    is_active: bool = True
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


@dataclass(frozen=True)
class SaleRow:
    """In-memory view of a document from the ``sales`` collection."""

    sale_id: str
    product_id: str
    quantity: int
    sale_price: Decimal
    sale_date: str
    created_at: Optional[str] = None


@dataclass(frozen=True)
class PurchaseRow:
    """In-memory view of a document from the ``purchases`` collection."""

    purchase_id: str
    product_id: str
    supplier_id: Optional[str]
    quantity: int
    cost_price: Decimal
    purchase_date: str
    created_at: Optional[str] = None


@dataclass(frozen=True)
class UserRow:
    """In-memory view of a registered user in the identity workbook."""

    user_id: str
    email: str
    password_hash: str
    salt: str
    created_at: Optional[str] = None


def find_config_file(explicit_path: Optional[Path] = None) -> Path:
    """Locate the configuration file that controls how the data layer behaves.

    If the caller provides ``explicit_path`` the value is returned immediately
    without any verification. Otherwise the function walks up from the current
    working directory toward the filesystem root looking for a file named
    ``CONFIG_FILE_NAME``; the first match is considered authoritative.

    Args:
        explicit_path (Path | None): Optional path to use instead of performing
            the upward search.

    Returns:
        Path: The path provided by the caller or the discovered configuration
            file.

    Raises:
        FileNotFoundError: If no parent directory contains ``CONFIG_FILE_NAME``.
    """

    if explicit_path:
        return explicit_path

    current = Path.cwd()
    for p in (current, *current.parents):
        candidate = p / CONFIG_FILE_NAME
        if candidate.exists():
            return candidate

    raise FileNotFoundError(
        f"Configuration file not found: {CONFIG_FILE_NAME}")


def read_config(config_path: Path) -> configparser.ConfigParser:
    """Load ``config.ini`` and return a populated ``ConfigParser`` instance.

    Validation of required entries happens in :func:`parse_settings`.

    Raises:
        FileNotFoundError: If ``config_path`` does not exist after expansion and
            resolution.
        ConfigError: If the file is not valid INI syntax.
    """

    config_path = config_path.expanduser().resolve()
    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    parser = configparser.ConfigParser()
    try:
        parser.read(config_path)
    except configparser.Error as exc:
        raise ConfigError(f"Malformed configuration file '{config_path}': {exc}") from exc
    return parser


def parse_settings(parser: configparser.ConfigParser, *, base_path: Optional[Path] = None) -> ConfigSettings:
    """Convert a ``ConfigParser`` into strongly typed :class:`ConfigSettings`.

    The ``[System]`` section is mandatory. The ``[AI]`` section is optional and
    falls back to module defaults; an empty API key is accepted here and only
    rejected when the insight generator is built. Relative ``DataDir`` entries
    are anchored to ``base_path`` (or the working directory) and resolved.

    Args:
        parser (configparser.ConfigParser): Parsed configuration data.
        base_path (Path | None): Directory used to anchor relative paths.

    Returns:
        ConfigSettings: Immutable settings container.

    Raises:
        ConfigError: If a required entry is missing or a numeric AI option
            cannot be parsed.
    """

    try:
        data_dir_raw = parser.get("System", "DataDir")
        app_id = parser.get("System", "AppID").strip()
        schema_version = parser.get("System", "SchemaVersion")
    except (configparser.NoSectionError, configparser.NoOptionError) as exc:
        raise ConfigError(f"Missing required configuration entry: {exc}") from exc

    if not app_id or not _SAFE_SEGMENT_RE.match(app_id):
        raise ConfigError(f"Invalid AppID in configuration: {app_id!r}")

    try:
        timeout = parser.getfloat("AI", "TimeoutSeconds", fallback=DEFAULT_AI_TIMEOUT_SECONDS)
        max_retries = parser.getint("AI", "MaxRetries", fallback=DEFAULT_AI_MAX_RETRIES)
    except ValueError as exc:
        raise ConfigError(f"Invalid AI configuration: {exc}") from exc
    if timeout <= 0 or max_retries < 0:
        raise ConfigError("AI TimeoutSeconds must be positive and MaxRetries nonnegative")

    data_dir = Path(data_dir_raw).expanduser()
    if not data_dir.is_absolute():
        if base_path is None:
            base_path = Path.cwd()
        data_dir = (base_path / data_dir).resolve()

    return ConfigSettings(
        data_dir=data_dir,
        app_id=app_id,
        schema_version=schema_version,
        ai_api_key=parser.get("AI", "ApiKey", fallback="").strip(),
        ai_endpoint=parser.get("AI", "Endpoint", fallback=DEFAULT_AI_ENDPOINT).strip() or DEFAULT_AI_ENDPOINT,
        ai_model=parser.get("AI", "Model", fallback=DEFAULT_AI_MODEL).strip() or DEFAULT_AI_MODEL,
        ai_timeout_seconds=timeout,
        ai_max_retries=max_retries,
    )


def partition_path(settings: ConfigSettings, user_id: str) -> Path:
    """Return the workbook path that holds ``user_id``'s private collections.

    Raises:
        ValueError: If ``user_id`` could escape its directory.
    """

    if not user_id or not _SAFE_SEGMENT_RE.match(user_id) or user_id in {".", ".."}:
        raise ValueError(f"Invalid user id for partition path: {user_id!r}")
    return settings.data_dir / "artifacts" / settings.app_id / "users" / user_id / PARTITION_FILE_NAME


def identity_path(settings: ConfigSettings) -> Path:
    """Return the workbook path that stores the application's users."""

    return settings.data_dir / "artifacts" / settings.app_id / IDENTITY_FILE_NAME


def new_document_id() -> str:
    """Allocate an opaque identifier for a new document."""

    return uuid.uuid4().hex


def server_timestamp() -> str:
    """Return the store's notion of "now" as an ISO-8601 UTC string."""

    return datetime.now(UTC).isoformat()


def open_workbook(data_file: Path) -> Workbook:
    """Open a workbook and return a live ``openpyxl`` workbook.

    Raises:
        FileNotFoundError: If ``data_file`` does not exist after expansion and
            resolution.
    """

    data_file = Path(data_file).expanduser().resolve()
    if not data_file.exists():
        raise FileNotFoundError(f"Workbook not found: {data_file}")

    wb = openpyxl.load_workbook(data_file)
    return wb


def save_workbook(workbook: Workbook, destination: Path) -> None:
    """Persist the workbook so readers see either the old or the new file.

    The workbook is serialized next to ``destination`` and then swapped into
    place with :func:`os.replace`, which is atomic on the same filesystem. A
    failed serialization removes the partial temporary file and leaves the
    previous workbook untouched.

    Args:
        workbook (Workbook): Workbook instance to persist.
        destination (Path): Filesystem path that should receive the workbook.
    """

    dest = Path(destination).expanduser().resolve()
    dest.parent.mkdir(parents=True, exist_ok=True)
    temporary = dest.with_name(f".{dest.name}.tmp")
    try:
        workbook.save(temporary)
        os.replace(temporary, dest)
    finally:
        if temporary.exists():
            temporary.unlink()


def store_lock(data_file: Path) -> FileLock:
    """Return the exclusive lock that serializes writers of ``data_file``.

    The lock lives in a sibling ``<name>.lock`` file, so it is shared by every
    session and process that opens the same workbook. Holders must keep it from
    the reload through the atomic replace of a write unit. Acquisition gives up
    after :data:`LOCK_TIMEOUT_SECONDS` with :class:`filelock.Timeout`.
    """

    path = Path(data_file).expanduser().resolve()
    path.parent.mkdir(parents=True, exist_ok=True)
    return FileLock(str(path.with_name(f"{path.name}.lock")), timeout=LOCK_TIMEOUT_SECONDS)


def refresh_workbook(data_file: Path) -> Workbook:
    """Reload the workbook from disk, discarding any unsaved in-memory changes."""

    return open_workbook(data_file)


def _iter_rows(workbook: Workbook, sheet_name: str) -> Iterable[Sequence[object]]:
    sheet = workbook[sheet_name]
    for raw in sheet.iter_rows(min_row=2, values_only=True):
        # skip fully empty rows
        if any(cell is not None for cell in raw):
            yield raw


def iter_products(workbook: Workbook) -> Iterable[ProductRow]:
    """Iterate over product documents stored on the ``products`` worksheet.

    Yields:
        ProductRow: One structured row for each meaningful record in the sheet.
    """

    for raw in _iter_rows(workbook, PRODUCTS_SHEET):
        yield deserialize_product(raw)


def iter_suppliers(workbook: Workbook) -> Iterable[SupplierRow]:
    """Iterate over the ``suppliers`` worksheet and yield typed records."""

    for raw in _iter_rows(workbook, SUPPLIERS_SHEET):
        yield deserialize_supplier(raw)


def iter_sales(workbook: Workbook) -> Iterable[SaleRow]:
    """Stream sale records from the ``sales`` worksheet in insertion order."""

    for raw in _iter_rows(workbook, SALES_SHEET):
        yield deserialize_sale(raw)


def iter_purchases(workbook: Workbook) -> Iterable[PurchaseRow]:
    """Stream purchase records from the ``purchases`` worksheet in insertion order."""

    for raw in _iter_rows(workbook, PURCHASES_SHEET):
        yield deserialize_purchase(raw)


def iter_users(workbook: Workbook) -> Iterable[UserRow]:
    """Iterate over registered users in the identity workbook."""

    for raw in _iter_rows(workbook, USERS_SHEET):
        yield deserialize_user(raw)


def read_product(workbook: Workbook, product_id: str) -> Optional[ProductRow]:
    """Read one product straight from the worksheet, bypassing any cache.

    Returns:
        ProductRow | None: The stored product, or ``None`` when absent.
    """

    raw = _read_row(workbook, PRODUCTS_SHEET, "ProductID", product_id)
    return deserialize_product(raw) if raw is not None else None


def read_supplier(workbook: Workbook, supplier_id: str) -> Optional[SupplierRow]:
    """Read one supplier straight from the worksheet, bypassing any cache."""

    raw = _read_row(workbook, SUPPLIERS_SHEET, "SupplierID", supplier_id)
    return deserialize_supplier(raw) if raw is not None else None


def _read_row(workbook: Workbook, sheet_name: str, key_column: str, key_value: str) -> Optional[Sequence[object]]:
    row_index = locate_row(workbook, sheet_name, key_column, key_value)
    if row_index is None:
        return None
    sheet = workbook[sheet_name]
    return next(sheet.iter_rows(min_row=row_index, max_row=row_index, values_only=True))


def insert_product(workbook: Workbook, record: ProductRow) -> ProductRow:
    """Append a product, assigning an id when blank and stamping timestamps.

    Returns:
        ProductRow: The record exactly as it was stored.
    """

    stamp = server_timestamp()
    stored = replace(
        record,
        product_id=record.product_id or new_document_id(),
        created_at=stamp,
        updated_at=stamp,
    )
    workbook[PRODUCTS_SHEET].append(serialize_product(stored))
    return stored


def insert_supplier(workbook: Workbook, record: SupplierRow) -> SupplierRow:
    """Append a supplier, assigning an id when blank and stamping timestamps."""

    stamp = server_timestamp()
    stored = replace(
        record,
        supplier_id=record.supplier_id or new_document_id(),
        created_at=stamp,
        updated_at=stamp,
    )
    workbook[SUPPLIERS_SHEET].append(serialize_supplier(stored))
    return stored


def insert_sale(workbook: Workbook, record: SaleRow) -> SaleRow:
    """Append a sale, assigning its id and creation timestamp."""

    stored = replace(
        record,
        sale_id=record.sale_id or new_document_id(),
        created_at=server_timestamp(),
    )
    workbook[SALES_SHEET].append(serialize_sale(stored))
    return stored


def insert_purchase(workbook: Workbook, record: PurchaseRow) -> PurchaseRow:
    """Append a purchase, assigning its id and creation timestamp."""

    stored = replace(
        record,
        purchase_id=record.purchase_id or new_document_id(),
        created_at=server_timestamp(),
    )
    workbook[PURCHASES_SHEET].append(serialize_purchase(stored))
    return stored


def insert_user(workbook: Workbook, record: UserRow) -> UserRow:
    """Append a registered user, assigning its id and creation timestamp."""

    stored = replace(
        record,
        user_id=record.user_id or new_document_id(),
        created_at=server_timestamp(),
    )
    workbook[USERS_SHEET].append(serialize_user(stored))
    return stored


def _update_row(workbook: Workbook, sheet_name: str, key_column: str, key_value: str, field_values: Dict[str, Any]) -> None:
    row_index = locate_row(workbook, sheet_name, key_column, key_value)
    if row_index is None:
        raise KeyError(f"Document not found in '{sheet_name}': {key_value}")

    sheet = workbook[sheet_name]
    header_map = _header_map(sheet)

    for field, value in field_values.items():
        if field not in header_map:
            raise KeyError(f"Unknown field for '{sheet_name}': {field}")
    for field, value in field_values.items():
        sheet.cell(row=row_index, column=header_map[field], value=value)


def update_product(workbook: Workbook, product_id: str, *, field_values: Dict[str, Any]) -> None:
    """Update selected columns for an existing product and refresh ``UpdatedAt``.

    Every requested column is checked against the header row before any cell
    is written, so an unknown column leaves the row untouched.

    Raises:
        KeyError: If the product or any referenced column cannot be found.
    """

    values = dict(field_values)
    values["UpdatedAt"] = server_timestamp()
    _update_row(workbook, PRODUCTS_SHEET, "ProductID", product_id, values)


def update_supplier(workbook: Workbook, supplier_id: str, *, field_values: Dict[str, Any]) -> None:
    """Update selected columns for an existing supplier and refresh ``UpdatedAt``.

    Raises:
        KeyError: If the supplier or any referenced column is missing.
    """

    values = dict(field_values)
    values["UpdatedAt"] = server_timestamp()
    _update_row(workbook, SUPPLIERS_SHEET, "SupplierID", supplier_id, values)


def delete_product(workbook: Workbook, product_id: str) -> None:
    """Remove a product row entirely.

    Raises:
        KeyError: If the product cannot be found.
    """

    _delete_row(workbook, PRODUCTS_SHEET, "ProductID", product_id)


def delete_supplier(workbook: Workbook, supplier_id: str) -> None:
    """Remove a supplier row entirely.

    Raises:
        KeyError: If the supplier cannot be found.
    """

    _delete_row(workbook, SUPPLIERS_SHEET, "SupplierID", supplier_id)


def _delete_row(workbook: Workbook, sheet_name: str, key_column: str, key_value: str) -> None:
    row_index = locate_row(workbook, sheet_name, key_column, key_value)
    if row_index is None:
        raise KeyError(f"Document not found in '{sheet_name}': {key_value}")
    workbook[sheet_name].delete_rows(row_index)


def adjust_stock(workbook: Workbook, product_id: str, delta: int, *, floor: int = 0) -> int:
    """Apply ``delta`` to a product's stock only if the result stays >= ``floor``.

    The current value is read from the worksheet cell at call time, never from
    a cached record, so the check and the write observe the same value.

    Args:
        workbook (Workbook): Workbook containing the products sheet.
        product_id (str): Product whose ``CurrentStock`` should change.
        delta (int): Signed change to apply.
        floor (int): Lowest value the stock may reach.

    Returns:
        int: The stock level after the update.

    Raises:
        KeyError: If the product row does not exist.
        ValueError: If the update would take stock below ``floor``; nothing is
            written in that case.
    """

    row_index = locate_row(workbook, PRODUCTS_SHEET, "ProductID", product_id)
    if row_index is None:
        raise KeyError(f"Product not found: {product_id}")

    sheet = workbook[PRODUCTS_SHEET]
    header_map = _header_map(sheet)
    stock_cell = sheet.cell(row=row_index, column=header_map["CurrentStock"])
    current = _to_int(stock_cell.value)
    updated = current + delta
    if updated < floor:
        raise ValueError(
            f"Stock for '{product_id}' would drop to {updated} (floor {floor})"
        )

    stock_cell.value = updated
    sheet.cell(row=row_index, column=header_map["UpdatedAt"], value=server_timestamp())
    log.debug("Adjusted stock for '%s': %d -> %d", product_id, current, updated)
    return updated


def _header_map(sheet) -> Dict[Any, int]:
    return {cell.value: idx + 1 for idx, cell in enumerate(sheet[1])}


def locate_row(workbook: Workbook, sheet_name: str, key_column: str, key_value: str) -> Optional[int]:
    """Find a row by matching a key value within the specified worksheet.

    Args:
        workbook (Workbook): Workbook providing access to ``sheet_name``.
        sheet_name (str): Name of the worksheet to search.
        key_column (str): Header title of the column that stores the key.
        key_value (str): Value to match within the key column.

    Returns:
        int | None: 1-based Excel row index when a match is found, otherwise
            ``None``.

    Raises:
        KeyError: If ``key_column`` is not present in the worksheet header.
    """

    sheet = workbook[sheet_name]
    header_map = _header_map(sheet)
    if key_column not in header_map:
        raise KeyError(f"Unknown column: {key_column}")

    key_col_index = header_map[key_column]

    for row_idx, row in enumerate(sheet.iter_rows(min_row=2, values_only=True), start=2):
        cell_value = row[key_col_index - 1]
        if cell_value is not None and str(cell_value) == key_value:
            return row_idx

    return None


def serialize_product(record: ProductRow) -> list[object]:
    """Convert a product dataclass into the worksheet column ordering."""

    return [
        record.product_id,
        record.name,
        record.description,
        record.sku,
        record.category,
        record.cost_price,
        record.sale_price,
        record.current_stock,
        record.min_stock,
        record.supplier_id or None,
        record.is_active,
        record.created_at,
        record.updated_at,
    ]


def serialize_supplier(record: SupplierRow) -> list[object]:
    """Convert a supplier dataclass into the worksheet column ordering."""

    return [
        record.supplier_id,
        record.name,
        record.contact,
        record.address,
        record.payment_terms,
        record.is_active,
        record.created_at,
        record.updated_at,
    ]


def serialize_sale(record: SaleRow) -> list[object]:
    """Convert a sale dataclass into the ``sales`` column ordering."""

    return [
        record.sale_id,
        record.product_id,
        record.quantity,
        record.sale_price,
        record.sale_date,
        record.created_at,
    ]


def serialize_purchase(record: PurchaseRow) -> list[object]:
    """Convert a purchase dataclass into the ``purchases`` column ordering."""

    return [
        record.purchase_id,
        record.product_id,
        record.supplier_id or None,
        record.quantity,
        record.cost_price,
        record.purchase_date,
        record.created_at,
    ]


def serialize_user(record: UserRow) -> list[object]:
    return [record.user_id, record.email, record.password_hash, record.salt, record.created_at]


def _to_decimal(raw: object) -> Decimal:
    return Decimal(str(raw)) if raw is not None else Decimal("0.00")


def _to_int(raw: object) -> int:
    # Excel may hand back 10.0 for a cell written as 10.
    return int(Decimal(str(raw))) if raw is not None else 0


def _to_text(raw: object) -> str:
    return str(raw) if raw is not None else ""


def _to_optional_text(raw: object) -> Optional[str]:
    if raw is None or raw == "":
        return None
    return str(raw)


def deserialize_product(raw_row: Sequence[object]) -> ProductRow:
    """Convert a raw worksheet row into a strongly typed product record.

    Prices become :class:`~decimal.Decimal`, stock levels become ``int``, and
    identifier/text columns are coerced to ``str`` so Excel's habit of
    interpreting numbers does not leak into the domain.
    """

    (
        product_id,
        name,
        description,
        sku,
        category,
        cost_raw,
        sale_raw,
        stock_raw,
        min_stock_raw,
        supplier_id,
        is_active,
        created_at,
        updated_at,
    ) = raw_row[:13]

    return ProductRow(
        product_id=str(product_id),
        name=_to_text(name),
        description=_to_text(description),
        sku=_to_text(sku),
        category=_to_text(category),
        cost_price=_to_decimal(cost_raw),
        sale_price=_to_decimal(sale_raw),
        current_stock=_to_int(stock_raw),
        min_stock=_to_int(min_stock_raw),
        supplier_id=_to_optional_text(supplier_id),
        is_active=True if is_active is None else bool(is_active),
        created_at=_to_optional_text(created_at),
        updated_at=_to_optional_text(updated_at),
    )


def deserialize_supplier(raw_row: Sequence[object]) -> SupplierRow:
    """Convert a raw worksheet row into a strongly typed supplier record."""

    supplier_id, name, contact, address, payment_terms, is_active, created_at, updated_at = raw_row[:8]
    return SupplierRow(
        supplier_id=str(supplier_id),
        name=_to_text(name),
        contact=_to_text(contact),
        address=_to_text(address),
        payment_terms=_to_text(payment_terms),
        is_active=True if is_active is None else bool(is_active),
        created_at=_to_optional_text(created_at),
        updated_at=_to_optional_text(updated_at),
    )


def deserialize_sale(raw_row: Sequence[object]) -> SaleRow:
    """Convert a raw worksheet row into a strongly typed sale record."""

    sale_id, product_id, quantity_raw, price_raw, sale_date, created_at = raw_row[:6]
    return SaleRow(
        sale_id=str(sale_id),
        product_id=_to_text(product_id),
        quantity=_to_int(quantity_raw),
        sale_price=_to_decimal(price_raw),
        sale_date=_to_text(sale_date),
        created_at=_to_optional_text(created_at),
    )


def deserialize_purchase(raw_row: Sequence[object]) -> PurchaseRow:
    """Convert a raw worksheet row into a strongly typed purchase record."""

    purchase_id, product_id, supplier_id, quantity_raw, cost_raw, purchase_date, created_at = raw_row[:7]
    return PurchaseRow(
        purchase_id=str(purchase_id),
        product_id=_to_text(product_id),
        supplier_id=_to_optional_text(supplier_id),
        quantity=_to_int(quantity_raw),
        cost_price=_to_decimal(cost_raw),
        purchase_date=_to_text(purchase_date),
        created_at=_to_optional_text(created_at),
    )


def deserialize_user(raw_row: Sequence[object]) -> UserRow:
    user_id, email, password_hash, salt, created_at = raw_row[:5]
    return UserRow(
        user_id=str(user_id),
        email=_to_text(email),
        password_hash=_to_text(password_hash),
        salt=_to_text(salt),
        created_at=_to_optional_text(created_at),
    )
