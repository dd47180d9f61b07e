"""Business logic layer for IcarStok.

This module contains the ledger operation executor that keeps product stock
consistent with the sales and purchases recorded against it, plus the CRUD and
subscription plumbing around it. It consumes the Data Access Layer (DAL) for
all I/O while ensuring every mutation passes through the domain rules.

Every write runs inside :func:`_store_transaction`: under the partition's
cross-process store lock the workbook is reloaded from disk, validated and
mutated in memory, then committed with a single atomic file replacement. A
failure anywhere inside the unit discards the in-memory copy, so a sale or
purchase record never lands without its stock adjustment.
"""

from __future__ import annotations

import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, List, Optional, Set, Union
from zipfile import BadZipFile

from filelock import Timeout
from openpyxl.utils.exceptions import InvalidFileException
from openpyxl.workbook import Workbook

from . import data_manager, log, setup_excel
from .constants import EXPECTED_SCHEMA_VERSION, Collection, DeleteOutcome
from .exceptions import (
    ConfigError,
    InsufficientStockError,
    InvalidQuantityError,
    MissingReferenceError,
    PersistenceError,
    SubmissionInFlightError,
    UnknownProductError,
)
from .reports import InventorySnapshot


Listener = Callable[[List[Any]], None]
DateLike = Union[date, str]

_STORE_ERRORS = (OSError, BadZipFile, InvalidFileException)


@dataclass
class RuntimeContext:
    """Settings, partition workbook, and session state used by the BLL.

    The context is passed explicitly to every operation. ``workbook`` is
    replaced whenever the partition is reloaded from disk.
    """

    settings: data_manager.ConfigSettings
    user_id: str
    data_file: Path
    workbook: Workbook
    _cache: Dict[str, Dict[str, Any]] = field(default_factory=dict, repr=False, compare=False)
    _listeners: Dict[str, List[Listener]] = field(default_factory=dict, repr=False, compare=False)
    _in_flight: Set[str] = field(default_factory=set, repr=False, compare=False)
    _guard: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)


@dataclass(frozen=True)
class SaleCommand:
    """User intent for recording a sale."""

    product_id: str
    quantity: int
    unit_price: Decimal
    sale_date: DateLike


@dataclass(frozen=True)
class PurchaseCommand:
    """User intent for recording a purchase from a supplier."""

    product_id: str
    supplier_id: Optional[str]
    quantity: int
    unit_cost: Decimal
    purchase_date: DateLike


@dataclass(frozen=True)
class ProductFields:
    """Editable product attributes submitted from the management form."""

    name: str
    description: str = ""
    sku: str = ""
    category: str = ""
    cost_price: Decimal = Decimal("0")
    sale_price: Decimal = Decimal("0")
    current_stock: int = 0
    min_stock: int = 0
    supplier_id: Optional[str] = None


@dataclass(frozen=True)
class SupplierFields:
    """Editable supplier attributes submitted from the management form."""

    name: str
    contact: str = ""
    address: str = ""
    payment_terms: str = ""


def load_settings(config_path: Optional[Path] = None) -> data_manager.ConfigSettings:
    """Locate, read, and parse ``config.ini``.

    Raises:
        FileNotFoundError: If the configuration file cannot be located.
        ConfigError: When mandatory configuration options are missing.
    """

    located_config = data_manager.find_config_file(config_path)
    resolved_config = Path(located_config).expanduser().resolve()
    parser = data_manager.read_config(resolved_config)
    return data_manager.parse_settings(parser, base_path=resolved_config.parent)


def load_runtime_context(settings: data_manager.ConfigSettings, user_id: str) -> RuntimeContext:
    """Open (creating on first use) the partition workbook for ``user_id``.

    Args:
        settings (data_manager.ConfigSettings): Parsed configuration.
        user_id (str): Identifier of the authenticated user whose partition
            should be opened.

    Returns:
        RuntimeContext: Context ready for ledger and CRUD operations.

    Raises:
        PersistenceError: If the partition cannot be created or read.
    """

    data_file = data_manager.partition_path(settings, user_id)
    try:
        if not data_file.exists():
            with data_manager.store_lock(data_file):
                if not data_file.exists():
                    setup_excel.create_partition_workbook(data_file)
                    log.info("Created partition workbook for user '%s'", user_id)
        workbook = data_manager.open_workbook(data_file)
    except _STORE_ERRORS as exc:
        log.error("Unable to open partition '%s': %s", data_file, exc)
        raise PersistenceError(f"Unable to open partition '{data_file}': {exc}") from exc
    log.info("Loaded runtime context for user '%s'", user_id)
    return RuntimeContext(settings=settings, user_id=user_id, data_file=data_file, workbook=workbook)


def ensure_schema_version(context: RuntimeContext) -> None:
    """Validate that ``config.ini`` targets the schema this code understands.

    Raises:
        ConfigError: If the configured schema version differs from
            ``EXPECTED_SCHEMA_VERSION``.
    """
    if context.settings.schema_version != EXPECTED_SCHEMA_VERSION:
        log.error(
            "Workbook schema mismatch: expected %s, found %s",
            EXPECTED_SCHEMA_VERSION,
            context.settings.schema_version,
        )
        raise ConfigError(
            "Workbook schema mismatch: expected %s, found %s"
            % (EXPECTED_SCHEMA_VERSION, context.settings.schema_version)
        )

    log.debug("Schema version '%s' validated", context.settings.schema_version)


def refresh_context(context: RuntimeContext) -> None:
    """Reload the partition from disk and push every collection to subscribers.

    Use this to pick up writes made by other sessions sharing the partition.

    Raises:
        PersistenceError: If the workbook cannot be reloaded.
    """
    try:
        context.workbook = data_manager.refresh_workbook(context.data_file)
    except _STORE_ERRORS as exc:
        log.error("Unable to reload partition '%s': %s", context.data_file, exc)
        raise PersistenceError(f"Unable to reload partition '{context.data_file}': {exc}") from exc
    _invalidate_cache(context, *(member.value for member in Collection))
    log.info("Reloaded partition '%s'", context.data_file)
    _notify(context, *Collection)


# ---------------------------------------------------------------------------
# Read-side caches
# ---------------------------------------------------------------------------


def _get_cache_bucket(context: RuntimeContext, name: str) -> Dict[str, Any]:
    bucket = context._cache.get(name)
    if bucket is None:
        log.debug("Initializing cache bucket '%s'", name)
        bucket = {}
        context._cache[name] = bucket
    return bucket


def _invalidate_cache(context: RuntimeContext, *names: str) -> None:
    """Evict cache buckets after the workbook changed.

    Missing buckets are ignored so callers can request targeted invalidation.
    """

    if not names:
        return

    log.debug("Invalidating cache buckets: %s", ", ".join(names))

    for name in names:
        context._cache.pop(name, None)


def _ensure_products_cache(context: RuntimeContext) -> Dict[str, Any]:
    """Populate the product cache bucket on demand.

    Returns:
        dict[str, Any]: Bucket containing ``all`` products, ``active``
            products, and a ``by_id`` lookup dictionary.
    """

    bucket = _get_cache_bucket(context, Collection.PRODUCTS.value)
    if "all" not in bucket:
        all_products = list(data_manager.iter_products(context.workbook))
        bucket["all"] = all_products
        bucket["active"] = [product for product in all_products if product.is_active]
        bucket["by_id"] = {product.product_id: product for product in all_products}
        log.debug(
            "Populated products cache with %d entries (%d active)",
            len(all_products),
            len(bucket["active"]),
        )
    return bucket


def _ensure_suppliers_cache(context: RuntimeContext) -> Dict[str, Any]:
    bucket = _get_cache_bucket(context, Collection.SUPPLIERS.value)
    if "all" not in bucket:
        all_suppliers = list(data_manager.iter_suppliers(context.workbook))
        bucket["all"] = all_suppliers
        bucket["active"] = [supplier for supplier in all_suppliers if supplier.is_active]
        bucket["by_id"] = {supplier.supplier_id: supplier for supplier in all_suppliers}
        log.debug(
            "Populated suppliers cache with %d entries (%d active)",
            len(all_suppliers),
            len(bucket["active"]),
        )
    return bucket


def _ensure_sales_cache(context: RuntimeContext) -> Dict[str, Any]:
    bucket = _get_cache_bucket(context, Collection.SALES.value)
    if "all" not in bucket:
        bucket["all"] = list(data_manager.iter_sales(context.workbook))
        log.debug("Populated sales cache with %d entries", len(bucket["all"]))
    return bucket


def _ensure_purchases_cache(context: RuntimeContext) -> Dict[str, Any]:
    bucket = _get_cache_bucket(context, Collection.PURCHASES.value)
    if "all" not in bucket:
        bucket["all"] = list(data_manager.iter_purchases(context.workbook))
        log.debug("Populated purchases cache with %d entries", len(bucket["all"]))
    return bucket


def list_products(context: RuntimeContext, *, include_inactive: bool = False) -> List[data_manager.ProductRow]:
    """Return product documents, hiding archived ones unless requested.

    Args:
        context (RuntimeContext): Runtime context providing workbook access and
            caches.
        include_inactive (bool): When ``True`` the result includes archived
            products kept alive for historical sales and purchases.

    Returns:
        list[data_manager.ProductRow]: Copy of the cached product dataset in
            sheet order.
    """
    cache = _ensure_products_cache(context)
    source = cache["all"] if include_inactive else cache["active"]
    return list(source)


def list_suppliers(context: RuntimeContext, *, include_inactive: bool = False) -> List[data_manager.SupplierRow]:
    """Return supplier documents, hiding archived ones unless requested."""
    cache = _ensure_suppliers_cache(context)
    source = cache["all"] if include_inactive else cache["active"]
    return list(source)


def list_sales(context: RuntimeContext) -> List[data_manager.SaleRow]:
    """Return every recorded sale in insertion order."""
    return list(_ensure_sales_cache(context)["all"])


def list_purchases(context: RuntimeContext) -> List[data_manager.PurchaseRow]:
    """Return every recorded purchase in insertion order."""
    return list(_ensure_purchases_cache(context)["all"])


def get_product(context: RuntimeContext, product_id: str) -> data_manager.ProductRow:
    """Resolve an active product record by its identifier.

    Raises:
        MissingReferenceError: If ``product_id`` is unknown or archived.
    """
    cache = _ensure_products_cache(context)
    product = cache["by_id"].get(product_id)
    if product is None or not product.is_active:
        log.warning("Product lookup failed for id '%s'", product_id)
        raise MissingReferenceError(f"Unknown product id: {product_id}")
    return product


def get_supplier(context: RuntimeContext, supplier_id: str) -> data_manager.SupplierRow:
    """Resolve an active supplier record by its identifier.

    Raises:
        MissingReferenceError: If ``supplier_id`` is unknown or archived.
    """
    cache = _ensure_suppliers_cache(context)
    supplier = cache["by_id"].get(supplier_id)
    if supplier is None or not supplier.is_active:
        log.warning("Supplier lookup failed for id '%s'", supplier_id)
        raise MissingReferenceError(f"Unknown supplier id: {supplier_id}")
    return supplier


def take_snapshot(context: RuntimeContext) -> InventorySnapshot:
    """Capture the active products and suppliers plus all sales and purchases."""
    return InventorySnapshot(
        products=tuple(list_products(context)),
        suppliers=tuple(list_suppliers(context)),
        sales=tuple(list_sales(context)),
        purchases=tuple(list_purchases(context)),
    )


# ---------------------------------------------------------------------------
# Live subscriptions
# ---------------------------------------------------------------------------


def _collection_rows(context: RuntimeContext, collection: Collection) -> List[Any]:
    if collection is Collection.PRODUCTS:
        return list_products(context)
    if collection is Collection.SUPPLIERS:
        return list_suppliers(context)
    if collection is Collection.SALES:
        return list_sales(context)
    return list_purchases(context)


def subscribe(context: RuntimeContext, collection: Collection, callback: Listener) -> Callable[[], None]:
    """Register ``callback`` for pushes of ``collection``.

    The callback receives the full current collection right away and again
    after every committed change to it.

    Returns:
        Callable[[], None]: Function that removes the subscription.
    """
    collection = Collection(collection)
    listeners = context._listeners.setdefault(collection.value, [])
    listeners.append(callback)
    log.debug("Subscribed listener to '%s'", collection.value)
    callback(_collection_rows(context, collection))

    def unsubscribe() -> None:
        if callback in listeners:
            listeners.remove(callback)
            log.debug("Unsubscribed listener from '%s'", collection.value)

    return unsubscribe


def _notify(context: RuntimeContext, *collections: Collection) -> None:
    for collection in collections:
        listeners = context._listeners.get(collection.value)
        if not listeners:
            continue
        rows = _collection_rows(context, collection)
        for listener in list(listeners):
            try:
                listener(rows)
            except Exception:
                # The write is already committed; a failing subscriber must
                # not turn it into a reported failure.
                log.exception("Subscriber for '%s' raised", collection.value)


# ---------------------------------------------------------------------------
# Commit unit and submission guard
# ---------------------------------------------------------------------------


def _discard_changes(context: RuntimeContext, previous: Workbook) -> None:
    _invalidate_cache(context, *(member.value for member in Collection))
    try:
        context.workbook = data_manager.refresh_workbook(context.data_file)
    except _STORE_ERRORS as exc:
        context.workbook = previous
        log.error("Unable to reload partition after rollback: %s", exc)


@contextmanager
def _store_transaction(context: RuntimeContext, *collections: Collection) -> Iterator[Workbook]:
    """Run a read-validate-write unit against a fresh copy of the partition.

    The partition's store lock is held from the reload through the atomic
    replace, so concurrent sessions on the same partition commit one after
    another and each unit validates against the previous unit's result.

    Yields:
        Workbook: Workbook freshly loaded from disk. Mutations made to it are
            committed together when the block exits normally.

    Raises:
        PersistenceError: If the partition cannot be locked, read or saved, or
            a row addressed inside the block has vanished.
    """
    try:
        lock = data_manager.store_lock(context.data_file)
        lock.acquire()
    except Timeout as exc:
        log.error("Timed out waiting for the lock on '%s'", context.data_file)
        raise PersistenceError(f"Partition '{context.data_file}' is locked by another writer") from exc
    except OSError as exc:
        log.error("Unable to lock partition '%s': %s", context.data_file, exc)
        raise PersistenceError(f"Unable to lock partition '{context.data_file}': {exc}") from exc

    try:
        try:
            workbook = data_manager.refresh_workbook(context.data_file)
        except _STORE_ERRORS as exc:
            log.error("Unable to read partition '%s': %s", context.data_file, exc)
            raise PersistenceError(f"Unable to read partition '{context.data_file}': {exc}") from exc

        previous = context.workbook
        context.workbook = workbook
        _invalidate_cache(context, *(member.value for member in Collection))

        try:
            yield workbook
            data_manager.save_workbook(workbook, context.data_file)
        except (*_STORE_ERRORS, KeyError) as exc:
            _discard_changes(context, previous)
            log.error("Store transaction aborted: %s", exc)
            raise PersistenceError(f"Unable to write partition '{context.data_file}': {exc}") from exc
        except BaseException:
            _discard_changes(context, previous)
            raise
    finally:
        lock.release()

    _invalidate_cache(context, *(collection.value for collection in collections))
    _notify(context, *collections)


@contextmanager
def _submission_guard(context: RuntimeContext, form: str) -> Iterator[None]:
    """Reject a second submission of ``form`` while the first is still running."""
    with context._guard:
        if form in context._in_flight:
            log.warning("Rejected overlapping '%s' submission", form)
            raise SubmissionInFlightError(f"A '{form}' submission is already in progress")
        context._in_flight.add(form)
    try:
        yield
    finally:
        with context._guard:
            context._in_flight.discard(form)


# ---------------------------------------------------------------------------
# Ledger operations
# ---------------------------------------------------------------------------


def _require_active_product(workbook: Workbook, product_id: str) -> data_manager.ProductRow:
    product = data_manager.read_product(workbook, product_id)
    if product is None or not product.is_active:
        log.warning("Ledger operation references unknown product '%s'", product_id)
        raise UnknownProductError(product_id)
    return product


def submit_sale(context: RuntimeContext, command: SaleCommand) -> data_manager.SaleRow:
    """Validate a sale, record it, and decrement stock in one commit.

    Stock is re-read from the freshly loaded partition, never from a cache,
    and the decrement is a conditional update that refuses to go below zero.

    Args:
        context (RuntimeContext): Runtime context for the signed-in user.
        command (SaleCommand): Structured intent describing the sale.

    Returns:
        data_manager.SaleRow: The stored sale, including its assigned id.

    Raises:
        InvalidQuantityError: If the quantity is not a positive whole number.
        UnknownProductError: If the product does not exist.
        InsufficientStockError: If fewer units are in stock than requested.
        SubmissionInFlightError: If another sale is still being recorded.
        PersistenceError: If the partition cannot be read or written.
        ValueError: When the unit price is negative or the date is malformed.
    """
    require_positive_quantity(command.quantity)
    unit_price = to_money(command.unit_price)
    require_nonnegative_money(unit_price)
    sale_date = format_date(command.sale_date)

    with _submission_guard(context, "sale"):
        with _store_transaction(context, Collection.SALES, Collection.PRODUCTS) as workbook:
            product = _require_active_product(workbook, command.product_id)
            if product.current_stock < command.quantity:
                log.warning(
                    "Rejected sale of %d units of '%s': only %d in stock",
                    command.quantity,
                    product.product_id,
                    product.current_stock,
                )
                raise InsufficientStockError(product.product_id, command.quantity, product.current_stock)

            sale = data_manager.insert_sale(
                workbook,
                data_manager.SaleRow(
                    sale_id="",
                    product_id=product.product_id,
                    quantity=command.quantity,
                    sale_price=unit_price,
                    sale_date=sale_date,
                ),
            )
            try:
                remaining = data_manager.adjust_stock(workbook, product.product_id, -command.quantity, floor=0)
            except ValueError as exc:
                raise InsufficientStockError(product.product_id, command.quantity, product.current_stock) from exc

    log.info(
        "Recorded sale '%s' for product '%s' (quantity=%d, unit_price=%s, remaining=%d)",
        sale.sale_id,
        sale.product_id,
        sale.quantity,
        sale.sale_price,
        remaining,
    )
    return sale


def submit_purchase(context: RuntimeContext, command: PurchaseCommand) -> data_manager.PurchaseRow:
    """Validate a purchase, record it, and increment stock in one commit.

    Purchases have no upper bound on quantity. The supplier reference is stored
    as given.

    Raises:
        InvalidQuantityError: If the quantity is not a positive whole number.
        UnknownProductError: If the product does not exist.
        SubmissionInFlightError: If another purchase is still being recorded.
        PersistenceError: If the partition cannot be read or written.
        ValueError: When the unit cost is negative or the date is malformed.
    """
    require_positive_quantity(command.quantity)
    unit_cost = to_money(command.unit_cost)
    require_nonnegative_money(unit_cost)
    purchase_date = format_date(command.purchase_date)

    with _submission_guard(context, "purchase"):
        with _store_transaction(context, Collection.PURCHASES, Collection.PRODUCTS) as workbook:
            product = _require_active_product(workbook, command.product_id)
            purchase = data_manager.insert_purchase(
                workbook,
                data_manager.PurchaseRow(
                    purchase_id="",
                    product_id=product.product_id,
                    supplier_id=command.supplier_id or None,
                    quantity=command.quantity,
                    cost_price=unit_cost,
                    purchase_date=purchase_date,
                ),
            )
            remaining = data_manager.adjust_stock(workbook, product.product_id, command.quantity)

    log.info(
        "Recorded purchase '%s' for product '%s' (quantity=%d, unit_cost=%s, stock=%d)",
        purchase.purchase_id,
        purchase.product_id,
        purchase.quantity,
        purchase.cost_price,
        remaining,
    )
    return purchase


# ---------------------------------------------------------------------------
# Product and supplier management
# ---------------------------------------------------------------------------


def _validate_product_fields(fields: ProductFields) -> ProductFields:
    if not fields.name or not fields.name.strip():
        log.error("Product validation failed: empty name")
        raise ValueError("Product name is required")
    cost_price = to_money(fields.cost_price)
    sale_price = to_money(fields.sale_price)
    require_nonnegative_money(cost_price)
    require_nonnegative_money(sale_price)
    require_nonnegative_count(fields.current_stock, "current_stock")
    require_nonnegative_count(fields.min_stock, "min_stock")
    return ProductFields(
        name=fields.name.strip(),
        description=fields.description,
        sku=fields.sku,
        category=fields.category,
        cost_price=cost_price,
        sale_price=sale_price,
        current_stock=fields.current_stock,
        min_stock=fields.min_stock,
        supplier_id=fields.supplier_id or None,
    )


def _product_columns(fields: ProductFields) -> Dict[str, Any]:
    return {
        "Name": fields.name,
        "Description": fields.description,
        "SKU": fields.sku,
        "Category": fields.category,
        "CostPrice": fields.cost_price,
        "SalePrice": fields.sale_price,
        "CurrentStock": fields.current_stock,
        "MinStock": fields.min_stock,
        "SupplierID": fields.supplier_id,
    }


def upsert_product(context: RuntimeContext, product_id: Optional[str], fields: ProductFields) -> data_manager.ProductRow:
    """Create a product (``product_id`` empty) or replace an existing one's attributes.

    On create the store assigns the identifier and timestamps, and the
    caller-supplied ``current_stock`` is kept as the opening stock.

    Raises:
        MissingReferenceError: If ``product_id`` names an unknown product.
        ValueError: When a name is missing or a price/stock value is negative.
    """
    fields = _validate_product_fields(fields)

    with _submission_guard(context, "product"):
        with _store_transaction(context, Collection.PRODUCTS) as workbook:
            if not product_id:
                stored = data_manager.insert_product(
                    workbook,
                    data_manager.ProductRow(
                        product_id="",
                        name=fields.name,
                        description=fields.description,
                        sku=fields.sku,
                        category=fields.category,
                        cost_price=fields.cost_price,
                        sale_price=fields.sale_price,
                        current_stock=fields.current_stock,
                        min_stock=fields.min_stock,
                        supplier_id=fields.supplier_id,
                    ),
                )
                action = "Created"
            else:
                existing = data_manager.read_product(workbook, product_id)
                if existing is None or not existing.is_active:
                    log.warning("Product update failed for id '%s'", product_id)
                    raise MissingReferenceError(f"Unknown product id: {product_id}")
                data_manager.update_product(workbook, product_id, field_values=_product_columns(fields))
                stored = data_manager.read_product(workbook, product_id)
                action = "Updated"

    log.info("%s product '%s' (%s)", action, stored.product_id, stored.name)
    return stored


def delete_product(context: RuntimeContext, product_id: str) -> DeleteOutcome:
    """Delete a product, archiving it instead when sales or purchases reference it.

    Returns:
        DeleteOutcome: ``REMOVED`` when the row was deleted, ``ARCHIVED`` when
            it was kept inactive for historical records.

    Raises:
        MissingReferenceError: If the product is unknown or already archived.
    """
    with _submission_guard(context, "product"):
        with _store_transaction(context, Collection.PRODUCTS) as workbook:
            existing = data_manager.read_product(workbook, product_id)
            if existing is None or not existing.is_active:
                log.warning("Product delete failed for id '%s'", product_id)
                raise MissingReferenceError(f"Unknown product id: {product_id}")

            referenced = any(
                sale.product_id == product_id for sale in data_manager.iter_sales(workbook)
            ) or any(
                purchase.product_id == product_id for purchase in data_manager.iter_purchases(workbook)
            )
            if referenced:
                data_manager.update_product(workbook, product_id, field_values={"IsActive": False})
                outcome = DeleteOutcome.ARCHIVED
            else:
                data_manager.delete_product(workbook, product_id)
                outcome = DeleteOutcome.REMOVED

    log.info("Deleted product '%s' (%s)", product_id, outcome.value)
    return outcome


def upsert_supplier(context: RuntimeContext, supplier_id: Optional[str], fields: SupplierFields) -> data_manager.SupplierRow:
    """Create a supplier (``supplier_id`` empty) or replace an existing one's attributes.

    Raises:
        MissingReferenceError: If ``supplier_id`` names an unknown supplier.
        ValueError: When the supplier name is missing.
    """
    if not fields.name or not fields.name.strip():
        log.error("Supplier validation failed: empty name")
        raise ValueError("Supplier name is required")

    with _submission_guard(context, "supplier"):
        with _store_transaction(context, Collection.SUPPLIERS) as workbook:
            if not supplier_id:
                stored = data_manager.insert_supplier(
                    workbook,
                    data_manager.SupplierRow(
                        supplier_id="",
                        name=fields.name.strip(),
                        contact=fields.contact,
                        address=fields.address,
                        payment_terms=fields.payment_terms,
                    ),
                )
                action = "Created"
            else:
                existing = data_manager.read_supplier(workbook, supplier_id)
                if existing is None or not existing.is_active:
                    log.warning("Supplier update failed for id '%s'", supplier_id)
                    raise MissingReferenceError(f"Unknown supplier id: {supplier_id}")
                data_manager.update_supplier(
                    workbook,
                    supplier_id,
                    field_values={
                        "Name": fields.name.strip(),
                        "Contact": fields.contact,
                        "Address": fields.address,
                        "PaymentTerms": fields.payment_terms,
                    },
                )
                stored = data_manager.read_supplier(workbook, supplier_id)
                action = "Updated"

    log.info("%s supplier '%s' (%s)", action, stored.supplier_id, stored.name)
    return stored


def delete_supplier(context: RuntimeContext, supplier_id: str) -> DeleteOutcome:
    """Delete a supplier, archiving it when products or purchases reference it.

    Raises:
        MissingReferenceError: If the supplier is unknown or already archived.
    """
    with _submission_guard(context, "supplier"):
        with _store_transaction(context, Collection.SUPPLIERS) as workbook:
            existing = data_manager.read_supplier(workbook, supplier_id)
            if existing is None or not existing.is_active:
                log.warning("Supplier delete failed for id '%s'", supplier_id)
                raise MissingReferenceError(f"Unknown supplier id: {supplier_id}")

            referenced = any(
                product.supplier_id == supplier_id for product in data_manager.iter_products(workbook)
            ) or any(
                purchase.supplier_id == supplier_id for purchase in data_manager.iter_purchases(workbook)
            )
            if referenced:
                data_manager.update_supplier(workbook, supplier_id, field_values={"IsActive": False})
                outcome = DeleteOutcome.ARCHIVED
            else:
                data_manager.delete_supplier(workbook, supplier_id)
                outcome = DeleteOutcome.REMOVED

    log.info("Deleted supplier '%s' (%s)", supplier_id, outcome.value)
    return outcome


# ---------------------------------------------------------------------------
# Validation helpers
# ---------------------------------------------------------------------------


def require_positive_quantity(quantity: int) -> None:
    """Validate that a transaction quantity is a strictly positive whole number.

    Raises:
        InvalidQuantityError: If ``quantity`` is not an ``int`` or is not
            greater than zero.
    """
    if isinstance(quantity, bool) or not isinstance(quantity, int):
        log.error("Quantity validation failed: %r is not a whole number", quantity)
        raise InvalidQuantityError(f"Quantity must be a whole number, got {quantity!r}")
    if quantity <= 0:
        log.error("Quantity validation failed: %s", quantity)
        raise InvalidQuantityError("Quantity must be greater than zero")


def require_nonnegative_count(value: int, name: str) -> None:
    """Validate that a stock-level field is a whole number >= 0."""
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        log.error("Validation failed for %s: %r", name, value)
        raise InvalidQuantityError(f"{name} must be a whole number >= 0, got {value!r}")


def require_nonnegative_money(amount: Decimal) -> None:
    """Validate that a monetary value is nonnegative.

    Raises:
        ValueError: If ``amount`` is less than zero.
    """
    if amount < Decimal("0"):
        log.error("Monetary value validation failed: %s", amount)
        raise ValueError("Amount must be zero or positive")


def to_money(value: Any) -> Decimal:
    """Coerce user input into a :class:`~decimal.Decimal` amount.

    Raises:
        ValueError: If ``value`` is not a finite number.
    """
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value))
    except InvalidOperation as exc:
        raise ValueError(f"Invalid monetary amount: {value!r}") from exc
    if not amount.is_finite():
        raise ValueError(f"Invalid monetary amount: {value!r}")
    return amount


def format_date(value: DateLike) -> str:
    """Normalise a transaction date into ``YYYY-MM-DD``.

    Raises:
        ValueError: If a string value is not an ISO calendar date.
    """
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    try:
        return date.fromisoformat(str(value).strip()).isoformat()
    except ValueError as exc:
        log.error("Date validation failed: %r", value)
        raise ValueError(f"Invalid date (expected YYYY-MM-DD): {value!r}") from exc
