"""Tests for the pure aggregation functions over inventory snapshots."""

from __future__ import annotations

from decimal import Decimal

from icarstok import reports
from icarstok.data_manager import ProductRow, PurchaseRow, SaleRow, SupplierRow


def _product(product_id: str, *, stock: int, min_stock: int = 0, cost: str = "0") -> ProductRow:
    return ProductRow(
        product_id=product_id,
        name=product_id.upper(),
        description="",
        sku="",
        category="",
        cost_price=Decimal(cost),
        sale_price=Decimal("0"),
        current_stock=stock,
        min_stock=min_stock,
        supplier_id=None,
    )


def _sale(product_id: str, quantity: int, price: str) -> SaleRow:
    return SaleRow(sale_id=f"s-{product_id}-{quantity}", product_id=product_id, quantity=quantity, sale_price=Decimal(price), sale_date="2025-01-01")


def _purchase(product_id: str, quantity: int, cost: str) -> PurchaseRow:
    return PurchaseRow(
        purchase_id=f"b-{product_id}-{quantity}",
        product_id=product_id,
        supplier_id="s1",
        quantity=quantity,
        cost_price=Decimal(cost),
        purchase_date="2025-01-01",
    )


SNAPSHOT = reports.InventorySnapshot(
    products=(
        _product("p1", stock=6, min_stock=2, cost="5"),
        _product("p2", stock=0, min_stock=5, cost="1.25"),
        _product("p3", stock=3, min_stock=3, cost="2.10"),
    ),
    suppliers=(SupplierRow(supplier_id="s1", name="Acme", contact="", address="", payment_terms=""),),
    sales=(
        _sale("p1", 4, "9.90"),
        _sale("p1", 1, "10.00"),
        _sale("p3", 2, "4.50"),
    ),
    purchases=(_purchase("p2", 10, "1.20"),),
)


def test_total_stock_value_sums_stock_times_cost():
    assert reports.total_stock_value(SNAPSHOT) == Decimal("36.30")


def test_total_stock_value_of_empty_snapshot_is_zero():
    assert reports.total_stock_value(reports.InventorySnapshot()) == Decimal("0")


def test_low_stock_includes_products_at_threshold():
    """current_stock <= min_stock counts as low, in snapshot order."""

    assert [product.product_id for product in reports.low_stock_products(SNAPSHOT)] == ["p2", "p3"]


def test_total_sales_value_sums_quantity_times_price():
    assert reports.total_sales_value(SNAPSHOT) == Decimal("58.60")


def test_total_purchases_value():
    assert reports.total_purchases_value(SNAPSHOT) == Decimal("12.00")


def test_product_sales_summary_counts_units_per_product():
    assert reports.product_sales_summary(SNAPSHOT, "p1") == 5
    assert reports.product_sales_summary(SNAPSHOT, "p2") == 0


def test_dashboard_summary_bundles_kpis():
    summary = reports.dashboard_summary(SNAPSHOT)

    assert summary == reports.DashboardSummary(
        total_products=3,
        total_suppliers=1,
        total_stock_value=Decimal("36.30"),
        low_stock_count=2,
        total_sales_value=Decimal("58.60"),
        total_purchases_value=Decimal("12.00"),
    )


def test_aggregates_do_not_depend_on_call_history():
    """Recomputing over the same snapshot yields identical results."""

    first = reports.dashboard_summary(SNAPSHOT)
    reports.low_stock_products(SNAPSHOT)
    assert reports.dashboard_summary(SNAPSHOT) == first


def test_product_by_id_indexes_products():
    assert set(SNAPSHOT.product_by_id()) == {"p1", "p2", "p3"}
