"""Read-side aggregations over an inventory snapshot.

Every function here is a pure function of an :class:`InventorySnapshot` and
keeps no aggregate state. Callers recompute after each snapshot change pushed
by the subscription mechanism.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, List, Tuple

from .data_manager import ProductRow, PurchaseRow, SaleRow, SupplierRow


@dataclass(frozen=True)
class InventorySnapshot:
    """Most recently observed view of a user's four collections."""

    products: Tuple[ProductRow, ...] = ()
    suppliers: Tuple[SupplierRow, ...] = ()
    sales: Tuple[SaleRow, ...] = ()
    purchases: Tuple[PurchaseRow, ...] = ()

    def product_by_id(self) -> Dict[str, ProductRow]:
        return {product.product_id: product for product in self.products}


@dataclass(frozen=True)
class DashboardSummary:
    """KPIs shown on the dashboard."""

    total_products: int
    total_suppliers: int
    total_stock_value: Decimal
    low_stock_count: int
    total_sales_value: Decimal
    total_purchases_value: Decimal


def total_stock_value(snapshot: InventorySnapshot) -> Decimal:
    """Sum ``current_stock * cost_price`` across all products."""

    return sum(
        (Decimal(product.current_stock) * product.cost_price for product in snapshot.products),
        Decimal("0"),
    )


def low_stock_products(snapshot: InventorySnapshot) -> List[ProductRow]:
    """Return products at or below their minimum stock threshold, in snapshot order."""

    return [product for product in snapshot.products if product.current_stock <= product.min_stock]


def total_sales_value(snapshot: InventorySnapshot) -> Decimal:
    """Sum ``quantity * sale_price`` across all sales."""

    return sum(
        (Decimal(sale.quantity) * sale.sale_price for sale in snapshot.sales),
        Decimal("0"),
    )


def total_purchases_value(snapshot: InventorySnapshot) -> Decimal:
    """Sum ``quantity * cost_price`` across all purchases."""

    return sum(
        (Decimal(purchase.quantity) * purchase.cost_price for purchase in snapshot.purchases),
        Decimal("0"),
    )


def product_sales_summary(snapshot: InventorySnapshot, product_id: str) -> int:
    """Total units sold for ``product_id``; zero when it has no sales."""

    return sum(sale.quantity for sale in snapshot.sales if sale.product_id == product_id)


def dashboard_summary(snapshot: InventorySnapshot) -> DashboardSummary:
    """Bundle the dashboard KPIs computed from ``snapshot``."""

    return DashboardSummary(
        total_products=len(snapshot.products),
        total_suppliers=len(snapshot.suppliers),
        total_stock_value=total_stock_value(snapshot),
        low_stock_count=len(low_stock_products(snapshot)),
        total_sales_value=total_sales_value(snapshot),
        total_purchases_value=total_purchases_value(snapshot),
    )


__all__ = [
    "InventorySnapshot",
    "DashboardSummary",
    "total_stock_value",
    "low_stock_products",
    "total_sales_value",
    "total_purchases_value",
    "product_sales_summary",
    "dashboard_summary",
]
