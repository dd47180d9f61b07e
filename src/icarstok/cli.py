"""Command-line entry points for IcarStok.

All orchestration in this module is limited to argparse wiring, signing the
user in, and translating command-line arguments into the command objects
consumed by the business layer. Keeping the CLI thin ensures the same parser
configuration can be reused by tests, scripts, or any alternative front-end
that wants to expose the package capabilities.
"""

from __future__ import annotations

import argparse
import getpass
from dataclasses import dataclass
from datetime import date
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Mapping, MutableMapping, Optional, Sequence

from . import core_logic, insights, log, reports
from .auth import IdentityProvider, Session
from .constants import InsightKind
from .data_manager import ConfigSettings, ProductRow, PurchaseRow, SaleRow, SupplierRow
from .exceptions import (
    AIResponseError,
    AuthError,
    BusinessRuleViolation,
    ConfigError,
    PersistenceError,
)


@dataclass
class CliEnvironment:
    """Collaborators resolved before a sub-command runs."""

    settings: ConfigSettings
    identity: IdentityProvider
    session: Optional[Session] = None
    context: Optional[core_logic.RuntimeContext] = None


@dataclass(frozen=True)
class CommandSpec:
    """Describe how a CLI sub-command is configured and executed."""

    name: str
    help_text: str
    register: Callable[[argparse._SubParsersAction[argparse.ArgumentParser]], argparse.ArgumentParser]
    execute: Callable[[CliEnvironment, argparse.Namespace], int]
    requires_session: bool = True


def build_parser() -> argparse.ArgumentParser:
    """Construct the top-level CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="icarstok",
        description="Command-line tools for the IcarStok inventory ledger.",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Optional path to config.ini (defaults to the nearest config.ini).",
    )
    parser.add_argument("--email", default=None, help="Account email address.")
    parser.add_argument(
        "--password",
        default=None,
        help="Account password (prompted for when omitted).",
    )
    return parser


def configure_subcommands(
    parser: argparse.ArgumentParser,
) -> Mapping[str, CommandSpec]:
    """Wire all CLI sub-commands onto the supplied parser."""
    subparsers = parser.add_subparsers(dest="command", required=True, title="commands")
    write_specs = register_write_commands(subparsers)
    read_specs = register_read_commands(subparsers)
    return build_command_table([*write_specs.values(), *read_specs.values()])


def register_write_commands(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> Dict[str, CommandSpec]:
    """Declare mutating CLI commands such as sales and purchases."""
    specs = {
        "register": register_register_command(subparsers),
        "add-product": register_add_product_command(subparsers),
        "update-product": register_update_product_command(subparsers),
        "delete-product": register_delete_product_command(subparsers),
        "add-supplier": register_add_supplier_command(subparsers),
        "update-supplier": register_update_supplier_command(subparsers),
        "delete-supplier": register_delete_supplier_command(subparsers),
        "sale": register_sale_command(subparsers),
        "purchase": register_purchase_command(subparsers),
    }
    for spec in specs.values():
        spec.register(subparsers)
    return specs


def register_read_commands(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> Dict[str, CommandSpec]:
    """Declare read-only CLI commands such as listings and reports."""
    specs = {
        "products": register_products_command(subparsers),
        "suppliers": register_suppliers_command(subparsers),
        "sales": register_sales_command(subparsers),
        "purchases": register_purchases_command(subparsers),
        "dashboard": register_dashboard_command(subparsers),
        "insight": register_insight_command(subparsers),
    }
    for spec in specs.values():
        spec.register(subparsers)
    return specs


def _add_product_arguments(parser: argparse.ArgumentParser, *, required: bool) -> None:
    parser.add_argument("--name", required=required)
    parser.add_argument("--description", default=None)
    parser.add_argument("--sku", default=None)
    parser.add_argument("--category", default=None)
    parser.add_argument("--cost-price", default=None)
    parser.add_argument("--sale-price", default=None)
    parser.add_argument("--stock", type=int, default=None, help="Current stock level.")
    parser.add_argument("--min-stock", type=int, default=None, help="Low-stock threshold.")
    parser.add_argument("--supplier-id", default=None)


def _add_supplier_arguments(parser: argparse.ArgumentParser, *, required: bool) -> None:
    parser.add_argument("--name", required=required)
    parser.add_argument("--contact", default=None)
    parser.add_argument("--address", default=None)
    parser.add_argument("--payment-terms", default=None)


def register_register_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``register``."""
    name = "register"
    help_text = "Create an account with --email/--password and initialize its data."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(
        name=name,
        help_text=help_text,
        register=registrar,
        execute=run_register,
        requires_session=False,
    )


def register_add_product_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``add-product``."""
    name = "add-product"
    help_text = "Create a product."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        _add_product_arguments(parser, required=True)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_add_product)


def register_update_product_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``update-product``."""
    name = "update-product"
    help_text = "Edit a product; omitted options keep their current value."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--product-id", required=True)
        _add_product_arguments(parser, required=False)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_update_product)


def register_delete_product_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``delete-product``."""
    name = "delete-product"
    help_text = "Delete a product (archived when sales or purchases reference it)."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--product-id", required=True)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_delete_product)


def register_add_supplier_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``add-supplier``."""
    name = "add-supplier"
    help_text = "Create a supplier."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        _add_supplier_arguments(parser, required=True)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_add_supplier)


def register_update_supplier_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``update-supplier``."""
    name = "update-supplier"
    help_text = "Edit a supplier; omitted options keep their current value."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--supplier-id", required=True)
        _add_supplier_arguments(parser, required=False)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_update_supplier)


def register_delete_supplier_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``delete-supplier``."""
    name = "delete-supplier"
    help_text = "Delete a supplier (archived when products or purchases reference it)."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--supplier-id", required=True)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_delete_supplier)


def register_sale_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``sale``."""
    name = "sale"
    help_text = "Record a sale and decrement stock."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--product-id", required=True)
        parser.add_argument("--quantity", type=int, required=True)
        parser.add_argument("--unit-price", required=True)
        parser.add_argument("--date", default=None, help="Sale date (YYYY-MM-DD, defaults to today).")
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_sale)


def register_purchase_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``purchase``."""
    name = "purchase"
    help_text = "Record a purchase and increment stock."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--product-id", required=True)
        parser.add_argument("--supplier-id", default=None)
        parser.add_argument("--quantity", type=int, required=True)
        parser.add_argument("--unit-cost", required=True)
        parser.add_argument("--date", default=None, help="Purchase date (YYYY-MM-DD, defaults to today).")
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_purchase)


def register_products_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``products``."""
    name = "products"
    help_text = "List products with their stock levels."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--all", dest="include_inactive", action="store_true", help="Include archived products.")
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_products_report)


def register_suppliers_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``suppliers``."""
    name = "suppliers"
    help_text = "List suppliers."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument("--all", dest="include_inactive", action="store_true", help="Include archived suppliers.")
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_suppliers_report)


def register_sales_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``sales``."""
    name = "sales"
    help_text = "List recorded sales."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_sales_report)


def register_purchases_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``purchases``."""
    name = "purchases"
    help_text = "List recorded purchases."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_purchases_report)


def register_dashboard_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``dashboard``."""
    name = "dashboard"
    help_text = "Display stock value, sales value, and low-stock products."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_dashboard_report)


def register_insight_command(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> CommandSpec:
    """Register the parser and executor for ``insight``."""
    name = "insight"
    help_text = "Request an AI-generated insight from the stored data."

    def registrar(action: argparse._SubParsersAction[argparse.ArgumentParser]) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        parser.add_argument(
            "--kind",
            choices=[member.value for member in InsightKind],
            required=True,
        )
        parser.add_argument(
            "--with-forecast",
            action="store_true",
            help="For replenishment, request a demand forecast first and include it.",
        )
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=run_insight)


def dispatch_command(
    environment: CliEnvironment,
    args: argparse.Namespace,
    command_table: Mapping[str, CommandSpec],
) -> int:
    """Dispatch the parsed arguments to the configured executor."""
    if not hasattr(args, "command") or args.command is None:
        raise KeyError("No command specified")
    spec = command_table.get(args.command)
    if spec is None:
        raise KeyError(f"Unknown command: {args.command}")
    return spec.execute(environment, args)


def build_command_table(
    specs: Iterable[CommandSpec],
) -> MutableMapping[str, CommandSpec]:
    """Build an index of command specifications keyed by command name."""
    table: Dict[str, CommandSpec] = {}
    for spec in specs:
        if spec.name in table:
            raise ValueError(f"Duplicate command name: {spec.name}")
        table[spec.name] = spec
    return table


# ---------------------------------------------------------------------------
# Argument translation
# ---------------------------------------------------------------------------


def _pick(value, fallback):
    return fallback if value is None else value


def translate_product_fields(
    args: argparse.Namespace,
    existing: Optional[ProductRow] = None,
) -> core_logic.ProductFields:
    """Translate CLI args into product fields, overlaying ``existing`` when given."""
    if existing is None:
        return core_logic.ProductFields(
            name=args.name,
            description=args.description or "",
            sku=args.sku or "",
            category=args.category or "",
            cost_price=core_logic.to_money(_pick(args.cost_price, "0")),
            sale_price=core_logic.to_money(_pick(args.sale_price, "0")),
            current_stock=_pick(args.stock, 0),
            min_stock=_pick(args.min_stock, 0),
            supplier_id=args.supplier_id or None,
        )
    return core_logic.ProductFields(
        name=_pick(args.name, existing.name),
        description=_pick(args.description, existing.description),
        sku=_pick(args.sku, existing.sku),
        category=_pick(args.category, existing.category),
        cost_price=core_logic.to_money(_pick(args.cost_price, existing.cost_price)),
        sale_price=core_logic.to_money(_pick(args.sale_price, existing.sale_price)),
        current_stock=_pick(args.stock, existing.current_stock),
        min_stock=_pick(args.min_stock, existing.min_stock),
        supplier_id=_pick(args.supplier_id, existing.supplier_id) or None,
    )


def translate_supplier_fields(
    args: argparse.Namespace,
    existing: Optional[SupplierRow] = None,
) -> core_logic.SupplierFields:
    """Translate CLI args into supplier fields, overlaying ``existing`` when given."""
    if existing is None:
        return core_logic.SupplierFields(
            name=args.name,
            contact=args.contact or "",
            address=args.address or "",
            payment_terms=args.payment_terms or "",
        )
    return core_logic.SupplierFields(
        name=_pick(args.name, existing.name),
        contact=_pick(args.contact, existing.contact),
        address=_pick(args.address, existing.address),
        payment_terms=_pick(args.payment_terms, existing.payment_terms),
    )


def translate_sale(args: argparse.Namespace) -> core_logic.SaleCommand:
    """Translate CLI args into a sale command object."""
    return core_logic.SaleCommand(
        product_id=args.product_id,
        quantity=args.quantity,
        unit_price=core_logic.to_money(args.unit_price),
        sale_date=args.date or date.today(),
    )


def translate_purchase(args: argparse.Namespace) -> core_logic.PurchaseCommand:
    """Translate CLI args into a purchase command object."""
    return core_logic.PurchaseCommand(
        product_id=args.product_id,
        supplier_id=args.supplier_id or None,
        quantity=args.quantity,
        unit_cost=core_logic.to_money(args.unit_cost),
        purchase_date=args.date or date.today(),
    )


# ---------------------------------------------------------------------------
# Output formatting
# ---------------------------------------------------------------------------


def format_product(product: ProductRow) -> str:
    status = "" if product.is_active else " [archived]"
    return (
        f"{product.product_id}\t{product.name}\tstock={product.current_stock}"
        f"\tmin={product.min_stock}\tcost={product.cost_price}\tprice={product.sale_price}"
        f"\tsupplier={product.supplier_id or '-'}{status}"
    )


def format_supplier(supplier: SupplierRow) -> str:
    status = "" if supplier.is_active else " [archived]"
    return f"{supplier.supplier_id}\t{supplier.name}\t{supplier.contact}\t{supplier.payment_terms}{status}"


def format_sale(sale: SaleRow) -> str:
    return f"{sale.sale_id}\t{sale.sale_date}\t{sale.product_id}\tqty={sale.quantity}\tprice={sale.sale_price}"


def format_purchase(purchase: PurchaseRow) -> str:
    return (
        f"{purchase.purchase_id}\t{purchase.purchase_date}\t{purchase.product_id}"
        f"\tsupplier={purchase.supplier_id or '-'}\tqty={purchase.quantity}\tcost={purchase.cost_price}"
    )


def format_insight(record: insights.InsightRecord) -> str:
    if isinstance(record, insights.DemandForecast):
        return f"{record.product_id}\t{record.month}\tpredicted={record.predicted_quantity}"
    if isinstance(record, insights.ReplenishmentSuggestion):
        return f"{record.product_id}\torder={record.quantity_to_order}\tsupplier={record.supplier_id or '-'}"
    if isinstance(record, insights.Anomaly):
        return f"{record.date or '-'}\t{record.product_id or '-'}\t{record.type}: {record.description}"
    return f"{record.product_id}\t{record.performance}\t{record.recommendation}"


def _print_lines(lines: List[str], empty_message: str) -> None:
    if not lines:
        print(empty_message)
        return
    for line in lines:
        print(line)


# ---------------------------------------------------------------------------
# Executors
# ---------------------------------------------------------------------------


def _require_context(environment: CliEnvironment) -> core_logic.RuntimeContext:
    if environment.context is None:
        raise RuntimeError("Command requires a signed-in session")
    return environment.context


def run_register(environment: CliEnvironment, args: argparse.Namespace) -> int:
    """Create the account and its empty partition."""
    session = environment.identity.register(args.email or "", resolve_password(args))
    core_logic.load_runtime_context(environment.settings, session.user_id)
    print(f"Registered {session.email} (user id {session.user_id})")
    return 0


def run_add_product(environment: CliEnvironment, args: argparse.Namespace) -> int:
    """Execute the create-product workflow in the BLL."""
    product = core_logic.upsert_product(_require_context(environment), None, translate_product_fields(args))
    print(f"Created product {product.product_id}")
    return 0


def run_update_product(environment: CliEnvironment, args: argparse.Namespace) -> int:
    """Execute the edit-product workflow in the BLL."""
    context = _require_context(environment)
    existing = core_logic.get_product(context, args.product_id)
    product = core_logic.upsert_product(context, args.product_id, translate_product_fields(args, existing))
    print(f"Updated product {product.product_id}")
    return 0


def run_delete_product(environment: CliEnvironment, args: argparse.Namespace) -> int:
    """Execute the delete-product workflow in the BLL."""
    outcome = core_logic.delete_product(_require_context(environment), args.product_id)
    print(f"Product {args.product_id} {outcome.value}")
    return 0


def run_add_supplier(environment: CliEnvironment, args: argparse.Namespace) -> int:
    """Execute the create-supplier workflow in the BLL."""
    supplier = core_logic.upsert_supplier(_require_context(environment), None, translate_supplier_fields(args))
    print(f"Created supplier {supplier.supplier_id}")
    return 0


def run_update_supplier(environment: CliEnvironment, args: argparse.Namespace) -> int:
    """Execute the edit-supplier workflow in the BLL."""
    context = _require_context(environment)
    existing = core_logic.get_supplier(context, args.supplier_id)
    supplier = core_logic.upsert_supplier(context, args.supplier_id, translate_supplier_fields(args, existing))
    print(f"Updated supplier {supplier.supplier_id}")
    return 0


def run_delete_supplier(environment: CliEnvironment, args: argparse.Namespace) -> int:
    """Execute the delete-supplier workflow in the BLL."""
    outcome = core_logic.delete_supplier(_require_context(environment), args.supplier_id)
    print(f"Supplier {args.supplier_id} {outcome.value}")
    return 0


def run_sale(environment: CliEnvironment, args: argparse.Namespace) -> int:
    """Execute the sale workflow via the BLL."""
    sale = core_logic.submit_sale(_require_context(environment), translate_sale(args))
    print(f"Recorded sale {sale.sale_id}")
    return 0


def run_purchase(environment: CliEnvironment, args: argparse.Namespace) -> int:
    """Execute the purchase workflow via the BLL."""
    purchase = core_logic.submit_purchase(_require_context(environment), translate_purchase(args))
    print(f"Recorded purchase {purchase.purchase_id}")
    return 0


def run_products_report(environment: CliEnvironment, args: argparse.Namespace) -> int:
    products = core_logic.list_products(_require_context(environment), include_inactive=args.include_inactive)
    _print_lines([format_product(product) for product in products], "No products.")
    return 0


def run_suppliers_report(environment: CliEnvironment, args: argparse.Namespace) -> int:
    suppliers = core_logic.list_suppliers(_require_context(environment), include_inactive=args.include_inactive)
    _print_lines([format_supplier(supplier) for supplier in suppliers], "No suppliers.")
    return 0


def run_sales_report(environment: CliEnvironment, args: argparse.Namespace) -> int:
    sales = core_logic.list_sales(_require_context(environment))
    _print_lines([format_sale(sale) for sale in sales], "No sales.")
    return 0


def run_purchases_report(environment: CliEnvironment, args: argparse.Namespace) -> int:
    purchases = core_logic.list_purchases(_require_context(environment))
    _print_lines([format_purchase(purchase) for purchase in purchases], "No purchases.")
    return 0


def run_dashboard_report(environment: CliEnvironment, args: argparse.Namespace) -> int:
    """Print the dashboard KPIs followed by the low-stock products."""
    snapshot = core_logic.take_snapshot(_require_context(environment))
    summary = reports.dashboard_summary(snapshot)
    print(f"Products: {summary.total_products}")
    print(f"Suppliers: {summary.total_suppliers}")
    print(f"Stock value: {summary.total_stock_value}")
    print(f"Sales value: {summary.total_sales_value}")
    print(f"Purchases value: {summary.total_purchases_value}")
    print(f"Low stock: {summary.low_stock_count}")
    for product in reports.low_stock_products(snapshot):
        print(f"  {product.product_id}\t{product.name}\tstock={product.current_stock}\tmin={product.min_stock}")
    return 0


def run_insight(environment: CliEnvironment, args: argparse.Namespace) -> int:
    """Request one AI insight and print the parsed records."""
    kind = InsightKind(args.kind)
    snapshot = core_logic.take_snapshot(_require_context(environment))
    with insights.InsightGenerator.from_settings(environment.settings) as generator:
        forecast = None
        if kind is InsightKind.REPLENISHMENT and args.with_forecast:
            forecast = insights.request_insight(generator, InsightKind.DEMAND_FORECAST, snapshot)
        records = insights.request_insight(generator, kind, snapshot, demand_forecast=forecast)
    for record in records:
        print(format_insight(record))
    return 0


# ---------------------------------------------------------------------------
# Session handling and entry point
# ---------------------------------------------------------------------------


def resolve_password(args: argparse.Namespace) -> str:
    """Return ``--password`` or prompt for it on the terminal."""
    if args.password is not None:
        return args.password
    return getpass.getpass("Password: ")


def prepare_environment(
    args: argparse.Namespace,
    spec: CommandSpec,
) -> CliEnvironment:
    """Load settings and, for session commands, sign in and open the partition."""
    settings = core_logic.load_settings(getattr(args, "config", None))
    environment = CliEnvironment(settings=settings, identity=IdentityProvider.from_settings(settings))
    if not spec.requires_session:
        return environment

    environment.session = environment.identity.sign_in(args.email or "", resolve_password(args))
    environment.context = core_logic.load_runtime_context(settings, environment.session.user_id)
    core_logic.ensure_schema_version(environment.context)
    return environment


def handle_cli_error(error: Exception) -> int:
    """Convert raised exceptions into user-friendly exit codes."""
    log.error("%s", error)
    if isinstance(error, (BusinessRuleViolation, ValueError)):
        return 2
    if isinstance(error, FileNotFoundError):
        return 3
    if isinstance(error, ConfigError):
        return 4
    if isinstance(error, AuthError):
        return 5
    if isinstance(error, PersistenceError):
        return 6
    if isinstance(error, AIResponseError):
        return 7
    return 1


def main(argv: Sequence[str] | None = None) -> int:
    """CLI entry point that orchestrates parsing, sign-in, and execution."""
    parser = build_parser()
    command_table = configure_subcommands(parser)
    args = parser.parse_args(argv)
    environment: Optional[CliEnvironment] = None
    try:
        environment = prepare_environment(args, command_table[args.command])
        return dispatch_command(environment, args, command_table)
    except Exception as error:  # pragma: no cover - centralised error handler tested separately
        print(f"[ERROR] {error}")
        return handle_cli_error(error)
    finally:
        if environment is not None:
            environment.identity.sign_out()
