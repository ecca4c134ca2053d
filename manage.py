#!/usr/bin/env python3
"""
StockLink management CLI.

Usage:
    python manage.py migrate                      Apply pending migrations
    python manage.py status                       Show migration status
    python manage.py add-branch B1 "Main Street"  Register a branch
    python manage.py branches                     List branches
    python manage.py summary B1                   Inventory roll-up for a branch
    python manage.py orders B1 --role seller      Transfer orders of a branch
    python manage.py history B1 --days 7          Ledger rows of a branch
"""

import argparse
import asyncio
import sys
from datetime import UTC, datetime, timedelta

from stocklink.application import StockLinkServices, create_services
from stocklink.config import configure_logging, get_settings
from stocklink.core.entities import Branch
from stocklink.core.exceptions import StockLinkError
from stocklink.infrastructure.storage.sqlite import get_migration_status, initialize_database


async def _with_services(func, args: argparse.Namespace) -> None:
    services = await create_services()
    try:
        await func(services, args)
    finally:
        await services.close()


async def _migrate(args: argparse.Namespace) -> None:
    results = await initialize_database()
    if not results:
        print("Database is up to date.")
    for r in results:
        state = "ok" if r.success else f"FAILED: {r.error}"
        print(f"  v{r.version} {r.name} ({r.execution_time_ms} ms) {state}")
    if any(not r.success for r in results):
        sys.exit(1)


async def _status(args: argparse.Namespace) -> None:
    status = await get_migration_status()
    print(f"Database: {get_settings().storage.db_path}")
    if not status["exists"]:
        print("  not created yet")
    else:
        print(f"  current version: {status['current_version']}")
    print(f"  pending migrations: {status['pending']}")


async def _add_branch(services: StockLinkServices, args: argparse.Namespace) -> None:
    branch = await services.branches.register(Branch(id=args.branch_id, name=args.name))
    print(f"Registered branch {branch.id} ({branch.name})")


async def _branches(services: StockLinkServices, args: argparse.Namespace) -> None:
    for branch in await services.branches.list_branches(active_only=args.active):
        flag = "" if branch.is_active else " [inactive]"
        print(f"{branch.id:<12} {branch.name}{flag}")


async def _summary(services: StockLinkServices, args: argparse.Namespace) -> None:
    counts = await services.inventory.summarize_branch(args.branch_id)
    print(
        f"Branch {args.branch_id}: {counts.brands} brands, {counts.models} models, "
        f"{counts.variants} variants, {counts.lots} lots, {counts.total_qty} units"
    )
    for row in await services.inventory.summarize_products(args.branch_id):
        print(f"  {row.brand} {row.model:<30} variants={row.variants} lots={row.lots} qty={row.total_qty}")


async def _orders(services: StockLinkServices, args: argparse.Namespace) -> None:
    orders = await services.transfers.list_orders_for_branch(args.branch_id, args.role)
    for order in orders:
        counterpart = order.seller_branch_name if args.role == "buyer" else order.buyer_branch_name
        print(
            f"{order.order_number or order.id:<12} {order.status.value:<10} "
            f"{counterpart:<20} {len(order.items)} lines  {order.created_at:%Y-%m-%d %H:%M}"
        )
    if not orders:
        print("No orders.")


async def _history(services: StockLinkServices, args: argparse.Namespace) -> None:
    since = datetime.now(UTC) - timedelta(days=args.days)
    rows = await services.ledger.list_movements(args.branch_id, since=since, limit=args.limit)
    if args.events:
        rows += await services.ledger.list_events(args.branch_id, limit=args.limit)
        rows.sort(key=lambda r: r.created_at, reverse=True)
    for row in rows:
        where = "/".join(p for p in (row.brand_id, row.model_id, row.variant_id, row.lot_code) if p)
        qty = f"{row.qty_change:+d}" if row.kind else ""
        print(
            f"{row.created_at:%Y-%m-%d %H:%M:%S}  {row.event_type.value:<20} {qty:>6}  "
            f"{where or row.order_id or ''}  {row.reason or ''}"
        )


def _run(coro) -> None:
    try:
        asyncio.run(coro)
    except StockLinkError as e:
        print(f"Error [{e.code}]: {e.message}", file=sys.stderr)
        sys.exit(1)


def main() -> None:
    parser = argparse.ArgumentParser(
        description="StockLink management CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    sub = parser.add_subparsers(dest="command", required=True)

    # migrate
    p_migrate = sub.add_parser("migrate", help="Apply pending migrations")
    p_migrate.set_defaults(func=lambda a: _run(_migrate(a)))

    # status
    p_status = sub.add_parser("status", help="Show migration status")
    p_status.set_defaults(func=lambda a: _run(_status(a)))

    # add-branch
    p_add = sub.add_parser("add-branch", help="Register a branch")
    p_add.add_argument("branch_id")
    p_add.add_argument("name")
    p_add.set_defaults(func=lambda a: _run(_with_services(_add_branch, a)))

    # branches
    p_branches = sub.add_parser("branches", help="List branches")
    p_branches.add_argument("--active", action="store_true", help="Only active branches")
    p_branches.set_defaults(func=lambda a: _run(_with_services(_branches, a)))

    # summary
    p_summary = sub.add_parser("summary", help="Inventory roll-up for a branch")
    p_summary.add_argument("branch_id")
    p_summary.set_defaults(func=lambda a: _run(_with_services(_summary, a)))

    # orders
    p_orders = sub.add_parser("orders", help="Transfer orders of a branch")
    p_orders.add_argument("branch_id")
    p_orders.add_argument("--role", choices=["buyer", "seller"], default="buyer")
    p_orders.set_defaults(func=lambda a: _run(_with_services(_orders, a)))

    # history
    p_history = sub.add_parser("history", help="Ledger rows of a branch")
    p_history.add_argument("branch_id")
    p_history.add_argument("--days", type=int, default=7, help="Look-back window (default: 7)")
    p_history.add_argument("--limit", type=int, default=100)
    p_history.add_argument("--events", action="store_true", help="Include order workflow events")
    p_history.set_defaults(func=lambda a: _run(_with_services(_history, a)))

    args = parser.parse_args()
    configure_logging()
    args.func(args)


if __name__ == "__main__":
    main()
