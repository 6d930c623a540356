"""CLI entry point for Kasa.

Commands:
    kasa status                         Wallet balance, card debts, sync freshness
    kasa run                            Run the recurring pass and report it
    kasa expense add|edit|delete|list   Cash/bank and card spends
    kasa pay CARD AMOUNT                Pay down a card from the wallet
    kasa card add|edit|delete|show|list Credit cards and billing periods
    kasa plan add|edit|pause|resume|delete|list   Recurring payments
    kasa income add|delete|list         Recurring income
    kasa wallet add|delete|list         Manual wallet entries
    kasa asset buy|sell|sell-all|edit|delete|portfolio   Gold, FX and crypto
    kasa backup export|import           JSON backups
    kasa sync [PATH]                    Show or set the shared sync file
    kasa watch                          Reload when the sync file changes
    kasa push                           Full Google Sheets rebuild
    kasa export {csv,tsv}               Spreadsheet export of expenses
"""

from __future__ import annotations

import argparse
import json
import logging
import os
import sys
import time
from contextlib import contextmanager
from datetime import date
from functools import partial
from pathlib import Path

from kasa.dates import local_date_iso
from kasa.ledger.errors import LedgerError
from kasa.money import format_money, to_minor_units
from kasa.storage.document import DocumentError
from kasa.sync.transport import SyncError

logger = logging.getLogger(__name__)


def _setup_logging() -> None:
    """Configure logging based on KASA_LOG_LEVEL env var."""
    level = os.environ.get("KASA_LOG_LEVEL", "INFO").upper()
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def _get_config():
    """Load application config from config directory."""
    from kasa.config import Config

    config_dir = os.environ.get("KASA_CONFIG_DIR", "config")
    return Config(config_dir=config_dir)


def _get_repo():
    """Create a Repository connected to the configured database."""
    from kasa.storage.repository import Repository

    db_path = os.environ.get("KASA_DB_PATH", "kasa.db")
    return Repository(db_path=db_path)


def _get_migrations_dir() -> Path:
    from kasa.storage.repository import MIGRATIONS_DIR

    return Path(os.environ.get("KASA_MIGRATIONS_DIR", str(MIGRATIONS_DIR)))


def _get_sync():
    """SyncFile from KASA_SYNC_FILE, or None to use the path cached in the store."""
    from kasa.sync.transport import SyncFile

    path = os.environ.get("KASA_SYNC_FILE")
    return SyncFile(path) if path else None


def _get_spreadsheet():
    """Open the Google Sheets spreadsheet if configured.

    Returns a gspread.Spreadsheet instance, or None if not configured.
    """
    spreadsheet_id = os.environ.get("KASA_SPREADSHEET_ID")
    credentials_path = os.environ.get("KASA_CREDENTIALS")

    if not spreadsheet_id or not credentials_path:
        return None

    try:
        import gspread
        from google.oauth2.service_account import Credentials

        scopes = [
            "https://www.googleapis.com/auth/spreadsheets",
            "https://www.googleapis.com/auth/drive",
        ]
        creds = Credentials.from_service_account_file(credentials_path, scopes=scopes)
        gc = gspread.authorize(creds)
        return gc.open_by_key(spreadsheet_id)
    except Exception as e:
        logger.warning("Sheets not available: %s", e)
        return None


def _get_sheets():
    """Create a SheetsPush if credentials and spreadsheet ID are configured."""
    spreadsheet = _get_spreadsheet()
    if spreadsheet is None:
        return None

    from kasa.export.sheets import SheetsPush

    return SheetsPush(spreadsheet)


def _make_session():
    from kasa.session import LedgerSession

    repo = _get_repo()
    repo.apply_migrations(_get_migrations_dir())
    return LedgerSession(repo, config=_get_config(), sync=_get_sync())


@contextmanager
def _open_session():
    """Open a session (startup pass included) and close the store afterwards."""
    session = _make_session()
    try:
        session.open()
        yield session
    finally:
        session.repo.close()


# ── Argument helpers ─────────────────────────────────────


def _parse_id(value: str) -> int | str:
    """Record ids are ints for records created here, strings from older files."""
    return int(value) if value.lstrip("-").isdigit() else value


def _parse_amount(value: str) -> int:
    text = value.strip()
    if "," in text and "." not in text:
        text = text.replace(",", ".")
    try:
        float(text)
    except ValueError:
        raise argparse.ArgumentTypeError(f"not an amount: {value!r}")
    return to_minor_units(text)


def _parse_quantity(value: str) -> float:
    try:
        return float(value.replace(",", "."))
    except ValueError:
        raise argparse.ArgumentTypeError(f"not a quantity: {value!r}")


def _resolve_card(state, ref: str):
    """Find a card by id or by name."""
    from kasa.ledger.cards import get_card

    card = state.card_by_name(ref)
    if card is not None:
        return card
    return get_card(state, _parse_id(ref))


def _today_iso(args: argparse.Namespace) -> str:
    return getattr(args, "date", None) or local_date_iso()


# ── Commands ─────────────────────────────────────────────


def cmd_status(args: argparse.Namespace) -> int:
    """Display wallet, card and sync status."""
    from kasa.ledger.cards import card_debt, remaining_limit
    from kasa.ledger.wallet import balance
    from kasa.storage.document import sync_status

    with _open_session() as session:
        state = session.state
        fmt = partial(format_money, locale=session.locale)

        print("Kasa Status")
        print("=" * 40)
        print(f"  Wallet balance:      {fmt(balance(state))}")
        print(f"  Expenses:            {len(state.expenses):,}")
        print(f"  Recurring plans:     {len(state.recurring_plans):,}")
        print(f"  Recurring income:    {len(state.recurring_income):,}")
        print(f"  Asset trades:        {len(state.assets):,}")
        if state.cards:
            print("\n  Cards:")
            for card in state.cards:
                print(
                    f"    {card.name:<20} debt {fmt(card_debt(card, state.expenses)):>12}"
                    f"   remaining {fmt(remaining_limit(card, state.expenses)):>12}"
                )
        sync_path = session.sync.path if session.sync else "not configured"
        print(f"\n  Sync file:           {sync_path}")
        print(f"  Last sync:           {state.last_sync or '-'} ({sync_status(state.last_sync)})")
    return 0


def cmd_run(args: argparse.Namespace) -> int:
    """Run the startup pass and report what the recurring engine did."""
    session = _make_session()
    try:
        result = session.open()
    finally:
        session.repo.close()

    for exp in result.materialized:
        print(f"Charged {exp.merchant} {format_money(exp.amount, session.locale)} on {exp.display_date}")
    for skip in result.skipped:
        print(f"Skipped plan {skip.plan_id} for {skip.month}: {skip.reason}")
    for entry in result.income:
        print(f"Credited {entry.title} {format_money(entry.amount, session.locale)}")
    if not result.changed:
        print("Nothing due.")
    return 0


def cmd_expense(args: argparse.Namespace) -> int:
    """Expense commands."""
    from kasa.ledger import actions

    sub = args.expense_command
    if sub is None:
        print("Usage: kasa expense {add,edit,delete,list}")
        return 1

    with _open_session() as session:
        state = session.state
        if sub == "list":
            items = sorted(state.expenses, key=lambda e: e.iso_date, reverse=True)
            for exp in items[: args.limit]:
                kind = "card" if exp.is_credit else "cash"
                print(
                    f"{exp.id}  {exp.display_date}  {exp.merchant:<30} "
                    f"{format_money(exp.amount, session.locale):>12}  {exp.method} ({kind})  {exp.category}"
                )
            return 0

        if sub == "add":
            category = args.category or (state.categories[0] if state.categories else "")
            card = state.card_by_name(args.method)
            if card is not None:
                created = actions.add_credit_expense(
                    state, card.id, args.merchant, args.amount, _today_iso(args),
                    category, installments=args.installments, description=args.description,
                )
                print(f"Added {len(created)} card expense(s) on {card.name}.")
            else:
                if args.installments != 1:
                    print("Error: Installments are only available for card spends.")
                    return 1
                exp = actions.add_expense(
                    state, args.merchant, args.amount, args.method, category,
                    _today_iso(args), description=args.description,
                )
                print(f"Added expense {exp.id}.")
        elif sub == "edit":
            exp = actions.edit_expense(
                state, _parse_id(args.id), merchant=args.merchant, amount=args.amount,
                iso_date=args.date, category=args.category, description=args.description,
            )
            print(f"Updated expense {exp.id}.")
        elif sub == "delete":
            exp = actions.delete_expense(state, _parse_id(args.id))
            print(f"Deleted expense {exp.id} ({exp.merchant}).")
        session.commit()
    return 0


def cmd_pay(args: argparse.Namespace) -> int:
    """Pay down a card's debt from the wallet."""
    from kasa.ledger.actions import pay_card_debt

    with _open_session() as session:
        card = _resolve_card(session.state, args.card)
        pay_card_debt(
            session.state, card.id, args.amount, _today_iso(args),
            category=session.payment_category,
        )
        session.commit()
        print(f"Paid {format_money(args.amount, session.locale)} towards {card.name}.")
    return 0


def cmd_card(args: argparse.Namespace) -> int:
    """Credit card commands."""
    from kasa.dates import format_display_date, parse_any_date
    from kasa.ledger import cards

    sub = args.card_command
    if sub is None:
        print("Usage: kasa card {add,edit,delete,show,list}")
        return 1

    with _open_session() as session:
        state = session.state
        fmt = partial(format_money, locale=session.locale)
        if sub == "list":
            for card in state.cards:
                print(f"{card.id}  {card.name:<20} cutoff {card.cutoff:>2}  limit {fmt(card.limit)}")
            return 0
        if sub == "show":
            card = _resolve_card(state, args.card)
            reference = parse_any_date(args.date) if args.date else date.today()
            window = cards.billing_window(card, reference, args.offset)
            start, end = local_date_iso(window.start), local_date_iso(window.end)
            print(f"{card.name} ({card.brand} {card.last4})".rstrip())
            print(f"  Period:          {format_display_date(start)} - {format_display_date(end)}")
            print(f"  Period spend:    {fmt(cards.period_debt(card, window, state.expenses))}")
            print(f"  Statement debt:  {fmt(cards.statement_debt(card, window, state.expenses))}")
            print(f"  Total debt:      {fmt(cards.card_debt(card, state.expenses))}")
            print(f"  Remaining limit: {fmt(cards.remaining_limit(card, state.expenses))}")
            due = cards.due_date(window.end, session.holidays)
            print(f"  Payment due:     {format_display_date(local_date_iso(due))}")
            for exp in cards.window_expenses(card, window, state.expenses):
                sign = "-" if exp.is_payment else " "
                print(f"    {exp.display_date}  {exp.merchant:<30} {sign}{fmt(exp.amount)}")
            return 0

        if sub == "add":
            card = cards.add_card(
                state, args.name, args.cutoff, args.limit, brand=args.brand, last4=args.last4,
            )
            print(f"Added card {card.name} ({card.id}).")
        elif sub == "edit":
            card = _resolve_card(state, args.card)
            cards.update_card(
                state, card.id, name=args.name, cutoff=args.cutoff, limit=args.limit,
                brand=args.brand, last4=args.last4,
            )
            print(f"Updated card {card.name}.")
        elif sub == "delete":
            card = _resolve_card(state, args.card)
            expenses_removed, plans_removed = cards.delete_card(state, card.id)
            print(
                f"Deleted card {card.name} with {expenses_removed} expense(s)"
                f" and {plans_removed} plan(s)."
            )
        session.commit()
    return 0


def cmd_plan(args: argparse.Namespace) -> int:
    """Recurring payment plan commands."""
    from kasa.ledger import recurring
    from kasa.ledger.models import CASHBACK_FIXED

    sub = args.plan_command
    if sub is None:
        print("Usage: kasa plan {add,edit,pause,resume,delete,list}")
        return 1

    with _open_session() as session:
        state = session.state
        if sub == "list":
            for plan in state.recurring_plans:
                status = "active" if plan.active else "paused"
                auto = "auto" if plan.auto_pay else "manual"
                print(
                    f"{plan.id}  {plan.name:<20} {format_money(plan.amount, session.locale):>10}"
                    f"  day {plan.day:>2}  {plan.method}  {status}/{auto}"
                    f"  last {plan.last_processed_month or '-'}"
                )
            return 0

        if sub in ("add", "edit") and args.cashback_value is not None:
            cb_type = args.cashback_type
            if cb_type is None:
                cb_type = recurring.get_plan(state, _parse_id(args.id)).cashback_type
            # fixed cashback is money, percent stays a plain number
            if cb_type == CASHBACK_FIXED:
                args.cashback_value = to_minor_units(args.cashback_value)

        if sub == "add":
            plan = recurring.add_plan(
                state, args.name, args.amount, args.day, args.method,
                auto_pay=not args.manual, icon=args.icon,
                cashback_type=args.cashback_type, cashback_value=args.cashback_value,
                campaign_end_date=args.campaign_end,
            )
            print(f"Added plan {plan.name} ({plan.id}).")
        elif sub == "edit":
            auto_pay = None if args.auto_pay is None else args.auto_pay == "on"
            plan = recurring.edit_plan(
                state, _parse_id(args.id), name=args.name, amount=args.amount,
                day=args.day, method=args.method, auto_pay=auto_pay, icon=args.icon,
                cashback_type=args.cashback_type, cashback_value=args.cashback_value,
                campaign_end_date=args.campaign_end,
            )
            print(f"Updated plan {plan.name}.")
        elif sub in ("pause", "resume"):
            plan = recurring.set_plan_active(state, _parse_id(args.id), sub == "resume")
            session.run_recurring()
            print(f"Plan {plan.name} {'resumed' if plan.active else 'paused'}.")
        elif sub == "delete":
            plan = recurring.delete_plan(state, _parse_id(args.id))
            print(f"Deleted plan {plan.name}.")
        session.commit()
    return 0


def cmd_income(args: argparse.Namespace) -> int:
    """Recurring income commands."""
    from kasa.ledger import recurring

    sub = args.income_command
    if sub is None:
        print("Usage: kasa income {add,delete,list}")
        return 1

    with _open_session() as session:
        state = session.state
        if sub == "list":
            for income in state.recurring_income:
                print(
                    f"{income.id}  {income.name:<20} {format_money(income.amount, session.locale):>10}"
                    f"  day {income.day:>2}  last {income.last_processed_month or '-'}"
                )
            return 0
        if sub == "add":
            income = recurring.add_income(state, args.name, args.amount, args.day)
            session.run_recurring()
            print(f"Added income {income.name} ({income.id}).")
        elif sub == "delete":
            income = recurring.delete_income(state, _parse_id(args.id))
            print(f"Deleted income {income.name}.")
        session.commit()
    return 0


def cmd_wallet(args: argparse.Namespace) -> int:
    """Manual wallet entries."""
    from kasa.ledger import wallet

    sub = args.wallet_command
    if sub is None:
        print("Usage: kasa wallet {add,delete,list}")
        return 1

    with _open_session() as session:
        state = session.state
        if sub == "list":
            print(f"Balance: {format_money(wallet.balance(state), session.locale)}")
            for log in wallet.recent_entries(state, args.limit):
                print(f"{log.id}  {log.date}  {log.title:<40} {format_money(log.amount, session.locale):>12}")
            return 0
        if sub == "add":
            kind = wallet.ENTRY_EXPENSE if args.out else wallet.ENTRY_INCOME
            log = wallet.add_manual_entry(state, args.title, args.amount, _today_iso(args), kind)
            print(f"Added wallet entry {log.id}.")
        elif sub == "delete":
            log = wallet.delete_entry(state, _parse_id(args.id))
            print(f"Deleted wallet entry {log.title}.")
        session.commit()
    return 0


def cmd_asset(args: argparse.Namespace) -> int:
    """Asset trade commands."""
    from kasa.ledger import assets
    from kasa.market import MarketPrices

    sub = args.asset_command
    if sub is None:
        print("Usage: kasa asset {buy,sell,sell-all,edit,delete,portfolio}")
        return 1

    with _open_session() as session:
        state = session.state
        fmt = partial(format_money, locale=session.locale)
        if sub == "portfolio":
            market = MarketPrices(repo=session.repo)
            if not args.offline:
                market.refresh()
            positions = assets.portfolio(state)
            if not positions:
                print("No open positions.")
            for asset_type, pos in sorted(positions.items()):
                price = market.price_minor(asset_type)
                print(
                    f"{assets.asset_label(asset_type):<12} {pos.quantity:>12g}"
                    f"  avg {fmt(round(pos.average_cost)):>10}"
                    f"  value {fmt(pos.market_value(price)):>12}"
                    f"  P/L {fmt(pos.profit(price)):>12}"
                )
            return 0

        if sub in ("buy", "sell"):
            trade = assets.record_trade(
                state, args.asset_type, args.quantity, args.price, sub, _today_iso(args),
            )
            print(f"Recorded {sub} {trade.id}: {trade.quantity:g} {assets.asset_label(trade.asset_type)}.")
        elif sub == "sell-all":
            price = args.price
            if price is None:
                market = MarketPrices(repo=session.repo)
                market.refresh()
                price = market.price_minor(args.asset_type)
            trade = assets.sell_all(state, args.asset_type, price, _today_iso(args))
            print(f"Sold {trade.quantity:g} {assets.asset_label(trade.asset_type)} for {fmt(trade.total)}.")
        elif sub == "edit":
            trade = assets.edit_trade(
                state, _parse_id(args.id), quantity=args.quantity, price=args.price,
                trade_type=args.trade_type, iso_date=args.date,
            )
            print(f"Updated trade {trade.id}.")
        elif sub == "delete":
            trade = assets.delete_trade(state, _parse_id(args.id))
            print(f"Deleted trade {trade.id}.")
        session.commit()
    return 0


def cmd_backup(args: argparse.Namespace) -> int:
    """Export or import a JSON backup."""
    from kasa.storage.document import backup_file_name

    sub = args.backup_command
    if sub is None:
        print("Usage: kasa backup {export,import}")
        return 1

    with _open_session() as session:
        if sub == "export":
            out_dir = Path(args.out)
            out_dir.mkdir(parents=True, exist_ok=True)
            path = out_dir / backup_file_name()
            document = session.export_backup()
            path.write_text(json.dumps(document, ensure_ascii=False, indent=2), encoding="utf-8")
            print(f"Backup written to {path}")
        elif sub == "import":
            try:
                document = json.loads(Path(args.file).read_text(encoding="utf-8"))
            except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
                print(f"Error: Could not read backup {args.file}: {e}")
                return 1
            applied = session.restore_backup(document)
            print(f"Restored {len(session.state.expenses)} expenses from {args.file}.")
            if applied:
                print(f"Applied data migrations: {', '.join(str(v) for v in applied)}")
    return 0


def cmd_sync(args: argparse.Namespace) -> int:
    """Show or set the shared sync file."""
    from kasa.storage.document import sync_status
    from kasa.sync.transport import SyncFile

    with _open_session() as session:
        if args.path:
            session.set_sync_file(SyncFile(args.path))
            pulled = session.pull()
            session.run_recurring()
            session.commit()
            print(f"Sync file set to {args.path} ({len(pulled)} field(s) pulled).")
            return 0
        if session.sync is None:
            print("No sync file configured. Run: kasa sync PATH")
            return 1
        status = sync_status(session.state.last_sync)
        print(f"Sync file: {session.sync.path}")
        print(f"Last sync: {session.state.last_sync or '-'} ({status})")
    return 0


def cmd_watch(args: argparse.Namespace) -> int:
    """Reload whenever another device updates the sync file."""
    from kasa.sync.watcher import SyncFileWatcher

    session = _make_session()
    try:
        session.open()
        if session.sync is None:
            print("Error: No sync file configured. Run: kasa sync PATH")
            return 1
        watcher = SyncFileWatcher(session)
        print(f"Watching {watcher.path} for changes... (Ctrl+C to stop)")
        watcher.start()
        try:
            while True:
                time.sleep(1)
        except KeyboardInterrupt:
            print("\nStopping watcher...")
        finally:
            watcher.stop()
    finally:
        session.repo.close()
    return 0


def cmd_push(args: argparse.Namespace) -> int:
    """Force a full Google Sheets rebuild."""
    sheets = _get_sheets()
    if sheets is None:
        print("Error: Sheets not configured. Set KASA_SPREADSHEET_ID and KASA_CREDENTIALS.")
        return 1

    with _open_session() as session:
        print("Rebuilding all sheets from the ledger...")
        results = sheets.full_rebuild(session.state, date.today(), session.holidays)
    total_rows = sum(r.rows_pushed for r in results)
    print(f"Done. Pushed {total_rows} rows across {len(results)} sheets.")
    return 0


def cmd_export(args: argparse.Namespace) -> int:
    """Write the expenses as csv or tsv."""
    from kasa.export.csv_export import write_export

    with _open_session() as session:
        path = write_export(session.state, Path(args.out), args.format)
    print(f"Exported to {path}")
    return 0


# ── Main entry point ─────────────────────────────────────


_COMMANDS = {
    "status": cmd_status,
    "run": cmd_run,
    "expense": cmd_expense,
    "pay": cmd_pay,
    "card": cmd_card,
    "plan": cmd_plan,
    "income": cmd_income,
    "wallet": cmd_wallet,
    "asset": cmd_asset,
    "backup": cmd_backup,
    "sync": cmd_sync,
    "watch": cmd_watch,
    "push": cmd_push,
    "export": cmd_export,
}


def _add_plan_options(p: argparse.ArgumentParser) -> None:
    p.add_argument("--icon")
    p.add_argument("--cashback-type", choices=["none", "percent", "fixed"])
    p.add_argument("--cashback-value", type=_parse_quantity, help="Percent, or an amount for fixed cashback")
    p.add_argument("--campaign-end", help="Last day (YYYY-MM-DD) the cashback applies")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="kasa",
        description="Kasa personal finance ledger",
    )
    subparsers = parser.add_subparsers(dest="command")

    subparsers.add_parser("status", help="Show wallet, card and sync status")
    subparsers.add_parser("run", help="Run the recurring pass")

    # expense
    exp_p = subparsers.add_parser("expense", help="Manage expenses")
    exp_sub = exp_p.add_subparsers(dest="expense_command")
    exp_add = exp_sub.add_parser("add", help="Add an expense")
    exp_add.add_argument("merchant")
    exp_add.add_argument("amount", type=_parse_amount)
    exp_add.add_argument("method", help="Payment method or card name")
    exp_add.add_argument("--category")
    exp_add.add_argument("--date", help="YYYY-MM-DD (default today)")
    exp_add.add_argument("--installments", type=int, default=1)
    exp_add.add_argument("--description", default="")
    exp_edit = exp_sub.add_parser("edit", help="Edit an expense")
    exp_edit.add_argument("id")
    exp_edit.add_argument("--merchant")
    exp_edit.add_argument("--amount", type=_parse_amount)
    exp_edit.add_argument("--date")
    exp_edit.add_argument("--category")
    exp_edit.add_argument("--description")
    exp_del = exp_sub.add_parser("delete", help="Delete an expense")
    exp_del.add_argument("id")
    exp_list = exp_sub.add_parser("list", help="List recent expenses")
    exp_list.add_argument("--limit", type=int, default=20)

    # pay
    pay_p = subparsers.add_parser("pay", help="Pay down a card's debt")
    pay_p.add_argument("card", help="Card name or id")
    pay_p.add_argument("amount", type=_parse_amount)
    pay_p.add_argument("--date")

    # card
    card_p = subparsers.add_parser("card", help="Manage credit cards")
    card_sub = card_p.add_subparsers(dest="card_command")
    card_add = card_sub.add_parser("add", help="Add a card")
    card_add.add_argument("name")
    card_add.add_argument("cutoff", type=int, help="Statement day of month (1-31)")
    card_add.add_argument("limit", type=_parse_amount)
    card_add.add_argument("--brand", default="visa")
    card_add.add_argument("--last4", default="")
    card_edit = card_sub.add_parser("edit", help="Edit a card")
    card_edit.add_argument("card", help="Card name or id")
    card_edit.add_argument("--name")
    card_edit.add_argument("--cutoff", type=int)
    card_edit.add_argument("--limit", type=_parse_amount)
    card_edit.add_argument("--brand")
    card_edit.add_argument("--last4")
    card_del = card_sub.add_parser("delete", help="Delete a card and its records")
    card_del.add_argument("card", help="Card name or id")
    card_show = card_sub.add_parser("show", help="Show a billing period")
    card_show.add_argument("card", help="Card name or id")
    card_show.add_argument("--offset", type=int, default=0, help="Periods relative to the current one")
    card_show.add_argument("--date", help="Reference date (default today)")
    card_sub.add_parser("list", help="List cards")

    # plan
    plan_p = subparsers.add_parser("plan", help="Manage recurring payments")
    plan_sub = plan_p.add_subparsers(dest="plan_command")
    plan_add = plan_sub.add_parser("add", help="Add a recurring payment")
    plan_add.add_argument("name")
    plan_add.add_argument("amount", type=_parse_amount)
    plan_add.add_argument("day", type=int)
    plan_add.add_argument("method", help="Payment method or card name")
    plan_add.add_argument("--manual", action="store_true", help="Do not charge automatically")
    _add_plan_options(plan_add)
    plan_add.set_defaults(icon="default", cashback_type="none", cashback_value=0)
    plan_edit = plan_sub.add_parser("edit", help="Edit a recurring payment")
    plan_edit.add_argument("id")
    plan_edit.add_argument("--name")
    plan_edit.add_argument("--amount", type=_parse_amount)
    plan_edit.add_argument("--day", type=int)
    plan_edit.add_argument("--method")
    plan_edit.add_argument("--auto-pay", choices=["on", "off"])
    _add_plan_options(plan_edit)
    for name in ("pause", "resume", "delete"):
        p = plan_sub.add_parser(name, help=f"{name.capitalize()} a recurring payment")
        p.add_argument("id")
    plan_sub.add_parser("list", help="List recurring payments")

    # income
    inc_p = subparsers.add_parser("income", help="Manage recurring income")
    inc_sub = inc_p.add_subparsers(dest="income_command")
    inc_add = inc_sub.add_parser("add", help="Add recurring income")
    inc_add.add_argument("name")
    inc_add.add_argument("amount", type=_parse_amount)
    inc_add.add_argument("day", type=int)
    inc_del = inc_sub.add_parser("delete", help="Delete recurring income")
    inc_del.add_argument("id")
    inc_sub.add_parser("list", help="List recurring income")

    # wallet
    wal_p = subparsers.add_parser("wallet", help="Manual wallet entries")
    wal_sub = wal_p.add_subparsers(dest="wallet_command")
    wal_add = wal_sub.add_parser("add", help="Add an entry")
    wal_add.add_argument("title")
    wal_add.add_argument("amount", type=_parse_amount)
    wal_add.add_argument("--out", action="store_true", help="Money leaving the wallet")
    wal_add.add_argument("--date")
    wal_del = wal_sub.add_parser("delete", help="Delete an entry")
    wal_del.add_argument("id")
    wal_list = wal_sub.add_parser("list", help="Balance and recent entries")
    wal_list.add_argument("--limit", type=int, default=8)

    # asset
    asset_p = subparsers.add_parser("asset", help="Gold, FX and crypto trades")
    asset_sub = asset_p.add_subparsers(dest="asset_command")
    for name in ("buy", "sell"):
        p = asset_sub.add_parser(name, help=f"Record a {name}")
        p.add_argument("asset_type", help="gram-altin, usd, eur or btc")
        p.add_argument("quantity", type=_parse_quantity)
        p.add_argument("price", type=_parse_amount, help="Unit price")
        p.add_argument("--date")
    sell_all_p = asset_sub.add_parser("sell-all", help="Sell the whole position")
    sell_all_p.add_argument("asset_type")
    sell_all_p.add_argument("price", type=_parse_amount, nargs="?", help="Unit price (default market)")
    sell_all_p.add_argument("--date")
    asset_edit = asset_sub.add_parser("edit", help="Edit a trade")
    asset_edit.add_argument("id")
    asset_edit.add_argument("--quantity", type=_parse_quantity)
    asset_edit.add_argument("--price", type=_parse_amount)
    asset_edit.add_argument("--trade-type", choices=["buy", "sell"])
    asset_edit.add_argument("--date")
    asset_del = asset_sub.add_parser("delete", help="Delete a trade")
    asset_del.add_argument("id")
    port_p = asset_sub.add_parser("portfolio", help="Open positions at market prices")
    port_p.add_argument("--offline", action="store_true", help="Use cached prices only")

    # backup
    backup_p = subparsers.add_parser("backup", help="JSON backups")
    backup_sub = backup_p.add_subparsers(dest="backup_command")
    backup_exp = backup_sub.add_parser("export", help="Write a backup file")
    backup_exp.add_argument("--out", default=".", help="Output directory")
    backup_imp = backup_sub.add_parser("import", help="Replace the ledger with a backup")
    backup_imp.add_argument("file", type=Path)

    # sync
    sync_p = subparsers.add_parser("sync", help="Show or set the shared sync file")
    sync_p.add_argument("path", nargs="?", type=Path)

    subparsers.add_parser("watch", help="Reload when the sync file changes")
    subparsers.add_parser("push", help="Force full Sheets rebuild")

    # export
    export_p = subparsers.add_parser("export", help="Export expenses for spreadsheets")
    export_p.add_argument("format", choices=["csv", "tsv"])
    export_p.add_argument("--out", default=".", help="Output directory")

    return parser


def main(argv: list[str] | None = None):
    _setup_logging()

    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(0)

    handler = _COMMANDS.get(args.command)
    if handler is None:
        print(f"Unknown command: {args.command}")
        sys.exit(1)

    try:
        code = handler(args)
    except (LedgerError, DocumentError, SyncError) as e:
        print(f"Error: {e}")
        code = 1
    sys.exit(code)


if __name__ == "__main__":
    main()
