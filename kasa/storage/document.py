"""JSON document codec for the sync file, backups and the key-value store.

Documents use the camelCase field names of the browser app's storage so
existing sync files and backups load unchanged. Legacy documents may carry
float amounts, fractional ids and DD.MM.YYYY dates; decoding keeps amounts
numerically as stored (the currency migration scales them) and normalizes
dates to ISO.
"""

from __future__ import annotations

import logging
import re
from dataclasses import fields
from datetime import date, datetime, timezone

from kasa.dates import format_display_date, local_date_iso, parse_any_date
from kasa.ledger.migration import round_fractional_amounts
from kasa.ledger.models import (
    _new_id,
    CASHBACK_NONE,
    DATA_VERSION_LEGACY,
    DATA_VERSION_MINOR_UNITS,
    TRADE_BUY,
    AssetTrade,
    BalanceLog,
    Card,
    Expense,
    LedgerState,
    RecurringIncome,
    RecurringPlan,
)

logger = logging.getLogger(__name__)

SYNC_FIELDS = (
    "expenses", "cards", "assets", "methods", "categories", "merchants",
    "recurringPlans", "recurringIncome", "balanceLogs", "isDark",
    "isPrivacyMode", "lastSync",
)

BACKUP_SUFFIX = "kasa-backup.json"
FRESH_DAYS = 3
STALE_DAYS = 5

_FILENAME_ISO_RE = re.compile(r"(\d{4})-(\d{2})-(\d{2})")
_FILENAME_DOTTED_RE = re.compile(r"(\d{2})\.(\d{2})\.(\d{4})")


class DocumentError(ValueError):
    """Raised when a document does not have the expected shape."""


# ── Scalar coercion ──────────────────────────────────────


def _coerce_id(value: object) -> int | str | None:
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        return str(value)
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if value.is_integer() else str(value)
    text = str(value)
    return int(text) if text.isdigit() else text


def _record_id(d: dict) -> int | str:
    record_id = _coerce_id(d.get("id"))
    return _new_id() if record_id is None else record_id


def _number(value: object) -> int | float:
    """Keep a stored amount as-is: int when integral, float otherwise."""
    if value is None or isinstance(value, bool):
        return 0
    if isinstance(value, int):
        return value
    try:
        num = float(value)
    except (TypeError, ValueError):
        return 0
    if num != num or num in (float("inf"), float("-inf")):
        return 0
    return int(num) if num.is_integer() else num


def _int(value: object, default: int = 0) -> int:
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return default


def _iso(value: object) -> str:
    parsed = parse_any_date(str(value)) if value else None
    return local_date_iso(parsed) if parsed else str(value or "")


# ── Records ──────────────────────────────────────────────


def expense_to_dict(exp: Expense) -> dict:
    return {
        "id": exp.id,
        "merchant": exp.merchant,
        "description": exp.description,
        "amount": exp.amount,
        "method": exp.method,
        "category": exp.category,
        "isoDate": exp.iso_date,
        "date": exp.display_date,
        "isCredit": exp.is_credit,
        "isPayment": exp.is_payment,
        "isRecurring": exp.is_recurring,
        "recurringPlanId": exp.recurring_plan_id,
        "cardId": exp.card_id,
    }


def expense_from_dict(d: dict) -> Expense:
    return Expense(
        id=_record_id(d),
        merchant=str(d.get("merchant") or ""),
        description=str(d.get("description") or ""),
        amount=_number(d.get("amount")),
        method=str(d.get("method") or ""),
        category=str(d.get("category") or ""),
        iso_date=_iso(d.get("isoDate") or d.get("date")),
        is_credit=bool(d.get("isCredit")),
        is_payment=bool(d.get("isPayment")),
        is_recurring=bool(d.get("isRecurring")),
        recurring_plan_id=_coerce_id(d.get("recurringPlanId")),
        card_id=_coerce_id(d.get("cardId")),
    )


def card_to_dict(card: Card) -> dict:
    return {
        "id": card.id,
        "name": card.name,
        "cutoff": card.cutoff,
        "limit": card.limit,
        "brand": card.brand,
        "last4": card.last4,
    }


def card_from_dict(d: dict) -> Card:
    return Card(
        id=_record_id(d),
        name=str(d.get("name") or ""),
        cutoff=_int(d.get("cutoff"), 1),
        limit=_number(d.get("limit")),
        brand=str(d.get("brand") or "visa"),
        last4=str(d.get("last4") or ""),
    )


def plan_to_dict(plan: RecurringPlan) -> dict:
    return {
        "id": plan.id,
        "name": plan.name,
        "amount": plan.amount,
        "day": plan.day,
        "method": plan.method,
        "cardId": plan.card_id,
        "active": plan.active,
        "autoPay": plan.auto_pay,
        "icon": plan.icon,
        "cashbackType": plan.cashback_type,
        "cashbackValue": plan.cashback_value,
        "campaignEndDate": plan.campaign_end_date,
        "lastProcessedMonth": plan.last_processed_month,
        "createdAt": plan.created_at,
    }


def plan_from_dict(d: dict) -> RecurringPlan:
    return RecurringPlan(
        id=_record_id(d),
        name=str(d.get("name") or ""),
        amount=_number(d.get("amount")),
        day=_int(d.get("day"), 1),
        method=str(d.get("method") or ""),
        card_id=_coerce_id(d.get("cardId")),
        active=bool(d.get("active", True)),
        auto_pay=bool(d.get("autoPay", True)),
        icon=str(d.get("icon") or "default"),
        cashback_type=str(d.get("cashbackType") or CASHBACK_NONE),
        cashback_value=_number(d.get("cashbackValue")),
        campaign_end_date=d.get("campaignEndDate") or None,
        last_processed_month=d.get("lastProcessedMonth") or None,
        created_at=d.get("createdAt") or None,
    )


def income_to_dict(income: RecurringIncome) -> dict:
    return {
        "id": income.id,
        "name": income.name,
        "amount": income.amount,
        "day": income.day,
        "active": income.active,
        "lastProcessedMonth": income.last_processed_month,
    }


def income_from_dict(d: dict) -> RecurringIncome:
    return RecurringIncome(
        id=_record_id(d),
        name=str(d.get("name") or ""),
        amount=_number(d.get("amount")),
        day=_int(d.get("day"), 1),
        active=bool(d.get("active", True)),
        last_processed_month=d.get("lastProcessedMonth") or None,
    )


def balance_log_to_dict(log: BalanceLog) -> dict:
    return {
        "id": log.id,
        "title": log.title,
        "amount": log.amount,
        "date": log.date,
        "createdAt": log.created_at,
        "recurringIncomeId": log.recurring_income_id,
    }


def balance_log_from_dict(d: dict) -> BalanceLog:
    return BalanceLog(
        id=_record_id(d),
        title=str(d.get("title") or ""),
        amount=_number(d.get("amount")),
        date=_iso(d.get("isoDate") or d.get("date")),
        created_at=str(d.get("createdAt") or ""),
        recurring_income_id=_coerce_id(d.get("recurringIncomeId")),
    )


def trade_to_dict(trade: AssetTrade) -> dict:
    return {
        "id": trade.id,
        "type": trade.asset_type,
        "amount": trade.quantity,
        "price": trade.price,
        "tradeType": trade.trade_type,
        "isoDate": trade.iso_date,
        "date": format_display_date(trade.iso_date),
    }


def trade_from_dict(d: dict) -> AssetTrade:
    try:
        quantity = float(d.get("amount") or 0)
    except (TypeError, ValueError):
        quantity = 0.0
    return AssetTrade(
        id=_record_id(d),
        asset_type=str(d.get("type") or ""),
        quantity=quantity,
        price=_number(d.get("price")),
        trade_type=str(d.get("tradeType") or TRADE_BUY),
        iso_date=_iso(d.get("isoDate") or d.get("date")),
    )


# field name -> (state attribute, encoder, decoder)
COLLECTIONS = {
    "expenses": ("expenses", expense_to_dict, expense_from_dict),
    "cards": ("cards", card_to_dict, card_from_dict),
    "assets": ("assets", trade_to_dict, trade_from_dict),
    "recurringPlans": ("recurring_plans", plan_to_dict, plan_from_dict),
    "recurringIncome": ("recurring_income", income_to_dict, income_from_dict),
    "balanceLogs": ("balance_logs", balance_log_to_dict, balance_log_from_dict),
}

STRING_LISTS = {
    "methods": "methods",
    "categories": "categories",
    "merchants": "merchants",
}

FLAGS = {
    "isDark": "is_dark",
    "isPrivacyMode": "is_privacy_mode",
}


def _decode_collection(field_name: str, value: object) -> list:
    if not isinstance(value, list):
        raise DocumentError(f"'{field_name}' must be a list")
    _, _, decode = COLLECTIONS[field_name]
    items = []
    for raw in value:
        if not isinstance(raw, dict):
            raise DocumentError(f"'{field_name}' entries must be objects")
        items.append(decode(raw))
    return items


def _decode_strings(field_name: str, value: object) -> list[str]:
    if not isinstance(value, list):
        raise DocumentError(f"'{field_name}' must be a list")
    return [str(v) for v in value if v is not None]


# ── Whole documents ──────────────────────────────────────


def _timestamp(now: datetime | None = None) -> str:
    return (now or datetime.now(timezone.utc)).isoformat()


def serialize(state: LedgerState, now: datetime | None = None) -> dict:
    """Build the sync document; lastSync is stamped with `now`."""
    doc: dict = {}
    for field_name, (attr, encode, _) in COLLECTIONS.items():
        doc[field_name] = [encode(item) for item in getattr(state, attr)]
    for field_name, attr in STRING_LISTS.items():
        doc[field_name] = list(getattr(state, attr))
    for field_name, attr in FLAGS.items():
        doc[field_name] = bool(getattr(state, attr))
    doc["lastSync"] = _timestamp(now)
    return {k: doc[k] for k in SYNC_FIELDS}


def apply_document(state: LedgerState, doc: dict) -> list[str]:
    """Merge the fields present in `doc` into `state`.

    Absent or null fields keep their current values. Everything is decoded
    before anything is assigned, so a malformed document changes nothing.
    Returns the field names applied.
    """
    if not isinstance(doc, dict):
        raise DocumentError("Document must be a JSON object")
    decoded: dict[str, object] = {}
    for field_name in COLLECTIONS:
        if doc.get(field_name) is not None:
            decoded[field_name] = _decode_collection(field_name, doc[field_name])
    for field_name in STRING_LISTS:
        if doc.get(field_name) is not None:
            decoded[field_name] = _decode_strings(field_name, doc[field_name])
    for field_name in FLAGS:
        if doc.get(field_name) is not None:
            decoded[field_name] = bool(doc[field_name])
    if doc.get("lastSync"):
        decoded["lastSync"] = str(doc["lastSync"])

    for field_name, value in decoded.items():
        if field_name in COLLECTIONS:
            setattr(state, COLLECTIONS[field_name][0], value)
        elif field_name in STRING_LISTS:
            setattr(state, STRING_LISTS[field_name], value)
        elif field_name in FLAGS:
            setattr(state, FLAGS[field_name], value)
        else:
            state.last_sync = value
    logger.debug("Applied document fields: %s", ", ".join(decoded))
    return list(decoded)


def export_backup(state: LedgerState, now: datetime | None = None) -> dict:
    doc = serialize(state, now)
    doc["dataVersion"] = state.data_version
    return doc


def import_backup(
    state: LedgerState, doc: dict,
    default_methods: list[str] | None = None,
    default_categories: list[str] | None = None,
) -> LedgerState:
    """Replace the state with a backup's contents.

    The backup must carry `expenses` and `cards` arrays. Methods and
    categories are merged with the defaults. A missing or pre-minor-unit
    dataVersion resets the version to 1 so the currency migration runs.
    """
    if not isinstance(doc, dict) or not isinstance(doc.get("expenses"), list) \
            or not isinstance(doc.get("cards"), list):
        raise DocumentError("Invalid backup: 'expenses' and 'cards' arrays are required")

    restored = LedgerState()
    for field_name, (attr, _, _) in COLLECTIONS.items():
        setattr(restored, attr, _decode_collection(field_name, doc.get(field_name) or []))
    restored.methods = _union(default_methods or [], _decode_strings("methods", doc.get("methods") or []))
    restored.categories = _union(
        default_categories or [], _decode_strings("categories", doc.get("categories") or []),
    )
    restored.merchants = _decode_strings("merchants", doc.get("merchants") or state.merchants)
    restored.is_dark = bool(doc.get("isDark", state.is_dark))
    restored.is_privacy_mode = bool(doc.get("isPrivacyMode", state.is_privacy_mode))
    restored.last_sync = doc.get("lastSync") or None

    version = _int(doc.get("dataVersion"), 0)
    restored.data_version = version if version >= DATA_VERSION_MINOR_UNITS else DATA_VERSION_LEGACY
    if restored.data_version >= DATA_VERSION_MINOR_UNITS:
        round_fractional_amounts(restored)

    for f in fields(LedgerState):
        setattr(state, f.name, getattr(restored, f.name))
    logger.info(
        "Restored backup: %d expenses, %d cards (data version %d)",
        len(state.expenses), len(state.cards), state.data_version,
    )
    return state


def _union(first: list[str], second: list[str]) -> list[str]:
    seen = []
    for item in first + second:
        if item not in seen:
            seen.append(item)
    return seen


# ── Sync metadata ────────────────────────────────────────


def derive_last_sync(doc: dict, filename: str, mtime: float | None = None) -> str | None:
    """When the document was last written.

    Uses `lastSync`, else a YYYY-MM-DD or DD.MM.YYYY date in the file name,
    else the file modification time.
    """
    if isinstance(doc, dict) and doc.get("lastSync"):
        return str(doc["lastSync"])
    m = _FILENAME_ISO_RE.search(filename or "")
    if m:
        year, month, day = (int(g) for g in m.groups())
    else:
        m = _FILENAME_DOTTED_RE.search(filename or "")
        if m:
            day, month, year = (int(g) for g in m.groups())
    if m:
        try:
            return datetime(year, month, day, 12, 0).isoformat()
        except ValueError:
            logger.debug("Ignoring impossible date in file name %s", filename)
    if mtime is not None:
        return datetime.fromtimestamp(mtime, timezone.utc).isoformat()
    return None


def backup_file_name(today: date | None = None) -> str:
    today = today or date.today()
    return f"{today.day:02d}.{today.month:02d}.{today.year:04d} {BACKUP_SUFFIX}"


def _parse_timestamp(value: str) -> datetime | None:
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except (AttributeError, ValueError):
        return None
    if parsed.tzinfo is None:
        parsed = parsed.astimezone()
    return parsed


def sync_status(last_sync: str | None, now: datetime | None = None) -> str:
    """Classify backup freshness: none, fresh (<= 3 days), stale (<= 5) or critical."""
    if not last_sync:
        return "none"
    parsed = _parse_timestamp(last_sync)
    if parsed is None:
        return "none"
    now = now or datetime.now(timezone.utc)
    if now.tzinfo is None:
        now = now.astimezone()
    age_days = (now - parsed).total_seconds() / 86400
    if age_days <= FRESH_DAYS:
        return "fresh"
    if age_days <= STALE_DAYS:
        return "stale"
    return "critical"
