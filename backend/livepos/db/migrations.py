"""Versioned migrations for the persisted state document.

Each migration takes the raw document of version N and returns it at
version N+1. Migrations only add what is missing, so running one twice is
harmless and documents that skipped a version bump still come out right.
Anything the migrations do not cover is backfilled by the schema defaults in
``livepos.schemas.state``.
"""

import logging
import re
from typing import Any, Callable, Dict, List, Tuple

from livepos.core.errors import PersistenceError
from livepos.schemas.state import CURRENT_VERSION, PAYMENT_METHODS

logger = logging.getLogger(__name__)

Document = Dict[str, Any]

VALID_STAFF_ROLES = ("cashier", "kitchen", "manager")

LEGACY_WEEK_KEY = re.compile(r"^(\d{4})-W(\d)$")

METRIC_MAPS = (
    "bestsellers",
    "staffPerformance",
    "dailyRevenue",
    "weeklyRevenue",
    "monthlyRevenue",
    "prepTimes",
    "hourlyDistribution",
)


def add_commerce_collections(doc: Document) -> Document:
    """v1 -> v2: promos, receipts, inventory, customers and metrics."""
    for key in ("promos", "discounts", "receipts", "inventory", "customers", "inventoryLogs"):
        if not isinstance(doc.get(key), list):
            doc[key] = []
    if not isinstance(doc.get("metrics"), dict):
        doc["metrics"] = {}
    return doc


def backfill_staff_roles(doc: Document) -> Document:
    """v2 -> v3: every staff account gets a valid role and a status."""
    for account in doc.get("staff") or []:
        if account.get("role") not in VALID_STAFF_ROLES:
            account["role"] = "cashier"
        account.setdefault("status", "active")
    return doc


def backfill_menu_fields(doc: Document) -> Document:
    """v3 -> v4: menu items get ``unavailable`` and ``description``."""
    for item in doc.get("menu") or []:
        item.setdefault("unavailable", False)
        item.setdefault("description", "")
    return doc


def pad_week_keys(buckets: Dict[str, Any]) -> Dict[str, Any]:
    padded: Dict[str, Any] = {}
    for key, amount in buckets.items():
        match = LEGACY_WEEK_KEY.match(key)
        if match:
            key = f"{match.group(1)}-W{int(match.group(2)):02d}"
        padded[key] = padded.get(key, 0) + amount
    return padded


def backfill_metrics_buckets(doc: Document) -> Document:
    """v4 -> v5: nested metric maps, payment keys and per-order prep time.

    Single-digit week keys (``2024-W9``) are folded into the padded form
    (``2024-W09``). Applied-promo snapshots that only kept the
    discount become fixed terms worth that discount, so an edit recomputes
    the same amount.
    """
    metrics = doc.setdefault("metrics", {})
    for key in METRIC_MAPS:
        if not isinstance(metrics.get(key), dict):
            metrics[key] = {}
    metrics["weeklyRevenue"] = pad_week_keys(metrics["weeklyRevenue"])
    payments = metrics.get("paymentMethods")
    if not isinstance(payments, dict):
        payments = metrics["paymentMethods"] = {}
    for method in PAYMENT_METHODS:
        payments.setdefault(method, 0)

    prep_times = metrics["prepTimes"]
    for order in doc.get("orders") or []:
        if order.get("prepSeconds") is None and order.get("id") in prep_times:
            order["prepSeconds"] = prep_times[order["id"]]
        promo = order.get("promo")
        if isinstance(promo, dict) and "type" not in promo:
            promo["type"] = "fixed"
            promo.setdefault("value", promo.get("discount") or 0)
    return doc


# (from_version, migration); each one lifts the document to from_version + 1
MIGRATIONS: List[Tuple[int, Callable[[Document], Document]]] = [
    (1, add_commerce_collections),
    (2, backfill_staff_roles),
    (3, backfill_menu_fields),
    (4, backfill_metrics_buckets),
]


def migrate(doc: Document) -> Document:
    """Run every migration from the document's version up to CURRENT_VERSION."""
    try:
        version = int(doc.get("version") or 1)
    except (TypeError, ValueError):
        version = 1

    if version > CURRENT_VERSION:
        raise PersistenceError(
            f"State file version {version} is newer than supported version {CURRENT_VERSION}"
        )

    for from_version, migration in MIGRATIONS:
        if version <= from_version:
            doc = migration(doc)
            logger.info(f"Applied state migration {migration.__name__} (v{from_version} -> v{from_version + 1})")

    doc["version"] = CURRENT_VERSION
    return doc
