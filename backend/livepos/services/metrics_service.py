"""Revenue & metrics aggregation.

The aggregator keeps running sums inside ``state.metrics``; nothing here
rescans the order list on write. Whoever moves money on the ledger for an
order must call the matching aggregator method in the same handler
invocation, otherwise the buckets drift from the ledger.

The module also hosts the read-side helpers used by the metrics report.
Those do scan orders, since reports are not on the write path.
"""

import logging
import statistics
from datetime import datetime, tzinfo
from typing import Any, Dict, Iterable, List, Optional, Tuple

from livepos.core.clock import parse_iso
from livepos.core.rbac import ADMIN_SUBJECT
from livepos.schemas.state import (
    BestsellerStat,
    Metrics,
    Order,
    OrderLine,
    PAYMENT_METHODS,
    StaffPerformance,
    State,
)

logger = logging.getLogger(__name__)


def bucket_keys(moment: datetime, tz: tzinfo) -> Tuple[str, str, str, str]:
    """Day, ISO week, month and hour keys for ``moment`` in ``tz``."""
    local = moment.astimezone(tz)
    iso_year, iso_week, _ = local.isocalendar()
    return (
        local.strftime("%Y-%m-%d"),
        f"{iso_year}-W{iso_week:02d}",
        local.strftime("%Y-%m"),
        str(local.hour),
    )


class MetricsAggregator:
    """Incremental counters bound to one ``Metrics`` object."""

    def __init__(self, metrics: Metrics, tz: tzinfo):
        self.metrics = metrics
        self.tz = tz

    # ----- orders -----

    def record_order(self, order: Order) -> None:
        """Count a newly created order everywhere it belongs."""
        self._apply_order(order, sign=1)

    def reverse_order(self, order: Order) -> None:
        """Undo every contribution of ``order`` (order deleted)."""
        self._apply_order(order, sign=-1)

    def revise_order(self, old_lines: Iterable[OrderLine], old_total: float, order: Order) -> None:
        """Order edited: swap its lines and move its buckets by the total delta."""
        delta = order.total - old_total
        self._add_lines(old_lines, sign=-1)
        self._add_lines(order.items, sign=1)
        self._add_revenue(order.created_at, delta)
        self._track_staff(order.created_by_staff_id, orders_delta=0, revenue_delta=delta)

    def record_completion(self, order: Order, prep_seconds: int) -> None:
        """Order reached done for the first time."""
        self.metrics.prep_times[order.id] = prep_seconds
        perf = self._staff_entry(order.created_by_staff_id)
        if perf is not None:
            perf.total_prep_time += prep_seconds
            perf.completed_orders += 1

    # ----- payments -----

    def record_payment(self, method: str, amount: float) -> None:
        totals = self.metrics.payment_methods
        totals[method] = totals.get(method, 0) + amount

    # ----- internals -----

    def _apply_order(self, order: Order, sign: int) -> None:
        self._add_lines(order.items, sign)
        self._add_revenue(order.created_at, sign * order.total)
        _, _, _, hour = self._keys(order.created_at)
        hourly = self.metrics.hourly_distribution
        hourly[hour] = hourly.get(hour, 0) + sign
        self._track_staff(order.created_by_staff_id, orders_delta=sign, revenue_delta=sign * order.total)

    def _keys(self, created_at: str) -> Tuple[str, str, str, str]:
        moment = parse_iso(created_at)
        if moment is None:
            raise ValueError(f"Unparseable order timestamp: {created_at!r}")
        return bucket_keys(moment, self.tz)

    def _add_revenue(self, created_at: str, amount: float) -> None:
        day, week, month, _ = self._keys(created_at)
        m = self.metrics
        m.daily_revenue[day] = m.daily_revenue.get(day, 0) + amount
        m.weekly_revenue[week] = m.weekly_revenue.get(week, 0) + amount
        m.monthly_revenue[month] = m.monthly_revenue.get(month, 0) + amount

    def _add_lines(self, lines: Iterable[OrderLine], sign: int) -> None:
        bestsellers = self.metrics.bestsellers
        for line in lines:
            stat = bestsellers.get(line.item_id)
            if stat is None:
                stat = bestsellers[line.item_id] = BestsellerStat()
            stat.count += sign * line.qty
            stat.revenue += sign * line.line_total

    def _staff_entry(self, staff_id: str) -> Optional[StaffPerformance]:
        # Orders placed from the admin console are not attributed to anyone
        if not staff_id or staff_id == ADMIN_SUBJECT:
            return None
        perf = self.metrics.staff_performance.get(staff_id)
        if perf is None:
            perf = self.metrics.staff_performance[staff_id] = StaffPerformance()
        return perf

    def _track_staff(self, staff_id: str, orders_delta: int, revenue_delta: float) -> None:
        perf = self._staff_entry(staff_id)
        if perf is not None:
            perf.orders_created += orders_delta
            perf.total_revenue += revenue_delta


# ---------------------------------------------------------------------------
# Read side
# ---------------------------------------------------------------------------

def _round2(value: float) -> float:
    return round(value + 0.0, 2)


def average_prep_seconds(perf: StaffPerformance) -> int:
    if perf.completed_orders <= 0:
        return 0
    return round(perf.total_prep_time / perf.completed_orders)


def staff_performance_table(state: State) -> Dict[str, Dict[str, Any]]:
    """Per-staff counters with username and derived average prep time."""
    table = {}
    for staff_id, perf in state.metrics.staff_performance.items():
        account = state.find_staff(staff_id)
        row = perf.model_dump(by_alias=True)
        row["username"] = account.username if account else staff_id
        row["avgPrepTime"] = average_prep_seconds(perf)
        table[staff_id] = row
    return table


def top_bestsellers(state: State, limit: int = 10) -> List[Dict[str, Any]]:
    rows = []
    for item_id, stat in state.metrics.bestsellers.items():
        item = state.find_menu_item(item_id)
        rows.append({
            "itemId": item_id,
            "name": item.name if item else item_id,
            "count": stat.count,
            "revenue": stat.revenue,
        })
    rows.sort(key=lambda r: r["count"], reverse=True)
    return rows[:limit]


def revenue_by_staff(state: State) -> List[Dict[str, Any]]:
    """Revenue of completed orders grouped by creator."""
    by_staff: Dict[str, Dict[str, Any]] = {}
    for order in state.orders:
        if order.status != "done":
            continue
        staff_id = order.created_by_staff_id or "unknown"
        row = by_staff.setdefault(staff_id, {
            "staffId": staff_id,
            "staffName": order.created_by_username or "Unknown",
            "totalRevenue": 0.0,
            "orderCount": 0,
        })
        row["totalRevenue"] += order.total
        row["orderCount"] += 1

    result = []
    for row in by_staff.values():
        row["averageOrderValue"] = _round2(row["totalRevenue"] / row["orderCount"])
        row["totalRevenue"] = _round2(row["totalRevenue"])
        result.append(row)
    return sorted(result, key=lambda r: r["totalRevenue"], reverse=True)


def revenue_by_item(state: State) -> List[Dict[str, Any]]:
    """Quantity and revenue of completed order lines grouped by item."""
    by_item: Dict[str, Dict[str, Any]] = {}
    for order in state.orders:
        if order.status != "done":
            continue
        for line in order.items:
            row = by_item.setdefault(line.item_id, {
                "itemId": line.item_id,
                "name": line.name or "Unknown",
                "quantitySold": 0,
                "revenue": 0.0,
            })
            row["quantitySold"] += line.qty
            row["revenue"] += line.line_total

    result = []
    for row in by_item.values():
        sold = row["quantitySold"]
        row["averagePrice"] = _round2(row["revenue"] / sold) if sold > 0 else 0
        row["revenue"] = _round2(row["revenue"])
        result.append(row)
    return sorted(result, key=lambda r: r["revenue"], reverse=True)


def format_duration(seconds: float) -> str:
    seconds = int(round(seconds or 0))
    minutes, secs = divmod(seconds, 60)
    if minutes >= 60:
        hours, minutes = divmod(minutes, 60)
        return f"{hours}h {minutes}m"
    return f"{minutes}m {secs}s"


def prep_time_stats(state: State) -> Dict[str, Any]:
    """Min, max, average and median of recorded prep times (seconds)."""
    values = list(state.metrics.prep_times.values())
    if not values:
        stats = {"min": 0, "max": 0, "avg": 0, "median": 0, "count": 0}
    else:
        stats = {
            "min": min(values),
            "max": max(values),
            "avg": round(sum(values) / len(values)),
            "median": round(statistics.median(values)),
            "count": len(values),
        }
    stats["formatted"] = {k: format_duration(stats[k]) for k in ("min", "max", "avg")}
    return stats


def promo_metrics(state: State, now: datetime, limit: int = 10) -> Dict[str, Any]:
    """Usage ranking and lifecycle status of every promo."""
    most_used = []
    summary = {"total": len(state.promos), "active": 0, "expired": 0, "exhausted": 0, "neverUsed": 0}
    for promo in state.promos:
        expiry = parse_iso(promo.expiry_date)
        expired = expiry is not None and expiry < now
        exhausted = bool(promo.max_uses) and promo.uses >= promo.max_uses
        active = promo.is_active and not expired and not exhausted
        summary["active"] += int(active)
        summary["expired"] += int(expired)
        summary["exhausted"] += int(exhausted)
        summary["neverUsed"] += int(promo.uses == 0)
        if exhausted:
            status = "exhausted"
        elif expired:
            status = "expired"
        elif active:
            status = "active"
        else:
            status = "inactive"
        most_used.append({
            "id": promo.id,
            "code": promo.code,
            "type": promo.type,
            "value": promo.value,
            "uses": promo.uses,
            "maxUses": promo.max_uses,
            "usageRate": _round2(promo.uses / promo.max_uses * 100) if promo.max_uses else None,
            "status": status,
        })
    most_used.sort(key=lambda p: p["uses"], reverse=True)

    discounted = [o for o in state.orders if o.status == "done" and o.discount > 0]
    total_discount = sum(o.discount for o in discounted)
    summary["mostUsed"] = most_used[:limit]
    summary["totalDiscount"] = _round2(total_discount)
    summary["discountedOrders"] = len(discounted)
    return summary


def payment_method_totals(state: State) -> Dict[str, float]:
    totals = {method: 0.0 for method in PAYMENT_METHODS}
    totals.update(state.metrics.payment_methods)
    return totals
