"""Customer records.

Customers are created and updated as a side effect of ``order:create`` when
the order carries a phone number or an email address. Matching is by phone
first, then by (lower-cased) email. The totals on a customer follow the
orders linked to it through ``customerId``: edits move ``totalSpent`` by the
order's delta and deletes take the order back out.
"""

import logging
from collections import Counter
from typing import Any, Dict, List, Optional

from livepos.core.clock import new_id, to_iso
from livepos.core.errors import NotFoundError
from livepos.core.rbac import Capability
from livepos.schemas.commands import CustomerHistoryPayload, CustomerSearchPayload, EmptyPayload
from livepos.schemas.state import Customer, Order, State
from livepos.services.export_service import money, rows_to_csv
from livepos.services.registry import CommandContext, CommandResult, command

logger = logging.getLogger(__name__)

EXPORT_HEADERS = [
    "Name",
    "Phone",
    "Email",
    "Table",
    "Total Orders",
    "Total Spent",
    "Marketing Opt-In",
    "First Order",
    "Last Order",
]


def normalize_phone(phone: Optional[str]) -> Optional[str]:
    phone = (phone or "").strip()
    return phone or None


def normalize_email(email: Optional[str]) -> Optional[str]:
    email = (email or "").strip().lower()
    return email or None


def find_customer(state: State, phone: Optional[str], email: Optional[str]) -> Optional[Customer]:
    if phone:
        match = next((c for c in state.customers if c.phone == phone), None)
        if match is not None:
            return match
    if email:
        return next((c for c in state.customers if c.email == email), None)
    return None


def record_order(state: State, order: Order) -> Optional[str]:
    """Create or update the customer behind ``order``; return its id.

    Returns None when the order has neither phone nor email.
    """
    phone = normalize_phone(order.customer_phone)
    email = normalize_email(order.customer_email)
    if not phone and not email:
        return None

    customer = find_customer(state, phone, email)
    if customer is None:
        customer = Customer(
            id=new_id(),
            name=order.customer_name,
            phone=phone,
            email=email,
            table_number=order.table_number,
            marketing_opt_in=order.marketing_opt_in,
            first_order_date=order.created_at,
            last_order_date=order.created_at,
            total_orders=1,
            total_spent=order.total,
            created_at=order.created_at,
        )
        state.customers.append(customer)
        logger.debug(f"New customer {customer.id} from order {order.id}")
        return customer.id

    customer.name = order.customer_name or customer.name
    if phone:
        customer.phone = phone
    if email:
        customer.email = email
    if order.table_number:
        customer.table_number = order.table_number
    customer.marketing_opt_in = order.marketing_opt_in
    customer.last_order_date = order.created_at
    customer.total_orders += 1
    customer.total_spent += order.total
    return customer.id


def revise_spend(state: State, order: Order, delta: float) -> None:
    """An order linked to a customer changed total by ``delta``."""
    customer = state.find_customer(order.customer_id) if order.customer_id else None
    if customer is not None:
        customer.total_spent += delta


def remove_order(state: State, order: Order) -> None:
    """Take a deleted order back out of its customer's totals."""
    customer = state.find_customer(order.customer_id) if order.customer_id else None
    if customer is not None:
        customer.total_orders = max(customer.total_orders - 1, 0)
        customer.total_spent -= order.total


def search_customers(state: State, query: str) -> List[Customer]:
    term = (query or "").strip().lower()
    if not term:
        return []

    def matches(c: Customer) -> bool:
        fields = (c.name, c.phone, c.email, c.table_number)
        return any(f and term in f.lower() for f in fields)

    return [c for c in state.customers if matches(c)]


def customer_orders(state: State, customer: Customer) -> List[Order]:
    """Orders linked by id, plus legacy orders matched on contact details."""
    def belongs(order: Order) -> bool:
        if order.customer_id:
            return order.customer_id == customer.id
        if customer.phone and order.customer_phone == customer.phone:
            return True
        return bool(customer.email) and normalize_email(order.customer_email) == customer.email

    return [o for o in state.orders if belongs(o)]


def order_history(state: State, customer_id: str) -> Dict[str, Any]:
    customer = state.find_customer(customer_id)
    if customer is None:
        raise NotFoundError("Customer", customer_id)

    orders = sorted(customer_orders(state, customer), key=lambda o: o.created_at, reverse=True)
    history = [
        {
            "orderId": o.id,
            "createdAt": o.created_at,
            "status": o.status,
            "total": o.total,
            "subtotal": o.subtotal,
            "discount": o.discount,
            "itemCount": sum(line.qty for line in o.items),
            "tableNumber": o.table_number or customer.table_number,
        }
        for o in orders
    ]
    spent = sum(h["total"] for h in history)
    tables = Counter(h["tableNumber"] for h in history if h["tableNumber"])
    return {
        "customer": customer.model_dump(by_alias=True),
        "orders": history,
        "summary": {
            "totalOrders": len(history),
            "totalSpent": spent,
            "averageOrderValue": round(spent / len(history), 2) if history else 0,
            "favoriteTable": tables.most_common(1)[0][0] if tables else None,
        },
    }


def customer_metrics(state: State, limit: int = 10) -> Dict[str, Any]:
    customers = state.customers
    total = len(customers)
    if total == 0:
        return {
            "totalCustomers": 0,
            "newCustomers": 0,
            "returningCustomers": 0,
            "optInRate": 0,
            "optedInCount": 0,
            "averageOrderValuePerCustomer": 0,
            "totalRevenueFromCustomers": 0,
            "averageOrdersPerCustomer": 0,
            "topCustomers": [],
        }

    opted_in = sum(1 for c in customers if c.marketing_opt_in)
    revenue = sum(c.total_spent for c in customers)
    order_count = sum(c.total_orders for c in customers)
    top = sorted(customers, key=lambda c: c.total_spent, reverse=True)[:limit]
    return {
        "totalCustomers": total,
        "newCustomers": sum(1 for c in customers if c.total_orders == 1),
        "returningCustomers": sum(1 for c in customers if c.total_orders > 1),
        "optInRate": round(opted_in / total * 100, 1),
        "optedInCount": opted_in,
        "averageOrderValuePerCustomer": round(revenue / order_count, 2) if order_count else 0,
        "totalRevenueFromCustomers": revenue,
        "averageOrdersPerCustomer": round(order_count / total, 2),
        "topCustomers": [
            {
                "id": c.id,
                "name": c.name,
                "totalSpent": c.total_spent,
                "totalOrders": c.total_orders,
                "lastOrderDate": c.last_order_date,
            }
            for c in top
        ],
    }


def opted_in_csv(state: State) -> str:
    rows = (
        [
            c.name,
            c.phone,
            c.email,
            c.table_number,
            c.total_orders,
            money(c.total_spent),
            "Yes" if c.marketing_opt_in else "No",
            c.first_order_date,
            c.last_order_date,
        ]
        for c in state.customers
        if c.marketing_opt_in
    )
    return rows_to_csv(EXPORT_HEADERS, rows)


@command("customer:search", Capability.STAFF_OR_ADMIN, CustomerSearchPayload, mutates=False)
def search(ctx: CommandContext, payload: CustomerSearchPayload) -> CommandResult:
    found = search_customers(ctx.state, payload.query)
    return CommandResult(reply={"customers": [c.model_dump(by_alias=True) for c in found]})


@command("customer:export", Capability.ADMIN_ONLY, EmptyPayload, mutates=False)
def export_opted_in(ctx: CommandContext, payload: EmptyPayload) -> CommandResult:
    """Marketing list: customers who opted in."""
    return CommandResult(reply={"csv": opted_in_csv(ctx.state)})


@command("customer:getHistory", Capability.ADMIN_ONLY, CustomerHistoryPayload, mutates=False)
def get_history(ctx: CommandContext, payload: CustomerHistoryPayload) -> CommandResult:
    return CommandResult(reply={"history": order_history(ctx.state, payload.customer_id)})
