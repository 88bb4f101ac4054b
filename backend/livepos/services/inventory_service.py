"""Inventory items, stock queries and the per-field change log."""

import logging
from typing import Any, Dict, List, Optional

from pydantic.alias_generators import to_camel

from livepos.core.clock import new_id, to_iso
from livepos.core.errors import NotFoundError, ValidationError
from livepos.core.rbac import Capability
from livepos.schemas.commands import (
    EmptyPayload,
    IdPayload,
    InventoryCreatePayload,
    InventoryLogsPayload,
    InventorySearchPayload,
    InventoryUpdatePayload,
)
from livepos.schemas.state import InventoryItem, InventoryLog, State
from livepos.services.registry import CommandContext, CommandResult, command

logger = logging.getLogger(__name__)

MAX_INVENTORY_LOGS = 1000
LOGS_PAGE_SIZE = 100

TEXT_FIELDS = ("category", "supplier", "supplier_contact", "delivery_date", "delivery_time",
               "batch_number", "notes")


def _dump(item: InventoryItem) -> Dict[str, Any]:
    return item.model_dump(by_alias=True)


def _get_item(state: State, item_id: str) -> InventoryItem:
    item = next((i for i in state.inventory if i.id == item_id), None)
    if item is None:
        raise NotFoundError("Inventory item", item_id)
    return item


def _normalize_sku(state: State, sku: str, exclude_id: Optional[str] = None) -> str:
    sku = sku.strip().upper()
    if not sku:
        raise ValidationError("sku is required")
    if any(i.sku.upper() == sku and i.id != exclude_id for i in state.inventory):
        raise ValidationError(f'SKU "{sku}" already exists')
    return sku


def log_change(state: State, item_id: str, field: str, old_value: Any, new_value: Any,
               changed_by: str, changed_at: str) -> None:
    """Prepend a change record, keeping the newest ``MAX_INVENTORY_LOGS``."""
    state.inventory_logs.insert(0, InventoryLog(
        id=new_id(),
        item_id=item_id,
        field=field,
        old_value=old_value,
        new_value=new_value,
        changed_by=changed_by or "system",
        changed_at=changed_at,
    ))
    if len(state.inventory_logs) > MAX_INVENTORY_LOGS:
        del state.inventory_logs[MAX_INVENTORY_LOGS:]


def low_stock(state: State) -> List[InventoryItem]:
    """Items still in stock but at or under their threshold."""
    return [i for i in state.inventory
            if not i.is_archived and 0 < i.quantity <= i.min_threshold]


def out_of_stock(state: State) -> List[InventoryItem]:
    return [i for i in state.inventory if not i.is_archived and i.quantity == 0]


def search_inventory(state: State, query: str, include_archived: bool = False) -> List[InventoryItem]:
    term = (query or "").strip().lower()
    results = []
    for item in state.inventory:
        if item.is_archived and not include_archived:
            continue
        if term and not any(term in (value or "").lower()
                            for value in (item.name, item.sku, item.category, item.supplier)):
            continue
        results.append(item)
    return results


def inventory_metrics(state: State) -> Dict[str, Any]:
    active = [i for i in state.inventory if not i.is_archived]
    cost = sum(i.quantity * i.cost_price for i in active)
    retail = sum(i.quantity * i.selling_price for i in active)

    categories: Dict[str, Dict[str, float]] = {}
    suppliers: Dict[str, Dict[str, float]] = {}
    for item in active:
        cat = categories.setdefault(item.category or "Uncategorized", {"count": 0, "value": 0.0})
        cat["count"] += 1
        cat["value"] += item.quantity * item.cost_price
        sup = suppliers.setdefault(item.supplier or "Unknown",
                                   {"itemCount": 0, "totalQuantity": 0.0, "totalValue": 0.0})
        sup["itemCount"] += 1
        sup["totalQuantity"] += item.quantity
        sup["totalValue"] += item.quantity * item.cost_price

    return {
        "counts": {
            "total": len(active),
            "lowStock": len(low_stock(state)),
            "outOfStock": len(out_of_stock(state)),
            "archived": len(state.inventory) - len(active),
        },
        "values": {
            "cost": cost,
            "retail": retail,
            "profit": retail - cost,
            "marginPercent": round((retail - cost) / cost * 100, 2) if cost else 0,
        },
        "categories": categories,
        "suppliers": suppliers,
    }


@command("inventory:create", Capability.ADMIN_ONLY, InventoryCreatePayload)
def create_item(ctx: CommandContext, payload: InventoryCreatePayload) -> CommandResult:
    name = payload.name.strip()
    if not name:
        raise ValidationError("name is required")
    sku = _normalize_sku(ctx.state, payload.sku)
    now = to_iso(ctx.now)

    item = InventoryItem(
        id=new_id(),
        name=name,
        sku=sku,
        category=(payload.category or "").strip(),
        supplier=(payload.supplier or "").strip(),
        supplier_contact=(payload.supplier_contact or "").strip(),
        quantity=payload.quantity or 0,
        min_threshold=max(payload.min_threshold or 0, 0),
        cost_price=payload.cost_price or 0,
        selling_price=payload.selling_price or 0,
        delivery_date=payload.delivery_date or ctx.now.date().isoformat(),
        delivery_time=(payload.delivery_time or "").strip(),
        expiry_date=payload.expiry_date or None,
        batch_number=(payload.batch_number or "").strip(),
        notes=(payload.notes or "").strip(),
        created_at=now,
        updated_at=now,
    )
    ctx.state.inventory.append(item)
    log_change(ctx.state, item.id, "created", None, {"name": item.name, "sku": item.sku},
               ctx.caller.display_name, now)
    data = _dump(item)
    return CommandResult(reply={"item": data}, audit={"item": data})


@command("inventory:update", Capability.ADMIN_ONLY, InventoryUpdatePayload)
def update_item(ctx: CommandContext, payload: InventoryUpdatePayload) -> CommandResult:
    """Apply the sent fields and log every value that actually changed."""
    item = _get_item(ctx.state, payload.id)

    changes: Dict[str, Any] = {}
    if payload.name is not None:
        name = payload.name.strip()
        if not name:
            raise ValidationError("name is required")
        changes["name"] = name
    if payload.sku is not None:
        changes["sku"] = _normalize_sku(ctx.state, payload.sku, exclude_id=item.id)
    for field in ("quantity", "cost_price", "selling_price"):
        if payload.provided(field):
            changes[field] = getattr(payload, field) or 0
    if payload.provided("min_threshold"):
        changes["min_threshold"] = max(payload.min_threshold or 0, 0)
    if payload.provided("expiry_date"):
        changes["expiry_date"] = payload.expiry_date or None
    for field in TEXT_FIELDS:
        if payload.provided(field):
            changes[field] = (getattr(payload, field) or "").strip()

    now = to_iso(ctx.now)
    changed = []
    for field, value in changes.items():
        old_value = getattr(item, field)
        if old_value == value:
            continue
        setattr(item, field, value)
        log_change(ctx.state, item.id, to_camel(field), old_value, value, ctx.caller.display_name, now)
        changed.append(to_camel(field))
    item.updated_at = now
    return CommandResult(reply={"item": _dump(item)}, audit={"id": item.id, "fields": changed})


@command("inventory:delete", Capability.ADMIN_ONLY, IdPayload)
def delete_item(ctx: CommandContext, payload: IdPayload) -> CommandResult:
    item = _get_item(ctx.state, payload.id)
    ctx.state.inventory.remove(item)
    ctx.state.inventory_logs[:] = [log for log in ctx.state.inventory_logs if log.item_id != item.id]
    return CommandResult(audit={"id": item.id, "sku": item.sku})


@command("inventory:archive", Capability.ADMIN_ONLY, IdPayload)
def toggle_archive(ctx: CommandContext, payload: IdPayload) -> CommandResult:
    """Flip the archived flag."""
    item = _get_item(ctx.state, payload.id)
    now = to_iso(ctx.now)
    old_value = item.is_archived
    item.is_archived = not old_value
    item.updated_at = now
    log_change(ctx.state, item.id, "isArchived", old_value, item.is_archived,
               ctx.caller.display_name, now)
    return CommandResult(reply={"item": _dump(item)}, audit={"id": item.id, "archived": item.is_archived})


@command("inventory:search", Capability.STAFF_OR_ADMIN, InventorySearchPayload, mutates=False)
def search(ctx: CommandContext, payload: InventorySearchPayload) -> CommandResult:
    items = search_inventory(ctx.state, payload.query, payload.include_archived)
    return CommandResult(reply={"items": [_dump(i) for i in items]})


@command("inventory:lowStock", Capability.STAFF_OR_ADMIN, EmptyPayload, mutates=False)
def list_low_stock(ctx: CommandContext, payload: EmptyPayload) -> CommandResult:
    return CommandResult(reply={"items": [_dump(i) for i in low_stock(ctx.state)]})


@command("inventory:outOfStock", Capability.STAFF_OR_ADMIN, EmptyPayload, mutates=False)
def list_out_of_stock(ctx: CommandContext, payload: EmptyPayload) -> CommandResult:
    return CommandResult(reply={"items": [_dump(i) for i in out_of_stock(ctx.state)]})


@command("inventory:metrics", Capability.ADMIN_ONLY, EmptyPayload, mutates=False)
def metrics(ctx: CommandContext, payload: EmptyPayload) -> CommandResult:
    return CommandResult(reply={"metrics": inventory_metrics(ctx.state)})


@command("inventory:logs", Capability.ADMIN_ONLY, InventoryLogsPayload, mutates=False)
def change_logs(ctx: CommandContext, payload: InventoryLogsPayload) -> CommandResult:
    """Most recent change records, optionally for one item."""
    logs = ctx.state.inventory_logs
    if payload.item_id:
        logs = [log for log in logs if log.item_id == payload.item_id]
    return CommandResult(reply={"logs": [log.model_dump(by_alias=True) for log in logs[:LOGS_PAGE_SIZE]]})
