"""Settings, categories and menu items."""

import logging

from livepos.core.clock import new_id, to_iso
from livepos.core.errors import NotFoundError
from livepos.core.rbac import Capability
from livepos.schemas.commands import (
    CategoryCreatePayload,
    CategoryUpdatePayload,
    IdPayload,
    MenuCreatePayload,
    MenuUpdatePayload,
    SettingsUpdatePayload,
)
from livepos.schemas.state import Category, MenuItem
from livepos.services.registry import CommandContext, CommandResult, command

logger = logging.getLogger(__name__)


@command("settings:update", Capability.ADMIN_ONLY, SettingsUpdatePayload)
def update_settings(ctx: CommandContext, payload: SettingsUpdatePayload) -> CommandResult:
    changes = payload.model_dump(exclude_unset=True, exclude_none=True)
    settings = ctx.state.settings
    for key, value in changes.items():
        setattr(settings, key, value)
    return CommandResult(audit=payload.model_dump(by_alias=True, exclude_unset=True))


# ----- categories -----

def _get_category(ctx: CommandContext, category_id: str) -> Category:
    category = next((c for c in ctx.state.categories if c.id == category_id), None)
    if category is None:
        raise NotFoundError("Category", category_id)
    return category


@command("category:create", Capability.ADMIN_ONLY, CategoryCreatePayload)
def create_category(ctx: CommandContext, payload: CategoryCreatePayload) -> CommandResult:
    category = Category(
        id=new_id(),
        name=payload.name,
        sort_order=len(ctx.state.categories) + 1,
    )
    ctx.state.categories.append(category)
    data = category.model_dump(by_alias=True)
    return CommandResult(reply={"category": data}, audit={"category": data})


@command("category:update", Capability.ADMIN_ONLY, CategoryUpdatePayload)
def update_category(ctx: CommandContext, payload: CategoryUpdatePayload) -> CommandResult:
    category = _get_category(ctx, payload.id)
    if payload.name is not None:
        category.name = payload.name
    if payload.sort_order is not None:
        category.sort_order = payload.sort_order
    return CommandResult(audit=payload.model_dump(by_alias=True, exclude_unset=True))


@command("category:delete", Capability.ADMIN_ONLY, IdPayload)
def delete_category(ctx: CommandContext, payload: IdPayload) -> CommandResult:
    """Remove a category and detach the menu items that pointed at it."""
    category = _get_category(ctx, payload.id)
    ctx.state.categories.remove(category)
    detached = 0
    for item in ctx.state.menu:
        if item.category_id == category.id:
            item.category_id = ""
            detached += 1
    return CommandResult(audit={"id": category.id, "detachedItems": detached})


# ----- menu -----

def _get_menu_item(ctx: CommandContext, item_id: str) -> MenuItem:
    item = ctx.state.find_menu_item(item_id)
    if item is None:
        raise NotFoundError("Menu item", item_id)
    return item


@command("menu:create", Capability.ADMIN_ONLY, MenuCreatePayload)
def create_menu_item(ctx: CommandContext, payload: MenuCreatePayload) -> CommandResult:
    if payload.category_id:
        _get_category(ctx, payload.category_id)
    item = MenuItem(
        id=new_id(),
        name=payload.name,
        price=payload.price,
        category_id=payload.category_id,
        image_url=payload.image_url,
        description=payload.description,
        created_at=to_iso(ctx.now),
    )
    ctx.state.menu.append(item)
    data = item.model_dump(by_alias=True)
    return CommandResult(reply={"item": data}, audit={"item": data})


@command("menu:update", Capability.ADMIN_ONLY, MenuUpdatePayload)
def update_menu_item(ctx: CommandContext, payload: MenuUpdatePayload) -> CommandResult:
    """Edit a menu item.

    Existing orders keep the name and price they captured; only future
    orders see the change.
    """
    item = _get_menu_item(ctx, payload.id)
    if payload.category_id:
        _get_category(ctx, payload.category_id)

    changes = payload.model_dump(exclude_unset=True, exclude_none=True, exclude={"id"})
    for key, value in changes.items():
        setattr(item, key, value)
    return CommandResult(
        reply={"item": item.model_dump(by_alias=True)},
        audit=payload.model_dump(by_alias=True, exclude_unset=True),
    )


@command("menu:delete", Capability.ADMIN_ONLY, IdPayload)
def delete_menu_item(ctx: CommandContext, payload: IdPayload) -> CommandResult:
    item = _get_menu_item(ctx, payload.id)
    ctx.state.menu.remove(item)
    return CommandResult(audit={"id": item.id, "name": item.name})
