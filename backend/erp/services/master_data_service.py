# Overview: Master data per organization; item groups, categories, sales channels and items.

from __future__ import annotations

from io import BytesIO

from PIL import Image, UnidentifiedImageError

from ..extensions import db
from ..models import Category, Item, ItemCost, ItemGroup, ItemPrice, Organization, SalesChannel
from ..models.catalog import MASTER_STATUS_ACTIVE, MASTER_STATUS_INACTIVE
from ..validation import ConflictError, ValidationError, require_amount, require_choice, require_length
from .session_service import SessionContext
from .tenant_service import require_organization, require_record_in_org, scoped_query
from erp.time_utils import utcnow


STATUSES = (MASTER_STATUS_ACTIVE, MASTER_STATUS_INACTIVE)

# Simple name-keyed lookup tables share one create/update path.
LOOKUP_MODELS = {
    "item-groups": ItemGroup,
    "categories": Category,
    "sales-channels": SalesChannel,
}

LOOKUP_FIELDS = {
    ItemGroup: ("classification", "sub_classification"),
    Category: ("description",),
    SalesChannel: ("description",),
}

# Item display picture upload limits; content type -> format Pillow reports.
DISPLAY_PICTURE_FORMATS = {
    "image/jpeg": "JPEG",
    "image/png": "PNG",
    "image/webp": "WEBP",
}
DISPLAY_PICTURE_MAX_BYTES = 5 * 1024 * 1024
DISPLAY_PICTURE_MIN_PX = 800
DISPLAY_PICTURE_MAX_PX = 3000


def _lookup_model(kind: str):
    model = LOOKUP_MODELS.get(kind)
    if model is None:
        raise ValidationError(f"Unknown master data type: {kind}")
    return model


def _ensure_unique_name(model, org_id: int, name: str, exclude_id: int | None = None) -> None:
    query = db.session.query(model.id).filter(model.org_id == org_id, db.func.lower(model.name) == name.lower())
    if exclude_id is not None:
        query = query.filter(model.id != exclude_id)
    if query.first():
        raise ConflictError(f"{name} already exists")


def create_lookup(ctx: SessionContext, kind: str, data: dict):
    model = _lookup_model(kind)
    org = require_organization(ctx)
    name = require_length("name", data.get("name"), min_len=1, max_len=100)
    _ensure_unique_name(model, org.id, name)

    record = model(
        org_id=org.id,
        name=name,
        status=require_choice("status", data.get("status", MASTER_STATUS_ACTIVE), STATUSES),
        created_by=ctx.actor,
    )
    for field in LOOKUP_FIELDS[model]:
        setattr(record, field, data.get(field))
    db.session.add(record)
    db.session.flush()
    return record


def update_lookup(ctx: SessionContext, kind: str, record_id: int, data: dict):
    model = _lookup_model(kind)
    record = require_record_in_org(ctx, model, record_id, label=model.__name__)
    if "name" in data:
        name = require_length("name", data.get("name"), min_len=1, max_len=100)
        _ensure_unique_name(model, record.org_id, name, exclude_id=record.id)
        record.name = name
    if "status" in data:
        record.status = require_choice("status", data.get("status"), STATUSES)
    for field in LOOKUP_FIELDS[model]:
        if field in data:
            setattr(record, field, data.get(field))
    db.session.flush()
    return record


def list_lookup(ctx: SessionContext, kind: str, *, status: str | None = None) -> list:
    model = _lookup_model(kind)
    query = scoped_query(ctx, model)
    if status:
        query = query.filter(model.status == status)
    return query.order_by(model.name).all()


def _optional_lookup(ctx: SessionContext, model, record_id):
    if record_id in (None, ""):
        return None
    return require_record_in_org(ctx, model, int(record_id), label=model.__name__).id


def _build_costs(ctx: SessionContext, rows) -> list[ItemCost]:
    costs = []
    seen = set()
    for idx, row in enumerate(rows or []):
        supplier_id = row.get("supplier_id")
        if not supplier_id or not db.session.get(Organization, supplier_id):
            raise ValidationError(f"costs[{idx}].supplier_id is not a known organization")
        if supplier_id in seen:
            raise ValidationError(f"costs[{idx}]: supplier listed twice")
        seen.add(supplier_id)
        costs.append(ItemCost(
            supplier_org_id=supplier_id,
            cost_cents=require_amount(f"costs[{idx}].cost_cents", row.get("cost_cents")),
        ))
    return costs


def _build_prices(ctx: SessionContext, rows) -> list[ItemPrice]:
    prices = []
    seen = set()
    for idx, row in enumerate(rows or []):
        channel_id = _optional_lookup(ctx, SalesChannel, row.get("sales_channel_id"))
        if channel_id is None:
            raise ValidationError(f"prices[{idx}].sales_channel_id is required")
        if channel_id in seen:
            raise ValidationError(f"prices[{idx}]: sales channel listed twice")
        seen.add(channel_id)
        prices.append(ItemPrice(
            sales_channel_id=channel_id,
            price_cents=require_amount(f"prices[{idx}].price_cents", row.get("price_cents")),
        ))
    return prices


def _apply_item_fields(ctx: SessionContext, item: Item, data: dict, *, partial: bool) -> None:
    if not partial or "description" in data:
        item.description = require_length("description", data.get("description"), min_len=1, max_len=255)
    if "item_group_id" in data:
        item.item_group_id = _optional_lookup(ctx, ItemGroup, data.get("item_group_id"))
    if "category_id" in data:
        item.category_id = _optional_lookup(ctx, Category, data.get("category_id"))
    for field in ("classification", "sub_classification", "weight_uom"):
        if field in data:
            setattr(item, field, data.get(field))
    if "uom" in data or not partial:
        item.uom = require_length("uom", data.get("uom") or "EA", min_len=1, max_len=16)
    if "weight" in data:
        weight = data.get("weight")
        item.weight = None if weight is None else require_amount("weight", weight)
    if "gst_bps" in data:
        gst = require_amount("gst_bps", data.get("gst_bps"))
        if gst > 10000:
            raise ValidationError("gst_bps cannot exceed 10000")
        item.gst_bps = gst
    if "status" in data:
        item.status = require_choice("status", data.get("status"), STATUSES)


def create_item(ctx: SessionContext, data: dict) -> Item:
    """
    Create an item with its supplier costs and channel prices.

    item_code is unique per organization.
    """
    org = require_organization(ctx)
    code = require_length("item_code", data.get("item_code"), min_len=1, max_len=32).upper()
    if db.session.query(Item.id).filter_by(org_id=org.id, item_code=code).first():
        raise ConflictError(f"Item {code} already exists")

    item = Item(org_id=org.id, item_code=code, created_by=ctx.actor, status=MASTER_STATUS_ACTIVE)
    _apply_item_fields(ctx, item, data, partial=False)
    item.costs = _build_costs(ctx, data.get("costs"))
    item.prices = _build_prices(ctx, data.get("prices"))
    db.session.add(item)
    db.session.flush()
    return item


def update_item(ctx: SessionContext, item_id: int, data: dict) -> Item:
    """Update an item. costs/prices, when present, replace the existing rows."""
    item = get_item(ctx, item_id)
    if "item_code" in data and str(data["item_code"]).upper() != item.item_code:
        raise ValidationError("Item code cannot be changed")

    _apply_item_fields(ctx, item, data, partial=True)
    if "costs" in data:
        item.costs = []
        db.session.flush()
        item.costs = _build_costs(ctx, data.get("costs"))
    if "prices" in data:
        item.prices = []
        db.session.flush()
        item.prices = _build_prices(ctx, data.get("prices"))
    item.updated_by = ctx.actor
    item.updated_at = utcnow()
    db.session.flush()
    return item


def get_item(ctx: SessionContext, item_id: int) -> Item:
    return require_record_in_org(ctx, Item, item_id, label="Item")


def list_items(ctx: SessionContext, *, search: str | None = None, status: str | None = None) -> list[Item]:
    query = scoped_query(ctx, Item)
    if status:
        query = query.filter(Item.status == status)
    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(db.or_(Item.item_code.ilike(pattern), Item.description.ilike(pattern)))
    return query.order_by(Item.item_code).all()


def supplier_cost_cents(item: Item, supplier_org_id: int) -> int | None:
    for cost in item.costs:
        if cost.supplier_org_id == supplier_org_id:
            return cost.cost_cents
    return None


def validate_display_picture(content_type: str | None, data: bytes) -> tuple[int, int]:
    """
    Check an item display picture before it is uploaded.

    Accepts JPEG, PNG or WEBP up to 5MB whose sides are between 800 and 3000
    pixels. The declared content type must match what the bytes decode as.
    Returns (width, height); raises ValidationError otherwise.
    """
    expected_format = DISPLAY_PICTURE_FORMATS.get((content_type or "").split(";")[0].strip().lower())
    if expected_format is None:
        raise ValidationError(
            "Invalid file format. Please use JPEG, PNG, or WEBP.",
            details={"file": "Unsupported content type"},
        )
    if len(data) > DISPLAY_PICTURE_MAX_BYTES:
        raise ValidationError("File size exceeds 5MB limit.", details={"file": "Too large"})

    try:
        with Image.open(BytesIO(data)) as image:
            actual_format = image.format
            width, height = image.size
    except (UnidentifiedImageError, Image.DecompressionBombError) as exc:
        raise ValidationError(
            "Unable to validate image dimensions.",
            details={"file": "Not a readable image"},
        ) from exc

    if actual_format != expected_format:
        raise ValidationError(
            f"File content is {actual_format}, not {expected_format}",
            details={"file": "Content does not match type"},
        )
    if width < DISPLAY_PICTURE_MIN_PX or height < DISPLAY_PICTURE_MIN_PX:
        raise ValidationError(
            f"Image resolution must be at least {DISPLAY_PICTURE_MIN_PX}x{DISPLAY_PICTURE_MIN_PX} pixels.",
            details={"file": f"{width}x{height} is too small"},
        )
    if width > DISPLAY_PICTURE_MAX_PX or height > DISPLAY_PICTURE_MAX_PX:
        raise ValidationError(
            f"Image resolution must not exceed {DISPLAY_PICTURE_MAX_PX}x{DISPLAY_PICTURE_MAX_PX} pixels.",
            details={"file": f"{width}x{height} is too large"},
        )
    return width, height
