"""
Record normalization for the storage schema.

Every function takes one upstream record (or one CSV export row) and returns
the item written to the key-value store, or None when the record cannot be
mapped at all. Missing or falsy fields are replaced by fixed defaults so that
stored items always have the same shape.
"""

import hashlib
import json
import logging
import math
import re
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional

from .models import utc_now_iso

logger = logging.getLogger(__name__)

NormalizedRecord = Dict[str, Any]
Normalizer = Callable[[Dict[str, Any]], Optional[NormalizedRecord]]
# (row, position of the row in its file)
RowTransform = Callable[[Dict[str, Any], int], Optional[NormalizedRecord]]

_LEADING_NUMBER = re.compile(r"^\s*[-+]?(\d+(\.\d*)?|\.\d+)([eE][-+]?\d+)?")

# Fields that identify a record when the upstream id is missing
IDENTITY_FIELDS = {
    "orders": ("name", "order_number", "email", "created_at"),
    "products": ("handle", "title", "vendor", "created_at"),
    "customers": ("email", "phone", "first_name", "last_name", "created_at"),
}

# Names the fields of a CSV row record that hold defaults rather than row data.
# Deduplication fills them from other rows and strips the key.
DEFAULTED_FIELDS = "_defaulted"

_TIMESTAMP_FORMATS = (
    "%Y-%m-%dT%H:%M:%S.%f%z",
    "%Y-%m-%dT%H:%M:%S%z",
    "%Y-%m-%d %H:%M:%S %z",
    "%Y-%m-%d %H:%M:%S%z",
    "%Y-%m-%dT%H:%M:%S",
    "%Y-%m-%d %H:%M:%S",
)
_EARLIEST = datetime.min.replace(tzinfo=timezone.utc)


# ---------------------------------------------------------
#  Field helpers
# ---------------------------------------------------------


def _digest(*parts: Any) -> str:
    canonical = json.dumps(parts, sort_keys=True, default=str, separators=(",", ":"))
    return hashlib.sha1(canonical.encode("utf-8")).hexdigest()[:16]


def _or(value: Any, default: Any) -> Any:
    """Return default when value is missing or falsy."""
    return value if value else default


def _str_or_none(value: Any) -> Optional[str]:
    return str(value) if value else None


def _flag(value: Any, default: bool) -> bool:
    return default if value is None else bool(value)


def _dicts(value: Any) -> List[Dict[str, Any]]:
    if not isinstance(value, list):
        return []
    return [v for v in value if isinstance(v, dict)]


def _tags(value: Any) -> List[str]:
    if not value:
        return []
    if isinstance(value, list):
        return [str(t).strip() for t in value if str(t).strip()]
    return [t.strip() for t in str(value).split(",") if t.strip()]


def _date_part(timestamp: str) -> str:
    # API timestamps use "T", CSV exports a space
    return timestamp.split("T")[0].split(" ")[0]


def parse_timestamp(value: Any) -> Optional[datetime]:
    """
    Parse an API or CSV export timestamp into an aware datetime.

    Accepts ``2024-03-01T10:00:00Z``, ``2024-03-01T10:00:00.000+05:30`` and
    ``2024-03-01 10:00:00 +0530``. Values without an offset are taken as UTC.
    Returns None for anything else.
    """
    text = str(value or "").strip()
    if not text:
        return None
    for fmt in _TIMESTAMP_FORMATS:
        try:
            parsed = datetime.strptime(text, fmt)
        except ValueError:
            continue
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    return None


def _json_list(row: Dict[str, Any], column: str) -> List[Any]:
    # only values that look like a JSON array are parsed
    text = str(row.get(column) or "").strip()
    if not text.startswith("["):
        return []
    try:
        value = json.loads(text)
    except ValueError as e:
        logger.warning(f"Could not parse {column} column as JSON: {e}")
        return []
    return value if isinstance(value, list) else []


def _strip_quote(value: Any) -> str:
    text = str(value or "").strip()
    return text[1:] if text.startswith("'") else text


def parse_money(value: Any) -> float:
    """Best-effort float parse; unparseable input becomes 0.0."""
    if value is None or value == "":
        return 0.0
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        number = float(value)
    else:
        match = _LEADING_NUMBER.match(str(value))
        if not match:
            return 0.0
        number = float(match.group(0))
    return number if math.isfinite(number) else 0.0


def format_money(value: Any) -> str:
    return f"{parse_money(value):.2f}"


def _parse_int(value: Any, default: int) -> int:
    if value is None or value == "":
        return default
    try:
        return int(float(str(value).strip()))
    except ValueError:
        return default


def fallback_id(resource: str, record: Dict[str, Any]) -> str:
    """
    Deterministic identifier for a record without an upstream id.

    The same input always maps to the same id, so repeated syncs overwrite
    the stored item instead of duplicating it.
    """
    fields = IDENTITY_FIELDS.get(resource, ())
    identity = {f: record.get(f) for f in fields if record.get(f)}
    return f"unknown-{_digest(resource, identity or record)}"


def _record_id(resource: str, record: Dict[str, Any]) -> str:
    value = record.get("id")
    return str(value) if value else fallback_id(resource, record)


def _nested_id(prefix: str, element: Dict[str, Any], parent_id: str, position: int) -> str:
    value = element.get("id")
    return str(value) if value else f"{prefix}{_digest(parent_id, position, element)}"


def _address(
    address: Dict[str, Any], parent_id: Optional[str] = None, position: int = 0
) -> Dict[str, Any]:
    mapped = {
        "address1": _or(address.get("address1"), ""),
        "address2": _or(address.get("address2"), ""),
        "city": _or(address.get("city"), ""),
        "province": _or(address.get("province"), ""),
        "country": _or(address.get("country"), ""),
        "zip": _or(address.get("zip"), ""),
        "name": _or(address.get("name"), ""),
        "company": _or(address.get("company"), ""),
        "phone": _or(address.get("phone"), ""),
    }
    if parent_id is not None:
        mapped["id"] = _nested_id("addr-", address, parent_id, position)
        mapped["default"] = bool(address.get("default"))
    return mapped


# ---------------------------------------------------------
#  API records
# ---------------------------------------------------------


def normalize_order(order: Dict[str, Any]) -> Optional[NormalizedRecord]:
    """Map a Shopify order to the stored order item."""
    try:
        order_id = _record_id("orders", order)
        now = utc_now_iso()
        created_at = _or(order.get("created_at"), now)
        customer = order.get("customer")

        return {
            "id": order_id,
            "name": _or(order.get("name"), f"Order #{order.get('id') or 'Unknown'}"),
            "status": _or(order.get("financial_status"), "unknown"),
            "fulfillment_status": _or(order.get("fulfillment_status"), "unfulfilled"),
            "date": _date_part(created_at),
            "created_at": created_at,
            "updated_at": _or(order.get("updated_at"), now),
            "total": str(_or(order.get("total_price"), "0.00")),
            "subtotal": str(_or(order.get("subtotal_price"), "0.00")),
            "tax": str(_or(order.get("total_tax"), "0.00")),
            "currency": _or(order.get("currency"), "USD"),
            "customer": (
                {
                    "id": _or(_str_or_none(customer.get("id")), "unknown"),
                    "name": f"{customer.get('first_name') or ''} "
                    f"{customer.get('last_name') or ''}".strip()
                    or "Unknown",
                    "email": _or(customer.get("email"), ""),
                }
                if isinstance(customer, dict) and customer
                else None
            ),
            "line_items": [
                {
                    "id": _nested_id("item-", item, order_id, position),
                    "product_id": _str_or_none(item.get("product_id")),
                    "variant_id": _str_or_none(item.get("variant_id")),
                    "title": _or(item.get("title"), "Unknown Product"),
                    "quantity": _or(item.get("quantity"), 1),
                    "price": str(_or(item.get("price"), "0.00")),
                    "sku": _or(item.get("sku"), ""),
                    "grams": _or(item.get("grams"), 0),
                }
                for position, item in enumerate(_dicts(order.get("line_items")))
            ],
            "shipping_address": (
                _address(order["shipping_address"])
                if isinstance(order.get("shipping_address"), dict)
                else None
            ),
            "billing_address": (
                _address(order["billing_address"])
                if isinstance(order.get("billing_address"), dict)
                else None
            ),
            "tags": _tags(order.get("tags")),
            "discount_codes": _dicts(order.get("discount_codes")),
            "note": _or(order.get("note"), ""),
            "cancelled_at": _or(order.get("cancelled_at"), None),
            "processed_at": _or(order.get("processed_at"), None),
            "synced_at": now,
        }
    except Exception as e:
        logger.warning(f"Could not normalize order {_safe_id(order)}: {e}")
        return None


def normalize_product(product: Dict[str, Any]) -> Optional[NormalizedRecord]:
    """Map a Shopify product, with variants, options and images."""
    try:
        product_id = _record_id("products", product)
        now = utc_now_iso()

        return {
            "id": product_id,
            "title": _or(product.get("title"), "Unnamed Product"),
            "handle": _or(product.get("handle"), ""),
            "description": _or(product.get("body_html"), ""),
            "created_at": _or(product.get("created_at"), now),
            "updated_at": _or(product.get("updated_at"), now),
            "type": _or(product.get("product_type"), ""),
            "vendor": _or(product.get("vendor"), ""),
            "status": _or(product.get("status"), "active"),
            "published_at": _or(product.get("published_at"), None),
            "tags": _tags(product.get("tags")),
            "variants": [
                {
                    "id": _nested_id("var-", variant, product_id, position),
                    "title": _or(variant.get("title"), ""),
                    "price": str(_or(variant.get("price"), "0.00")),
                    "compare_at_price": _or(variant.get("compare_at_price"), None),
                    "sku": _or(variant.get("sku"), ""),
                    "barcode": _or(variant.get("barcode"), ""),
                    "inventory": _or(variant.get("inventory_quantity"), 0),
                    "position": _or(variant.get("position"), 1),
                    "weight": _or(variant.get("weight"), 0),
                    "weight_unit": _or(variant.get("weight_unit"), "kg"),
                    "requires_shipping": _flag(variant.get("requires_shipping"), True),
                    "taxable": _flag(variant.get("taxable"), True),
                    "image_id": _str_or_none(variant.get("image_id")),
                    "option1": _or(variant.get("option1"), None),
                    "option2": _or(variant.get("option2"), None),
                    "option3": _or(variant.get("option3"), None),
                }
                for position, variant in enumerate(_dicts(product.get("variants")))
            ],
            "options": [
                {
                    "id": _nested_id("opt-", option, product_id, position),
                    "name": _or(option.get("name"), ""),
                    "position": _or(option.get("position"), 1),
                    "values": (
                        option["values"] if isinstance(option.get("values"), list) else []
                    ),
                }
                for position, option in enumerate(_dicts(product.get("options")))
            ],
            "images": [
                {
                    "id": _nested_id("img-", image, product_id, position),
                    "position": _or(image.get("position"), 1),
                    "src": _or(image.get("src"), ""),
                    "alt": _or(image.get("alt"), ""),
                    "width": _or(image.get("width"), 0),
                    "height": _or(image.get("height"), 0),
                    "variant_ids": [
                        str(v) for v in image.get("variant_ids") or [] if v is not None
                    ],
                }
                for position, image in enumerate(_dicts(product.get("images")))
            ],
            "metafields": _or(product.get("metafields"), []),
            "inventory_item_id": _str_or_none(product.get("inventory_item_id")),
            "synced_at": now,
        }
    except Exception as e:
        logger.warning(f"Could not normalize product {_safe_id(product)}: {e}")
        return None


def normalize_customer(
    customer: Dict[str, Any], store_domain: Optional[str] = None
) -> Optional[NormalizedRecord]:
    """Map a Shopify customer and its addresses."""
    try:
        customer_id = _record_id("customers", customer)
        now = utc_now_iso()

        return {
            "id": customer_id,
            "email": _or(customer.get("email"), ""),
            "first_name": _or(customer.get("first_name"), ""),
            "last_name": _or(customer.get("last_name"), ""),
            "created_at": _or(customer.get("created_at"), now),
            "updated_at": _or(customer.get("updated_at"), now),
            "orders_count": _or(customer.get("orders_count"), 0),
            "total_spent": str(_or(customer.get("total_spent"), "0.00")),
            "phone": _or(customer.get("phone"), ""),
            "addresses": [
                _address(address, customer_id, position)
                for position, address in enumerate(_dicts(customer.get("addresses")))
            ],
            "tags": _tags(customer.get("tags")),
            "tax_exempt": bool(customer.get("tax_exempt")),
            "verified_email": bool(customer.get("verified_email")),
            "state": _or(customer.get("state"), "enabled"),
            "note": _or(customer.get("note"), ""),
            "last_order_id": _str_or_none(customer.get("last_order_id")),
            "last_order_date": _or(customer.get("last_order_date"), None),
            "accepts_marketing": bool(customer.get("accepts_marketing")),
            "locale": _or(customer.get("locale"), "en"),
            "currency": _or(customer.get("currency"), "USD"),
            "admin_url": (
                f"https://{store_domain}/admin/customers/{customer_id}"
                if store_domain
                else None
            ),
            "synced_at": now,
        }
    except Exception as e:
        logger.warning(f"Could not normalize customer {_safe_id(customer)}: {e}")
        return None


def _safe_id(record: Any) -> str:
    if isinstance(record, dict):
        return str(record.get("id") or "<no id>")
    return f"<{type(record).__name__}>"


# ---------------------------------------------------------
#  CSV export rows
# ---------------------------------------------------------


def _first(row: Dict[str, Any], *columns: str) -> str:
    for column in columns:
        value = row.get(column)
        if value:
            return str(value)
    return ""


def _row_address(row: Dict[str, Any], kind: str) -> Optional[Dict[str, str]]:
    address = {
        "name": _first(row, f"{kind} Name"),
        "company": _first(row, f"{kind} Company"),
        "address1": _first(row, f"{kind} Street", f"{kind} Address1"),
        "address2": _first(row, f"{kind} Address2"),
        "city": _first(row, f"{kind} City"),
        "province": _first(row, f"{kind} Province", f"{kind} Region"),
        "country": _first(row, f"{kind} Country"),
        "zip": _first(row, f"{kind} Zip", f"{kind} Postal Code"),
        "phone": _first(row, f"{kind} Phone"),
    }
    return address if any(address.values()) else None


# Order fields and the export columns they are read from; a field whose
# columns are all blank in a row holds a default
_ORDER_ROW_SOURCES = {
    "name": ("Name",),
    "status": ("Financial Status", "Status"),
    "fulfillment_status": ("Fulfillment Status",),
    "date": ("Created at", "Created At"),
    "created_at": ("Created at", "Created At"),
    "updated_at": ("Updated at", "Updated At", "Created at", "Created At"),
    "total": ("Total", "Paid Amount"),
    "subtotal": ("Subtotal",),
    "tax": ("Taxes", "Tax"),
    "currency": ("Currency",),
    "customer": ("Customer ID", "Customer Id", "Shipping Name", "Billing Name"),
    "tags": ("Tags",),
    "discount_codes": ("Discount Codes",),
    "note": ("Notes",),
    "cancelled_at": ("Cancelled at",),
    "processed_at": ("Processed at",),
}


def transform_order_row(
    row: Dict[str, Any], position: int = 0
) -> Optional[NormalizedRecord]:
    """
    Map one row of a Shopify order export CSV.

    Exports repeat an order once per line item, and the repeated rows often
    leave the order columns blank. ``position`` (the row's place in its file)
    keeps line items without a ``Lineitem id`` apart when two rows carry the
    same product.

    Returns None when the row has no Order ID, Name or Id column value.
    """
    try:
        order_id = _strip_quote(_first(row, "Order ID", "Name", "Id"))
        if not order_id:
            logger.warning("Skipping order row with missing Order ID")
            return None

        line_items: List[Dict[str, Any]] = []
        if row.get("Lineitem name"):
            item = {
                "product_id": _first(row, "Lineitem product id") or None,
                "variant_id": _first(row, "Lineitem variant id") or None,
                "title": _first(row, "Lineitem name") or "Unknown Product",
                "quantity": _parse_int(row.get("Lineitem quantity"), 1),
                "price": _first(row, "Lineitem price") or "0.00",
                "sku": _first(row, "Lineitem sku"),
                "requires_shipping": row.get("Lineitem requires shipping") == "true",
            }
            item["id"] = _first(row, "Lineitem id") or _nested_id(
                "item-", item, order_id, position
            )
            line_items.append(item)

        now = utc_now_iso()
        created_at = _first(row, "Created at", "Created At") or now

        record = {
            "id": order_id,
            "name": _first(row, "Name") or f"Order #{order_id}",
            "status": _first(row, "Financial Status", "Status") or "unknown",
            "fulfillment_status": _first(row, "Fulfillment Status") or "unfulfilled",
            "date": _date_part(created_at),
            "created_at": created_at,
            "updated_at": _first(row, "Updated at", "Updated At") or created_at,
            "total": format_money(_first(row, "Total", "Paid Amount")),
            "subtotal": format_money(_first(row, "Subtotal")),
            "tax": format_money(_first(row, "Taxes", "Tax")),
            "currency": _first(row, "Currency") or "INR",
            "customer": {
                "id": _first(row, "Customer ID", "Customer Id") or "unknown",
                "name": _first(row, "Shipping Name", "Billing Name").strip()
                or "Unknown",
                "email": _first(row, "Email"),
            },
            "line_items": line_items,
            "shipping_address": _row_address(row, "Shipping"),
            "billing_address": _row_address(row, "Billing"),
            "tags": _tags(row.get("Tags")),
            "discount_codes": [{"code": code} for code in _tags(row.get("Discount Codes"))],
            "note": _first(row, "Notes"),
            "cancelled_at": _first(row, "Cancelled at") or None,
            "processed_at": _first(row, "Processed at") or None,
            "synced_at": now,
            "import_source": "csv_export",
        }
        record[DEFAULTED_FIELDS] = [
            field
            for field, columns in _ORDER_ROW_SOURCES.items()
            if not _first(row, *columns)
        ] + [
            field
            for field in ("shipping_address", "billing_address")
            if record[field] is None
        ]
        return record
    except Exception as e:
        logger.error(f"Error transforming order row: {e}")
        return None


def transform_customer_row(
    row: Dict[str, Any], position: int = 0
) -> Optional[NormalizedRecord]:
    """Map one row of a Shopify customer export CSV."""
    try:
        customer_id = _strip_quote(_first(row, "Customer ID"))
        if not customer_id:
            logger.warning("Skipping customer row with missing Customer ID")
            return None

        default_address = {
            "company": _first(row, "Default Address Company"),
            "address1": _first(row, "Default Address Address1"),
            "address2": _first(row, "Default Address Address2"),
            "city": _first(row, "Default Address City"),
            "province": _first(row, "Default Address Province Code"),
            "country": _first(row, "Default Address Country Code"),
            "zip": _first(row, "Default Address Zip"),
            "phone": _strip_quote(_first(row, "Default Address Phone")),
        }
        addresses = []
        if any(default_address.values()):
            addresses.append(
                {
                    **default_address,
                    "id": _nested_id("addr-", default_address, customer_id, 0),
                    "default": True,
                }
            )

        now = utc_now_iso()
        return {
            "id": customer_id,
            "email": _first(row, "Email"),
            "first_name": _first(row, "First Name"),
            "last_name": _first(row, "Last Name"),
            "orders_count": _parse_int(row.get("Total Orders"), 0),
            "total_spent": format_money(row.get("Total Spent")),
            "currency": "INR",
            "state": "enabled",
            "verified_email": True,
            "tax_exempt": row.get("Tax Exempt") == "yes",
            "phone": _strip_quote(_first(row, "Phone")),
            # customer exports carry no timestamps
            "created_at": now,
            "updated_at": now,
            "addresses": addresses,
            "tags": _tags(row.get("Tags")),
            "note": _first(row, "Note"),
            "accepts_marketing": row.get("Accepts Email Marketing") == "yes",
            "last_order_id": None,
            "last_order_date": None,
            "synced_at": now,
            "import_source": "csv_export",
            DEFAULTED_FIELDS: ["created_at", "updated_at"],
        }
    except Exception as e:
        logger.error(f"Error transforming customer row: {e}")
        return None


def transform_product_row(
    row: Dict[str, Any], position: int = 0
) -> Optional[NormalizedRecord]:
    """
    Map one row of a product export CSV.

    Columns use the API field names. ``variants``, ``options`` and ``images``
    hold JSON arrays; any other value in them is read as an empty list.
    """
    product_id = _strip_quote(_first(row, "id", "ID"))
    if not product_id:
        logger.warning("Skipping product row with missing id")
        return None

    record = normalize_product(
        {
            "id": product_id,
            "title": _first(row, "title"),
            "handle": _first(row, "handle"),
            "body_html": _first(row, "body_html"),
            "created_at": _first(row, "created_at"),
            "updated_at": _first(row, "updated_at"),
            "product_type": _first(row, "product_type"),
            "vendor": _first(row, "vendor"),
            "status": _first(row, "status"),
            "published_at": _first(row, "published_at"),
            "tags": _first(row, "tags"),
            "variants": _json_list(row, "variants"),
            "options": _json_list(row, "options"),
            "images": _json_list(row, "images"),
        }
    )
    if record is None:
        return None

    record["import_source"] = "csv_export"
    record[DEFAULTED_FIELDS] = [
        field for field in ("created_at", "updated_at") if not _first(row, field)
    ]
    return record


# ---------------------------------------------------------
#  Deduplication
# ---------------------------------------------------------


def deduplicate_records(records: Iterable[NormalizedRecord]) -> List[NormalizedRecord]:
    """
    Keep one record per id.

    A later duplicate replaces the kept record only when its updated_at (or
    created_at) is a later instant; timestamps are compared as parsed times,
    offsets included, and a timestamp the row did not carry ranks below every
    real one. On a tie the first record stays.

    Fields the kept record only holds defaults for are taken from a duplicate
    that has them, and line items of every duplicate are merged in, since
    order exports repeat the order once per line item.
    """
    kept: Dict[str, NormalizedRecord] = {}

    for record in records:
        record_id = record["id"]
        existing = kept.get(record_id)
        if existing is None:
            kept[record_id] = record
            continue

        winner, loser = existing, record
        if _recency(record) > _recency(existing):
            winner, loser = record, existing
        winner = _fill_defaults(winner, loser)

        if "line_items" in winner:
            seen = {item["id"] for item in winner["line_items"]}
            merged = list(winner["line_items"])
            for item in loser.get("line_items") or []:
                if item["id"] not in seen:
                    merged.append(item)
                    seen.add(item["id"])
            winner = {**winner, "line_items": merged}

        kept[record_id] = winner

    return [
        {k: v for k, v in record.items() if k != DEFAULTED_FIELDS}
        for record in kept.values()
    ]


def _fill_defaults(
    winner: NormalizedRecord, loser: NormalizedRecord
) -> NormalizedRecord:
    gaps = winner.get(DEFAULTED_FIELDS)
    if not gaps:
        return winner

    loser_gaps = set(loser.get(DEFAULTED_FIELDS) or ())
    filled = {
        field: loser[field]
        for field in gaps
        if field in loser and field not in loser_gaps
    }
    if not filled:
        return winner
    return {
        **winner,
        **filled,
        DEFAULTED_FIELDS: [field for field in gaps if field not in filled],
    }


def _recency(record: NormalizedRecord) -> datetime:
    gaps = record.get(DEFAULTED_FIELDS) or ()
    for field in ("updated_at", "created_at"):
        if field in gaps:
            continue
        parsed = parse_timestamp(record.get(field))
        if parsed is not None:
            return parsed
    return _EARLIEST


ROW_TRANSFORMS: Dict[str, RowTransform] = {
    "orders": transform_order_row,
    "customers": transform_customer_row,
    "products": transform_product_row,
}
