"""
Conversion between remote wire rows and domain entities.

Rows come from the hosted store with snake_case columns and JSON columns
(``address``, ``details``, ``items``, ``customer``) whose inner keys follow
whatever the writing client used. Every ``*_from_wire`` function is
tolerant: missing or mistyped fields fall back to defaults rather than
raising, so a partially-populated row still yields a complete entity.

Rows are wrapped in benedict for safe nested access: a keylist such as
``["address", "company"]`` returns the default when ``address`` is null,
a string, or absent.

``*_to_wire`` functions produce rows that the matching ``*_from_wire``
reads back into an equal entity.
"""

from typing import Any, Iterable, Mapping

from benedict import benedict

from invoice_sync.lib import logs
from invoice_sync.models.entities import (
    CompanyInfo,
    Customer,
    CustomerType,
    Document,
    DocumentStatus,
    DocumentType,
    LineItem,
    PaymentMethod,
    TemplatePreferences,
)
from invoice_sync.utils import add_days, days_between, utc_now_iso

LOG = logs.logger(__file__)

DEFAULT_VALID_DAYS = 30
# Rows written before subtotal/tax were stored only carry the total
LEGACY_TAX_RATE = 0.07


def _wrap(row: Any) -> benedict:
    """Wrap a wire row for keylist access; non-mappings become empty."""
    if not isinstance(row, Mapping):
        return benedict({}, keypath_separator=None)
    return benedict(dict(row), keypath_separator=None)


def _text(b: benedict, *path: str, default: str = "") -> str:
    value = b.get(list(path), None)
    if value is None:
        return default
    return str(value)


def _number(value: Any, default: float = 0.0) -> float:
    if value is None or isinstance(value, bool):
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def _optional_number(value: Any) -> float | None:
    return None if value is None else _number(value)


def _flag(b: benedict, *path: str, default: bool) -> bool:
    value = b.get(list(path), None)
    return default if value is None else bool(value)


def _terms(value: Any) -> list[str]:
    if not value:
        return []
    if isinstance(value, str):
        return value.split("\n")
    if isinstance(value, (list, tuple)):
        return [str(term) for term in value]
    return []


def _maybe(row: dict, key: str, value: Any) -> dict:
    if value:
        row[key] = value
    return row


# Customers


def customer_from_wire(row: Any) -> Customer:
    """
    Build a Customer from a ``customers`` row or an embedded customer object.

    The store keeps company and location inside the ``address`` JSON column;
    a top-level ``company`` is accepted from older rows. Wire type
    ``individual`` maps to PERSON.
    """
    b = _wrap(row)
    wire_type = _text(b, "type").lower()
    company = _text(b, "address", "company") or _text(b, "company")
    metadata = b.get(["metadata"], None)
    return Customer(
        id=_text(b, "id"),
        name=_text(b, "name"),
        company=company,
        location=_text(b, "address", "location"),
        phone=_text(b, "phone"),
        email=_text(b, "email"),
        type=CustomerType.PERSON
        if wire_type in ("individual", "person")
        else CustomerType.BUSINESS,
        metadata=dict(metadata) if isinstance(metadata, Mapping) else {},
    )


def customer_to_wire(customer: Customer, user_id: str | None = None) -> dict:
    """Build the ``customers`` row for a Customer."""
    row = {
        "name": customer.name,
        "address": {"company": customer.company, "location": customer.location},
        "phone": customer.phone,
        "email": customer.email,
        "type": "individual" if customer.type == CustomerType.PERSON else "business",
        "metadata": dict(customer.metadata),
    }
    _maybe(row, "id", customer.id)
    return _maybe(row, "user_id", user_id)


# Documents


def line_item_from_wire(row: Any) -> LineItem:
    b = _wrap(row)
    return LineItem(
        id=_text(b, "id"),
        description=_text(b, "description"),
        quantity=_number(b.get(["quantity"], None)),
        unit_price=_number(b.get(["unitPrice"], None) or b.get(["unit_price"], None)),
        total=_number(b.get(["total"], None)),
        tax=_optional_number(b.get(["tax"], None)),
        discount=_optional_number(b.get(["discount"], None)),
    )


def line_item_to_wire(item: LineItem) -> dict:
    row = {
        "id": item.id,
        "description": item.description,
        "quantity": item.quantity,
        "unitPrice": item.unit_price,
        "total": item.total,
    }
    if item.tax is not None:
        row["tax"] = item.tax
    if item.discount is not None:
        row["discount"] = item.discount
    return row


def _status(value: str) -> DocumentStatus:
    try:
        return DocumentStatus(value.lower())
    except ValueError:
        LOG.warning("Unknown document status %r, using draft", value)
        return DocumentStatus.DRAFT


def document_from_wire(row: Any, existing: Document | None = None) -> Document:
    """
    Build a Document from a ``documents`` row.

    Args:
        row: Wire row.
        existing: The in-memory version of the same document. Its customer,
                  items, amounts and payment methods fill in for columns an
                  update response did not return.

    Returns:
        A Document whose customer is always a resolved Customer.
    """
    b = _wrap(row)
    total = _number(b.get(["total"], None))

    subtotal, tax = b.get(["subtotal"], None), b.get(["tax"], None)
    if subtotal is not None and tax is not None:
        subtotal, tax = _number(subtotal), _number(tax)
    elif existing is not None:
        subtotal, tax = existing.subtotal, existing.tax
    else:
        tax = round(total * LEGACY_TAX_RATE, 2)
        subtotal = round(total - tax, 2)

    raw_customer = b.get(["customer"], None)
    if isinstance(raw_customer, Mapping):
        customer = customer_from_wire(raw_customer)
    elif existing is not None:
        customer = existing.customer
    else:
        customer = Customer()

    raw_items = b.get(["items"], None)
    if isinstance(raw_items, list):
        items = [
            line_item_from_wire(item) for item in raw_items if isinstance(item, Mapping)
        ]
    else:
        items = list(existing.items) if existing else []

    raw_methods = b.get(["payment_methods"], None)
    if isinstance(raw_methods, list):
        payment_methods = [
            payment_method_from_wire(method)
            for method in raw_methods
            if isinstance(method, Mapping)
        ]
    else:
        payment_methods = list(existing.payment_methods) if existing else []

    document_date = _text(b, "date")
    valid_days = days_between(document_date, _text(b, "expire_date"))
    if valid_days is None:
        valid_days = existing.valid_days if existing else DEFAULT_VALID_DAYS

    try:
        document_type = DocumentType(_text(b, "type", default="quote").lower())
    except ValueError:
        document_type = DocumentType.QUOTE

    return Document(
        id=_text(b, "id"),
        document_number=_text(b, "document_number"),
        date=document_date,
        customer=customer,
        items=items,
        subtotal=subtotal,
        tax=tax,
        total=total,
        status=_status(_text(b, "status", default="draft")),
        type=document_type,
        valid_days=valid_days,
        terms_and_conditions=_terms(b.get(["terms_conditions"], None)),
        payment_methods=payment_methods,
        notes=_text(b, "notes"),
        created_at=_text(b, "created_at") or utc_now_iso(),
        updated_at=_text(b, "updated_at") or utc_now_iso(),
    )


def document_to_wire(document: Document, user_id: str | None = None) -> dict:
    """Build the ``documents`` row for a Document."""
    row = {
        "title": document.customer.name,
        "document_number": document.document_number,
        "date": document.date,
        "customer": customer_to_wire(document.customer),
        "items": [line_item_to_wire(item) for item in document.items],
        "subtotal": document.subtotal,
        "tax": document.tax,
        "total": document.total,
        "status": document.status.value,
        "type": document.type.value,
        "expire_date": add_days(document.date, document.valid_days),
        "terms_conditions": "\n".join(document.terms_and_conditions)
        if document.terms_and_conditions
        else None,
        "notes": document.notes or None,
        "payment_methods": [payment_method_to_wire(m) for m in document.payment_methods],
    }
    _maybe(row, "id", document.id)
    _maybe(row, "created_at", document.created_at)
    _maybe(row, "updated_at", document.updated_at)
    return _maybe(row, "user_id", user_id)


# Payment methods


def payment_method_from_wire(row: Any) -> PaymentMethod:
    """Build a PaymentMethod from a ``payment_methods`` row (fields live in ``details``)."""
    b = _wrap(row)
    return PaymentMethod(
        id=_text(b, "id"),
        bank=_text(b, "details", "bank"),
        account_holder=_text(b, "details", "accountHolder"),
        account_number=_text(b, "details", "accountNumber"),
        account_type=_text(b, "details", "accountType"),
        is_yappy=_flag(b, "details", "isYappy", default=False),
        yappy_phone=_text(b, "details", "yappyPhone"),
        yappy_logo=_text(b, "details", "yappyLogo"),
    )


def payment_method_to_wire(method: PaymentMethod, user_id: str | None = None) -> dict:
    """Build the ``payment_methods`` row for a PaymentMethod."""
    row = {
        "name": "Yappy" if method.is_yappy else method.bank or "Bank account",
        "type": "mobile" if method.is_yappy else "bank",
        "details": {
            "bank": method.bank,
            "accountHolder": method.account_holder,
            "accountNumber": method.account_number,
            "accountType": method.account_type,
            "isYappy": method.is_yappy,
            "yappyLogo": method.yappy_logo,
            "yappyPhone": method.yappy_phone,
        },
        "is_default": False,
    }
    _maybe(row, "id", method.id)
    return _maybe(row, "user_id", user_id)


# Company info


def company_info_from_wire(row: Any) -> CompanyInfo:
    """
    Build CompanyInfo from a ``company_info`` row.

    RUC and DV are read from the ``address`` JSON when present; otherwise
    they are split from ``tax_id`` at its last dash.
    """
    b = _wrap(row)
    ruc, dv = _text(b, "address", "ruc"), _text(b, "address", "dv")
    tax_id = _text(b, "tax_id")
    if not ruc and tax_id:
        ruc, _, dv = tax_id.rpartition("-") if "-" in tax_id else (tax_id, "", "")
    return CompanyInfo(
        id=_text(b, "id"),
        name=_text(b, "name"),
        logo=_text(b, "logo_url"),
        ruc=ruc,
        dv=dv,
        address=_text(b, "address", "location"),
        contact_name=_text(b, "address", "contactName"),
        phone=_text(b, "phone"),
        email=_text(b, "email"),
        website=_text(b, "website"),
    )


def company_info_to_wire(info: CompanyInfo, user_id: str | None = None) -> dict:
    row = {
        "name": info.name,
        "tax_id": info.tax_id or None,
        "email": info.email,
        "phone": info.phone,
        "logo_url": info.logo,
        "website": info.website,
        "address": {
            "location": info.address,
            "contactName": info.contact_name,
            "ruc": info.ruc,
            "dv": info.dv,
        },
        "updated_at": utc_now_iso(),
    }
    _maybe(row, "id", info.id)
    return _maybe(row, "user_id", user_id)


# Template preferences

_PREFERENCE_COLUMNS = (
    "primary_color",
    "secondary_color",
    "font_family",
    "show_logo",
    "show_signature",
    "signature_image",
    "logo_position",
    "date_format",
    "color_theme",
    "header_layout",
    "use_triangle_design",
    "show_watermark",
    "show_company_name",
    "show_full_document_number",
)


def template_preferences_from_wire(row: Any) -> TemplatePreferences:
    """Build TemplatePreferences, taking the default for every missing column."""
    b = _wrap(row)
    preferences = TemplatePreferences(id=_text(b, "id"))
    for column in _PREFERENCE_COLUMNS:
        default = getattr(preferences, column)
        if isinstance(default, bool):
            setattr(preferences, column, _flag(b, column, default=default))
        else:
            setattr(preferences, column, _text(b, column) or default)
    terms = b.get(["terms_and_conditions"], None)
    if terms:
        preferences.terms_and_conditions = _terms(terms)
    return preferences


def template_preferences_to_wire(
    preferences: TemplatePreferences, user_id: str | None = None
) -> dict:
    row: dict[str, Any] = {column: getattr(preferences, column) for column in _PREFERENCE_COLUMNS}
    row["terms_and_conditions"] = list(preferences.terms_and_conditions)
    row["updated_at"] = utc_now_iso()
    _maybe(row, "id", preferences.id)
    return _maybe(row, "user_id", user_id)


def owned_rows(rows: Iterable[Any], user_id: str) -> list[Mapping[str, Any]]:
    """
    Keep only rows owned by user_id.

    Rows without a ``user_id`` column (e.g. embedded objects) are kept; rows
    owned by another user are dropped and logged.
    """
    kept = []
    for row in rows or []:
        if not isinstance(row, Mapping):
            continue
        owner = row.get("user_id")
        if owner is not None and owner != user_id:
            LOG.warning("Dropping row %s owned by another user", row.get("id"))
            continue
        kept.append(row)
    return kept
