"""
Domain entities of the invoicing application.

These dataclasses are the normalized, fully-formatted records the sync
layer keeps in memory and in persisted snapshots. The hierarchy is:

    Document
    ├── Customer (always embedded, never a bare id)
    ├── LineItem[]
    └── PaymentMethod[]

    CompanyInfo, TemplatePreferences (one per user)

``to_dict``/``from_dict`` convert to and from the snapshot JSON shape.
They are deliberately strict about required keys: a snapshot that does not
decode is reported as corrupt rather than half-loaded. Conversion to and
from the remote wire schema lives in ``invoice_sync.formatters``.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping

from invoice_sync.data.defaults import DEFAULT_TERMS_AND_CONDITIONS


class CustomerType(str, Enum):
    """Whether a customer is an individual or a company."""

    PERSON = "person"
    BUSINESS = "business"


class DocumentStatus(str, Enum):
    """Lifecycle status of a quote or invoice."""

    DRAFT = "draft"
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    PAID = "paid"
    OVERDUE = "overdue"
    CANCELLED = "cancelled"


class DocumentType(str, Enum):
    """Kind of commercial document."""

    QUOTE = "quote"
    INVOICE = "invoice"


@dataclass(slots=True)
class Customer:
    """A customer that documents are addressed to."""

    id: str = ""
    name: str = ""
    company: str = ""
    location: str = ""
    phone: str = ""
    email: str = ""
    type: CustomerType = CustomerType.BUSINESS
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "company": self.company,
            "location": self.location,
            "phone": self.phone,
            "email": self.email,
            "type": self.type.value,
            "metadata": dict(self.metadata),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Customer":
        return cls(
            id=data["id"],
            name=data["name"],
            company=data.get("company", ""),
            location=data.get("location", ""),
            phone=data.get("phone", ""),
            email=data.get("email", ""),
            type=CustomerType(data.get("type", CustomerType.BUSINESS.value)),
            metadata=dict(data.get("metadata") or {}),
        )


@dataclass(slots=True)
class LineItem:
    """An individual line on a document."""

    id: str
    description: str
    quantity: float
    unit_price: float
    total: float
    tax: float | None = None
    discount: float | None = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "description": self.description,
            "quantity": self.quantity,
            "unit_price": self.unit_price,
            "total": self.total,
            "tax": self.tax,
            "discount": self.discount,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "LineItem":
        return cls(
            id=data["id"],
            description=data["description"],
            quantity=data["quantity"],
            unit_price=data["unit_price"],
            total=data["total"],
            tax=data.get("tax"),
            discount=data.get("discount"),
        )


@dataclass(slots=True)
class PaymentMethod:
    """A bank account or Yappy mobile wallet printed on documents."""

    id: str = ""
    bank: str = ""
    account_holder: str = ""
    account_number: str = ""
    account_type: str = ""
    is_yappy: bool = False
    yappy_phone: str = ""
    yappy_logo: str = ""

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "bank": self.bank,
            "account_holder": self.account_holder,
            "account_number": self.account_number,
            "account_type": self.account_type,
            "is_yappy": self.is_yappy,
            "yappy_phone": self.yappy_phone,
            "yappy_logo": self.yappy_logo,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "PaymentMethod":
        return cls(
            id=data["id"],
            bank=data.get("bank", ""),
            account_holder=data.get("account_holder", ""),
            account_number=data.get("account_number", ""),
            account_type=data.get("account_type", ""),
            is_yappy=bool(data.get("is_yappy", False)),
            yappy_phone=data.get("yappy_phone", ""),
            yappy_logo=data.get("yappy_logo", ""),
        )


@dataclass(slots=True)
class Document:
    """A quote or invoice with its customer, lines and payment methods."""

    id: str
    document_number: str
    date: str
    customer: Customer
    items: list[LineItem] = field(default_factory=list)
    subtotal: float = 0.0
    tax: float = 0.0
    total: float = 0.0
    status: DocumentStatus = DocumentStatus.DRAFT
    type: DocumentType = DocumentType.QUOTE
    valid_days: int = 30
    terms_and_conditions: list[str] = field(default_factory=list)
    payment_methods: list[PaymentMethod] = field(default_factory=list)
    notes: str = ""
    created_at: str = ""
    updated_at: str = ""

    @property
    def is_quote(self) -> bool:
        return self.type == DocumentType.QUOTE

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "document_number": self.document_number,
            "date": self.date,
            "customer": self.customer.to_dict(),
            "items": [item.to_dict() for item in self.items],
            "subtotal": self.subtotal,
            "tax": self.tax,
            "total": self.total,
            "status": self.status.value,
            "type": self.type.value,
            "valid_days": self.valid_days,
            "terms_and_conditions": list(self.terms_and_conditions),
            "payment_methods": [method.to_dict() for method in self.payment_methods],
            "notes": self.notes,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Document":
        return cls(
            id=data["id"],
            document_number=data["document_number"],
            date=data["date"],
            customer=Customer.from_dict(data["customer"]),
            items=[LineItem.from_dict(item) for item in data.get("items", [])],
            subtotal=data.get("subtotal", 0.0),
            tax=data.get("tax", 0.0),
            total=data.get("total", 0.0),
            status=DocumentStatus(data.get("status", DocumentStatus.DRAFT.value)),
            type=DocumentType(data.get("type", DocumentType.QUOTE.value)),
            valid_days=data.get("valid_days", 30),
            terms_and_conditions=list(data.get("terms_and_conditions", [])),
            payment_methods=[
                PaymentMethod.from_dict(method) for method in data.get("payment_methods", [])
            ],
            notes=data.get("notes", ""),
            created_at=data.get("created_at", ""),
            updated_at=data.get("updated_at", ""),
        )


@dataclass(slots=True)
class CompanyInfo:
    """The issuing company printed on every document."""

    id: str = ""
    name: str = ""
    logo: str = ""
    ruc: str = ""
    dv: str = ""
    address: str = ""
    contact_name: str = ""
    phone: str = ""
    email: str = ""
    website: str = ""

    @property
    def tax_id(self) -> str:
        """RUC and check digit joined the way the store keeps them."""
        if self.ruc and self.dv:
            return f"{self.ruc}-{self.dv}"
        return self.ruc

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "logo": self.logo,
            "ruc": self.ruc,
            "dv": self.dv,
            "address": self.address,
            "contact_name": self.contact_name,
            "phone": self.phone,
            "email": self.email,
            "website": self.website,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "CompanyInfo":
        return cls(**{key: data.get(key, "") for key in cls.__slots__})


@dataclass(slots=True)
class TemplatePreferences:
    """Visual preferences for rendered documents."""

    id: str = ""
    primary_color: str = "#3b82f6"
    secondary_color: str = "#1e40af"
    font_family: str = "Inter"
    show_logo: bool = True
    show_signature: bool = True
    signature_image: str = ""
    logo_position: str = "left"
    date_format: str = "DD/MM/YYYY"
    color_theme: str = "blue"
    header_layout: str = "default"
    use_triangle_design: bool = False
    show_watermark: bool = True
    show_company_name: bool = True
    show_full_document_number: bool = True
    terms_and_conditions: list[str] = field(
        default_factory=lambda: list(DEFAULT_TERMS_AND_CONDITIONS)
    )

    def to_dict(self) -> dict:
        data = {key: getattr(self, key) for key in self.__slots__}
        data["terms_and_conditions"] = list(self.terms_and_conditions)
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "TemplatePreferences":
        defaults = cls()
        values = {key: data.get(key, getattr(defaults, key)) for key in cls.__slots__}
        values["terms_and_conditions"] = list(values["terms_and_conditions"] or [])
        return cls(**values)
