"""Builders for domain records used across the tests."""

from invoice_sync.models.entities import (
    Customer,
    CustomerType,
    Document,
    DocumentStatus,
    DocumentType,
    LineItem,
    PaymentMethod,
)

USER_ID = "1f0c2d3e-4b5a-4c6d-8e7f-9a0b1c2d3e4f"
OTHER_USER_ID = "7a6b5c4d-3e2f-4a1b-9c8d-7e6f5a4b3c2d"


def customer(customer_id: str = "c-1", name: str = "Carlos Pérez", **kwargs) -> Customer:
    values = {
        "company": "Ferretería Central",
        "location": "Panama City",
        "phone": "+507 6123 4567",
        "email": "carlos@example.com",
        "type": CustomerType.BUSINESS,
    }
    values.update(kwargs)
    return Customer(id=customer_id, name=name, **values)


def payment_method(method_id: str = "pm-1", **kwargs) -> PaymentMethod:
    values = {
        "bank": "Banco General",
        "account_holder": "Demo Company",
        "account_number": "04-42-01-000000-1",
        "account_type": "Savings",
    }
    values.update(kwargs)
    return PaymentMethod(id=method_id, **values)


def document(document_id: str = "d-1", number: str = "COT-001", **kwargs) -> Document:
    values = {
        "date": "2024-04-12",
        "customer": customer(),
        "items": [LineItem("item-1", "Network cabling", 20.0, 35.0, 700.0)],
        "subtotal": 700.0,
        "tax": 49.0,
        "total": 749.0,
        "status": DocumentStatus.PENDING,
        "type": DocumentType.QUOTE,
        "valid_days": 30,
        "terms_and_conditions": ["50% up front"],
        "payment_methods": [payment_method()],
        "notes": "",
        "created_at": "2024-04-12T09:00:00+00:00",
        "updated_at": "2024-04-12T09:00:00+00:00",
    }
    values.update(kwargs)
    return Document(id=document_id, document_number=number, **values)


def customer_row(row_id: str, user_id: str = USER_ID, name: str = "Carlos Pérez") -> dict:
    return {
        "id": row_id,
        "user_id": user_id,
        "name": name,
        "address": {"company": "Ferretería Central", "location": "Panama City"},
        "phone": "+507 6123 4567",
        "email": "carlos@example.com",
        "type": "business",
        "created_at": "2024-04-01T10:00:00+00:00",
    }


def payment_method_row(row_id: str, user_id: str = USER_ID, bank: str = "Banco General") -> dict:
    return {
        "id": row_id,
        "user_id": user_id,
        "name": bank,
        "type": "bank",
        "is_default": False,
        "details": {
            "bank": bank,
            "accountHolder": "Demo Company",
            "accountNumber": "04-42-01-000000-1",
            "accountType": "Savings",
            "isYappy": False,
        },
        "created_at": "2024-04-01T09:00:00+00:00",
    }
