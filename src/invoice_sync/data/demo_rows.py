"""
Wire-format rows that seed the demo backend.

The rows use the hosted store's column names so that the demo backend
exercises the same formatters as the production backend.
"""

import copy

from invoice_sync.data.defaults import DEMO_USER_ID

DEMO_CUSTOMERS: list[dict] = [
    {
        "id": "0d9c1f5e-3b2a-4c6d-8e7f-1a2b3c4d5e6f",
        "user_id": DEMO_USER_ID,
        "name": "Carlos Pérez",
        "address": {"company": "Ferretería Central", "location": "Panama City"},
        "phone": "+507 6123 4567",
        "email": "carlos@example.com",
        "type": "business",
        "created_at": "2024-04-01T10:00:00+00:00",
    },
    {
        "id": "6a7b8c9d-0e1f-4a2b-9c3d-4e5f6a7b8c9d",
        "user_id": DEMO_USER_ID,
        "name": "María González",
        "address": {"company": "", "location": "David, Chiriquí"},
        "phone": "+507 6987 6543",
        "email": "maria@example.com",
        "type": "individual",
        "created_at": "2024-04-02T10:00:00+00:00",
    },
]

DEMO_DOCUMENTS: list[dict] = [
    {
        "id": "9f8e7d6c-5b4a-4392-8170-6f5e4d3c2b1a",
        "user_id": DEMO_USER_ID,
        "document_number": "COT-001",
        "date": "2024-04-12",
        "customer": DEMO_CUSTOMERS[0],
        "items": [
            {
                "id": "item-1",
                "description": "Network cabling, 20 points",
                "quantity": 20,
                "unitPrice": 35.0,
                "total": 700.0,
            }
        ],
        "subtotal": 700.0,
        "tax": 49.0,
        "total": 749.0,
        "status": "pending",
        "type": "quote",
        "expire_date": "2024-05-12",
        "terms_conditions": None,
        "notes": None,
        "created_at": "2024-04-12T09:00:00+00:00",
        "updated_at": "2024-04-12T09:00:00+00:00",
    },
]

DEMO_PAYMENT_METHODS: list[dict] = [
    {
        "id": "3c2b1a0f-9e8d-4c7b-a6f5-e4d3c2b1a0f9",
        "user_id": DEMO_USER_ID,
        "name": "Banco General",
        "type": "bank",
        "is_default": False,
        "details": {
            "bank": "Banco General",
            "accountHolder": "Demo Company",
            "accountNumber": "04-42-01-000000-1",
            "accountType": "Savings",
            "isYappy": False,
            "yappyLogo": "",
            "yappyPhone": "",
        },
        "created_at": "2024-04-01T09:00:00+00:00",
    },
]


def seed() -> dict[str, list[dict]]:
    """Return fresh copies of the demo rows keyed by table name."""
    return {
        "customers": copy.deepcopy(DEMO_CUSTOMERS),
        "documents": copy.deepcopy(DEMO_DOCUMENTS),
        "payment_methods": copy.deepcopy(DEMO_PAYMENT_METHODS),
    }
