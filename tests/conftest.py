from datetime import date

import pytest

from config import COMPANY_PROFILE
from db import Database
from invoice_form import InvoiceFormState
from invoice_service import InvoiceService


def stub_words(n):
    return f"number {n}"


@pytest.fixture
def database():
    db = Database("sqlite://")
    db.init_schema()
    yield db
    db.engine.dispose()


@pytest.fixture
def service(database):
    return InvoiceService(database, COMPANY_PROFILE, to_words=stub_words)


@pytest.fixture
def make_form():
    """Build a ready-to-save form for a UP client (same state as the company)."""
    def _make(number="SRPT001", client=None, items=None, same_as_billed_to=True):
        form = InvoiceFormState(
            invoice_number=number,
            invoice_date=date(2025, 4, 1),
            company_state_code=COMPANY_PROFILE.state_code,
        )
        form.set_same_as_billed_to(same_as_billed_to)
        form.select_billing_client(client or {
            "name": "Acme Engineering",
            "address": "Sector 5, Noida",
            "gstin": "09ABCDE1234F1Z5",
            "phone": "9999999999",
            "state": "Uttar Pradesh",
            "state_code": "09",
        })
        for n, (name, qty, rate) in enumerate(items or [("Drill Bit 6mm", 10, 45.5)]):
            if n:
                form.add_item_row()
            form.update_item(n, "name", name)
            form.update_item(n, "quantity", qty)
            form.update_item(n, "rate", rate)
        return form
    return _make
