from datetime import date

import pytest
from sqlalchemy import func, select

from db import Client, Invoice, InvoiceItem, Product
from invoice_service import (
    CREATE, EDIT, ClientError, InvoiceError, NotFoundError, ProductError, ValidationError,
)
from tax_calc import CGST_SGST, IGST

MH_CLIENT = {
    "name": "Pune Tools",
    "address": "Bhosari MIDC, Pune",
    "gstin": "27AAPFU0939F1ZV",
    "state": "Maharashtra",
    "state_code": "27",
}


def count(service, model):
    with service.db.session() as session:
        return session.scalar(select(func.count()).select_from(model))


def test_next_invoice_number(service, make_form):
    assert service.next_invoice_number() == "SRPT001"
    service.save_invoice(make_form("SRPT009"))
    service.save_invoice(make_form("SRPT010"))
    assert service.next_invoice_number() == "SRPT011"


def test_create_invoice_snapshot(service, make_form):
    form = make_form(items=[("Drill Bit 6mm", 10, 45.5), ("End Mill 10mm", 2, 1200)])
    invoice_id = service.save_invoice(form)

    invoice = service.get_invoice(invoice_id)
    assert invoice["invoice_number"] == "SRPT001"
    assert invoice["invoice_date"] == date(2025, 4, 1)
    assert invoice["tax_type"] == CGST_SGST
    assert invoice["total_amount_before_tax"] == 2855.0
    assert invoice["cgst_amount"] == 256.95
    assert invoice["sgst_amount"] == 256.95
    assert invoice["igst_amount"] == 0
    assert invoice["igst_rate"] == 0
    assert invoice["total_amount_after_tax"] == 3369
    assert invoice["total_amount_in_words"] == "Rupees Number 3369 Only"
    assert invoice["transport_mode"] == "By Road"
    assert invoice["billed_to_client_id"] == invoice["shipped_to_client_id"]
    assert invoice["billed_client"]["gstin"] == "09ABCDE1234F1Z5"
    assert [it["product_name"] for it in invoice["items"]] == ["Drill Bit 6mm", "End Mill 10mm"]
    assert invoice["items"][1]["taxable_value"] == 2400.0


def test_inactive_regime_rates_stored_as_zero(service, make_form):
    form = make_form(client=MH_CLIENT)
    form.set_rates(cgst=9, sgst=9)
    assert form.tax.tax_type == IGST
    invoice = service.get_invoice(service.save_invoice(form))
    assert (invoice["cgst_rate"], invoice["sgst_rate"], invoice["igst_rate"]) == (0, 0, 18)
    assert invoice["igst_amount"] == 81.9


def test_clients_and_products_are_reused(service, make_form):
    service.save_invoice(make_form("SRPT001"))
    second = make_form("SRPT002", items=[("drill bit 6MM", 1, 50)])
    service.save_invoice(second)
    assert count(service, Client) == 1
    assert count(service, Product) == 1


def test_separate_shipping_client(service, make_form):
    form = make_form(same_as_billed_to=False)
    form.select_shipping_client(MH_CLIENT)
    invoice = service.get_invoice(service.save_invoice(form))
    assert invoice["shipped_client"]["name"] == "Pune Tools"
    assert invoice["billed_to_client_id"] != invoice["shipped_to_client_id"]
    assert count(service, Client) == 2


def test_validation_collects_all_errors_and_rolls_back(service, make_form):
    form = make_form(number="")
    form.invoice_date = None
    form.add_item_row()
    form.update_item(0, "quantity", 0)
    form.update_item(0, "rate", -5)

    with pytest.raises(ValidationError) as exc:
        service.save_invoice(form)
    assert exc.value.messages == [
        "Invoice number is required.",
        "Invoice date is required.",
        "Item 1: Quantity must be positive.",
        "Item 1: Rate cannot be negative.",
        "Item 2: Product is required.",
    ]
    assert count(service, Client) == 0
    assert count(service, Invoice) == 0


def test_missing_clients(service, make_form):
    form = make_form()
    form.edit_billing_detail("gstin", "")
    with pytest.raises(ValidationError) as exc:
        service.save_invoice(form)
    assert "Billing client is required." in exc.value.messages
    assert "Shipping client is required." in exc.value.messages


def test_invalid_client_gstin(service, make_form):
    form = make_form()
    form.edit_billing_detail("gstin", "09ABCDE1234F1X5")
    with pytest.raises(ClientError, match="Invalid GSTIN format"):
        service.save_invoice(form)


def test_duplicate_invoice_number(service, make_form):
    service.save_invoice(make_form("SRPT001"))
    with pytest.raises(ValidationError) as exc:
        service.save_invoice(make_form("SRPT001"))
    assert exc.value.messages == ["Invoice number SRPT001 already exists."]


def test_edit_replaces_items_and_totals(service, make_form):
    invoice_id = service.save_invoice(make_form(items=[("Drill Bit 6mm", 10, 45.5), ("Tap M8", 5, 80)]))

    form = service.load_form(invoice_id)
    assert form.same_as_billed_to
    form.remove_item_row(1)
    form.update_item(0, "quantity", 20)
    form.set_transport_mode("Other", "Courier")
    assert service.save_invoice(form, EDIT, invoice_id) == invoice_id

    invoice = service.get_invoice(invoice_id)
    assert len(invoice["items"]) == 1
    assert invoice["total_amount_before_tax"] == 910.0
    assert invoice["total_amount_after_tax"] == 1074
    assert invoice["transport_mode"] == "Courier"
    assert count(service, InvoiceItem) == 1
    assert count(service, Client) == 2


def test_edit_with_changed_client_details_keeps_old_record(service, make_form):
    invoice_id = service.save_invoice(make_form())
    old_client_id = service.get_invoice(invoice_id)["billed_to_client_id"]

    form = service.load_form(invoice_id)
    form.edit_billing_detail("address", "Plot 12, Sector 63, Noida")
    service.save_invoice(form, EDIT, invoice_id)

    invoice = service.get_invoice(invoice_id)
    assert invoice["billed_to_client_id"] != old_client_id
    assert invoice["billed_client"]["address"] == "Plot 12, Sector 63, Noida"
    assert count(service, Client) == 2


def test_edit_always_saves_a_fresh_client_record(service, make_form):
    first_id = service.save_invoice(make_form("SRPT001"))
    second_id = service.save_invoice(make_form("SRPT002"))
    shared_client_id = service.get_invoice(second_id)["billed_to_client_id"]

    service.save_invoice(service.load_form(first_id), EDIT, first_id)

    edited = service.get_invoice(first_id)
    assert edited["billed_to_client_id"] != shared_client_id
    assert edited["shipped_to_client_id"] == edited["billed_to_client_id"]
    assert edited["billed_client"]["gstin"] == "09ABCDE1234F1Z5"
    assert service.get_invoice(second_id)["billed_to_client_id"] == shared_client_id
    assert count(service, Client) == 2


def test_edit_requires_existing_invoice(service, make_form):
    with pytest.raises(InvoiceError):
        service.save_invoice(make_form(), EDIT)
    with pytest.raises(NotFoundError):
        service.save_invoice(make_form(), EDIT, "missing")


def test_get_invoice_not_found(service):
    with pytest.raises(NotFoundError):
        service.get_invoice("missing")


def test_list_invoices_search_and_pages(service, make_form):
    for n in range(1, 10):
        form = make_form(f"SRPT{n:03d}", client=MH_CLIENT if n % 3 == 0 else None)
        if n == 5:
            form.invoice_date = date(2025, 6, 15)
        service.save_invoice(form)

    page = service.list_invoices()
    assert page.total == 9
    assert page.total_pages == 2
    assert [inv["invoice_number"] for inv in page.invoices][:2] == ["SRPT009", "SRPT008"]
    assert len(page.invoices) == 7
    assert len(service.list_invoices(page=2).invoices) == 2

    assert [i["invoice_number"] for i in service.list_invoices("srpt004").invoices] == ["SRPT004"]
    assert [i["invoice_number"] for i in service.list_invoices("15/06/2025").invoices] == ["SRPT005"]

    pune = service.list_invoices("pune")
    assert sorted(i["invoice_number"] for i in pune.invoices) == ["SRPT003", "SRPT006", "SRPT009"]
    assert {i["billed_client"] for i in pune.invoices} == {"Pune Tools"}

    assert service.list_invoices("nothing here").total == 0
    assert service.list_invoices(per_page=None).total_pages == 1
    assert len(service.list_invoices(per_page=None).invoices) == 9


def test_add_client_and_product(service):
    client = service.add_client({"name": " Kanpur Dies ", "gstin": "09aaaca1234b1z2", "state_code": "09"})
    assert client["name"] == "Kanpur Dies"
    assert client["gstin"] == "09AAACA1234B1Z2"

    unregistered = service.add_client({"name": "Walk-in Customer", "gstin": ""})
    assert unregistered["gstin"] is None

    product = service.add_product("Carbide Insert", "8209")
    assert product["hsn_sac_code"] == "8209"

    with pytest.raises(ClientError):
        service.add_client({"name": "  "})
    with pytest.raises(ClientError, match="Invalid GSTIN"):
        service.add_client({"name": "Bad", "gstin": "123"})
    with pytest.raises(ProductError):
        service.add_product("")


def test_suggestions(service):
    service.add_client({"name": "Acme Engineering", "gstin": "09ABCDE1234F1Z5"})
    service.add_client({"name": "Acme Tools", "gstin": "27AAPFU0939F1ZV"})
    service.add_client({"name": "Bharat Forge"})
    service.add_product("HSS Drill Bit")

    assert service.suggest_clients("") == []
    assert service.suggest_clients("   ") == []
    names = [o["label"] for o in service.suggest_clients("acme")]
    assert sorted(names) == ["Acme Engineering", "Acme Tools"]
    best = service.suggest_clients("Acme Tool")[0]
    assert best["label"] == "Acme Tools"
    assert best["value"] == best["data"]["id"]

    assert [o["label"] for o in service.suggest_products("drill")] == ["HSS Drill Bit"]
    assert service.suggest_products("lathe") == []


def test_new_form_uses_company_state(service, make_form):
    service.save_invoice(make_form("SRPT001"))
    form = service.new_form()
    assert form.invoice_number == "SRPT002"
    assert form.company_state_code == "09"
    assert form.items and form.items[0].product_id is None


def test_amount_in_words_uses_injected_renderer(service):
    assert service.amount_in_words(236) == "Rupees Number 236 Only"
    assert CREATE == "create"
