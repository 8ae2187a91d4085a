from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Dict, List, Optional

from loguru import logger

from tax_calc import (
    IGST, TAX_TYPES, LineItem, TaxConfig, Totals, calculate_totals, suggest_tax_config,
)
from utils import DEFAULT_TRANSPORT_MODE, TRANSPORT_MODES, resolve_transport_mode, split_transport_mode

CLIENT_FIELDS = ("name", "address", "gstin", "phone", "state", "state_code")


class FormError(Exception):
    """Raised when an edit to the invoice form is not allowed."""


def _to_float(value) -> float:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return float(value)
    try:
        f = float(str(value).strip())
    except (TypeError, ValueError):
        return 0.0
    return 0.0 if f != f else f


def _client_details(client: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    client = client or {}
    return {k: client.get(k) for k in ("id",) + CLIENT_FIELDS}


@dataclass
class InvoiceFormState:
    """
    Session state of the create/edit invoice form.

    Every mutator recomputes ``totals`` before returning, so callers can read
    it straight after an edit.
    """
    invoice_number: str = ""
    invoice_date: Optional[date] = None
    order_date: Optional[date] = None
    supply_date_time: Optional[datetime] = None
    vehicle_number: str = ""
    place_of_supply: str = ""
    po_rgp_no: str = ""
    transport_mode: str = DEFAULT_TRANSPORT_MODE
    other_transport_mode: str = ""
    items: List[LineItem] = field(default_factory=lambda: [LineItem()])
    tax: TaxConfig = field(default_factory=TaxConfig)
    billed_client_id: Optional[str] = None
    shipped_client_id: Optional[str] = None
    billing: Dict[str, Any] = field(default_factory=dict)
    shipping: Dict[str, Any] = field(default_factory=dict)
    same_as_billed_to: bool = False
    company_state_code: Optional[str] = None
    totals: Totals = field(default_factory=Totals)

    def __post_init__(self):
        self.recalculate()

    def recalculate(self) -> Totals:
        self.totals = calculate_totals(self.items, self.tax)
        return self.totals

    # ---------------------------------------------------
    # LINE ITEMS
    # ---------------------------------------------------
    def update_item(self, index: int, field_name: str, value) -> LineItem:
        item = self.items[index]
        if field_name in ("name", "hsn_sac_code"):
            setattr(item, field_name, value.strip() if isinstance(value, str) else None)
            if field_name == "name":
                item.product_id = None
        elif field_name in ("quantity", "rate"):
            setattr(item, field_name, _to_float(value))
            item.recompute()
        else:
            raise FormError(f"Unknown item field: {field_name}")
        self.recalculate()
        return item

    def select_product(self, index: int, product: Optional[Dict[str, Any]]) -> LineItem:
        item = self.items[index]
        product = product or {}
        item.product_id = product.get("id")
        item.name = product.get("name")
        item.hsn_sac_code = product.get("hsn_sac_code") or None
        item.recompute()
        self.recalculate()
        return item

    def add_item_row(self) -> LineItem:
        item = LineItem()
        self.items.append(item)
        self.recalculate()
        return item

    def remove_item_row(self, index: int) -> None:
        if len(self.items) <= 1:
            raise FormError("Must have at least one item.")
        del self.items[index]
        self.recalculate()

    # ---------------------------------------------------
    # TAX
    # ---------------------------------------------------
    def set_tax_type(self, tax_type: str) -> None:
        if tax_type not in TAX_TYPES:
            raise FormError(f"Unknown tax type: {tax_type}")
        self.tax.tax_type = tax_type
        self.recalculate()

    def set_rates(self, cgst=None, sgst=None, igst=None) -> None:
        if cgst is not None:
            self.tax.cgst_rate = _to_float(cgst)
        if sgst is not None:
            self.tax.sgst_rate = _to_float(sgst)
        if igst is not None:
            self.tax.igst_rate = _to_float(igst)
        self.recalculate()

    def set_packing_charges(self, amount) -> None:
        self.tax.packing_cartage_charges = _to_float(amount)
        self.recalculate()

    def _apply_state_code(self, state_code: Optional[str]) -> None:
        suggested = suggest_tax_config(state_code, self.company_state_code)
        if suggested is None:
            return
        logger.debug("Buyer state {} suggests {}", state_code, suggested.tax_type)
        suggested.packing_cartage_charges = self.tax.packing_cartage_charges
        self.tax = suggested

    # ---------------------------------------------------
    # CLIENTS
    # ---------------------------------------------------
    def select_billing_client(self, client: Optional[Dict[str, Any]]) -> None:
        """Pick a saved client for "Billed To"."""
        details = _client_details(client)
        self.billed_client_id = details["id"]
        self.billing = details
        self._apply_state_code(details.get("state_code"))
        if self.same_as_billed_to:
            self.shipped_client_id = self.billed_client_id
            self.shipping = dict(details)
        self.recalculate()

    def select_shipping_client(self, client: Optional[Dict[str, Any]]) -> None:
        if self.same_as_billed_to:
            return
        details = _client_details(client)
        self.shipped_client_id = details["id"]
        self.shipping = details

    def edit_billing_detail(self, field_name: str, value: str) -> None:
        """Typing over the displayed details detaches the saved client."""
        self.billing[field_name] = value
        self.billed_client_id = None
        if field_name == "state_code":
            self._apply_state_code(value)
        if self.same_as_billed_to:
            self.shipping = dict(self.billing)
            self.shipped_client_id = None
        self.recalculate()

    def edit_shipping_detail(self, field_name: str, value: str) -> None:
        if self.same_as_billed_to:
            return
        self.shipping[field_name] = value
        self.shipped_client_id = None

    def set_same_as_billed_to(self, checked: bool) -> None:
        self.same_as_billed_to = checked
        if checked:
            self.shipped_client_id = self.billed_client_id
            self.shipping = dict(self.billing)
        else:
            self.shipped_client_id = None

    # ---------------------------------------------------
    # TRANSPORT
    # ---------------------------------------------------
    def set_transport_mode(self, mode: str, other: str = "") -> None:
        if mode not in TRANSPORT_MODES:
            raise FormError(f"Unknown transport mode: {mode}")
        self.transport_mode = mode
        self.other_transport_mode = other if mode == "Other" else ""

    @property
    def transport_mode_value(self) -> str:
        return resolve_transport_mode(self.transport_mode, self.other_transport_mode)

    @classmethod
    def from_invoice(cls, invoice: Dict[str, Any], company_state_code: Optional[str] = None):
        """Rebuild form state from a stored invoice (see InvoiceService.get_invoice)."""
        mode, other = split_transport_mode(invoice.get("transport_mode"))
        items = [
            LineItem(
                quantity=it["quantity"],
                rate=it["rate"],
                taxable_value=it["taxable_value"],
                product_id=it.get("product_id"),
                name=it.get("product_name"),
                hsn_sac_code=it.get("hsn_sac_code"),
            )
            for it in invoice.get("items", [])
        ] or [LineItem()]
        tax = TaxConfig(
            tax_type=invoice.get("tax_type") or IGST,
            cgst_rate=invoice.get("cgst_rate") or 0.0,
            sgst_rate=invoice.get("sgst_rate") or 0.0,
            igst_rate=invoice.get("igst_rate") or 0.0,
            packing_cartage_charges=invoice.get("packing_cartage_charges") or 0.0,
        )
        billed_id = invoice.get("billed_to_client_id")
        shipped_id = invoice.get("shipped_to_client_id")
        return cls(
            invoice_number=invoice.get("invoice_number") or "",
            invoice_date=invoice.get("invoice_date"),
            order_date=invoice.get("order_date"),
            supply_date_time=invoice.get("supply_date_time"),
            vehicle_number=invoice.get("vehicle_number") or "",
            place_of_supply=invoice.get("place_of_supply") or "",
            po_rgp_no=invoice.get("po_rgp_no") or "",
            transport_mode=mode,
            other_transport_mode=other,
            items=items,
            tax=tax,
            billed_client_id=billed_id,
            shipped_client_id=shipped_id,
            billing=_client_details(invoice.get("billed_client")),
            shipping=_client_details(invoice.get("shipped_client")),
            same_as_billed_to=bool(billed_id) and billed_id == shipped_id,
            company_state_code=company_state_code,
        )

