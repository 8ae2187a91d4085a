import asyncio
import math
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from loguru import logger
from sqlalchemy import func, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from amount_words import WordsRenderer, amount_to_words
from config import CompanyProfile
from db import Client, Database, Invoice, InvoiceItem, Product
from invoice_form import InvoiceFormState
from lookup import rank_suggestions
from tax_calc import CGST_SGST, IGST, LineItem
from utils import (
    format_invoice_number, invoice_number_sequence, parse_date_ddmmyyyy, validate_gstin,
)

CREATE = "create"
EDIT = "edit"

INVOICE_FIELDS = (
    "id", "invoice_number", "invoice_date", "transport_mode", "vehicle_number",
    "supply_date_time", "place_of_supply", "po_rgp_no", "order_date",
    "billed_to_client_id", "shipped_to_client_id", "total_amount_before_tax",
    "tax_type", "cgst_rate", "cgst_amount", "sgst_rate", "sgst_amount",
    "igst_rate", "igst_amount", "packing_cartage_charges",
    "total_amount_after_tax", "total_amount_in_words", "created_at",
)


class InvoiceError(Exception):
    """Base class for invoice workflow failures shown to the user."""


class ValidationError(InvoiceError):
    def __init__(self, messages: List[str]):
        self.messages = list(messages)
        super().__init__(" \n".join(self.messages))


class ClientError(InvoiceError):
    pass


class ProductError(InvoiceError):
    pass


class NotFoundError(InvoiceError):
    pass


@dataclass
class InvoicePage:
    invoices: List[Dict[str, Any]]
    total: int
    page: int
    per_page: Optional[int]

    @property
    def total_pages(self) -> int:
        if not self.per_page:
            return 1
        return max(1, math.ceil(self.total / self.per_page))


def _clean(value) -> Optional[str]:
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def _has_client_details(details: Dict[str, Any]) -> bool:
    return bool(_clean(details.get("name")) and _clean(details.get("gstin")))


def _invoice_to_dict(invoice: Invoice) -> Dict[str, Any]:
    data = {name: getattr(invoice, name) for name in INVOICE_FIELDS}
    data["billed_client"] = invoice.billed_client.as_dict() if invoice.billed_client else None
    data["shipped_client"] = invoice.shipped_client.as_dict() if invoice.shipped_client else None
    data["items"] = [
        {
            "product_id": it.product_id,
            "product_name": it.product.name if it.product else None,
            "hsn_sac_code": it.product.hsn_sac_code if it.product else None,
            "quantity": it.quantity,
            "rate": it.rate,
            "taxable_value": it.taxable_value,
        }
        for it in invoice.items
    ]
    return data


class InvoiceService:
    """
    Persistence workflows for clients, products and invoices.

    The database and the company profile are injected; nothing here keeps
    module-level state.
    """

    def __init__(
        self,
        db: Database,
        company: CompanyProfile,
        to_words: Optional[WordsRenderer] = None,
        invoice_prefix: str = "SRPT",
        number_width: int = 3,
    ):
        self.db = db
        self.company = company
        self.to_words = to_words
        self.invoice_prefix = invoice_prefix
        self.number_width = number_width

    def new_form(self) -> InvoiceFormState:
        return InvoiceFormState(
            invoice_number=self.next_invoice_number(),
            company_state_code=self.company.state_code,
        )

    # ---------------------------------------------------
    # CLIENTS & PRODUCTS
    # ---------------------------------------------------
    def add_client(self, details: Dict[str, Any]) -> Dict[str, Any]:
        name = _clean(details.get("name"))
        if not name:
            raise ClientError("Client name is required")
        valid, message = validate_gstin(details.get("gstin"))
        if not valid:
            raise ClientError(message)
        with self.db.session() as session:
            client = self._insert_client(session, details)
            return client.as_dict()

    def add_product(self, name: str, hsn_sac_code: Optional[str] = None) -> Dict[str, Any]:
        name = _clean(name)
        if not name:
            raise ProductError("Product name is required")
        with self.db.session() as session:
            product = Product(name=name, hsn_sac_code=_clean(hsn_sac_code))
            session.add(product)
            session.flush()
            logger.info("Product created: {}", name)
            return product.as_dict()

    def _insert_client(self, session: Session, details: Dict[str, Any]) -> Client:
        gstin = _clean(details.get("gstin"))
        client = Client(
            name=_clean(details.get("name")),
            address=_clean(details.get("address")),
            gstin=gstin.upper() if gstin else None,
            phone=_clean(details.get("phone")),
            state=_clean(details.get("state")),
            state_code=_clean(details.get("state_code")),
        )
        session.add(client)
        session.flush()
        logger.info("Client created: {} ({})", client.name, client.gstin)
        return client

    def find_or_create_client(self, session: Session, details: Dict[str, Any], mode: str = CREATE) -> str:
        """
        Resolve displayed client details to a client id.

        Create mode reuses the newest client with the same GSTIN. Edit mode
        always inserts a new record so other invoices keep the client
        details they were issued with.
        """
        if not _clean(details.get("name")):
            raise ClientError("Client name cannot be empty.")
        if not _clean(details.get("gstin")):
            raise ClientError("Client GSTIN cannot be empty.")
        valid, message = validate_gstin(details.get("gstin"))
        if not valid:
            raise ClientError(message or "Invalid GSTIN.")

        if mode != EDIT:
            gstin = _clean(details["gstin"]).upper()
            existing = session.scalars(
                select(Client).where(Client.gstin == gstin).order_by(Client.created_at.desc())
            ).first()
            if existing is not None:
                return existing.id
        return self._insert_client(session, details).id

    def find_or_create_product(self, session: Session, item: LineItem) -> str:
        if item.product_id:
            return item.product_id
        name = _clean(item.name)
        if not name:
            raise ProductError("Product name cannot be empty.")
        existing = session.scalars(
            select(Product).where(func.lower(Product.name) == name.lower())
        ).first()
        if existing is not None:
            return existing.id
        product = Product(name=name, hsn_sac_code=_clean(item.hsn_sac_code))
        session.add(product)
        session.flush()
        logger.info("Product created: {}", name)
        return product.id

    def suggest_clients(self, query: str, limit: int = 10) -> List[Dict[str, Any]]:
        return self._suggest(Client, query, limit)

    def suggest_products(self, query: str, limit: int = 10) -> List[Dict[str, Any]]:
        return self._suggest(Product, query, limit)

    def _suggest(self, model, query: str, limit: int) -> List[Dict[str, Any]]:
        if not query or not query.strip():
            return []
        with self.db.session() as session:
            rows = session.scalars(
                select(model).where(model.name.ilike(f"%{query.strip()}%")).limit(limit * 5)
            ).all()
            records = [r.as_dict() for r in rows]
        return rank_suggestions(query, records, limit=limit)

    # ---------------------------------------------------
    # INVOICES
    # ---------------------------------------------------
    def next_invoice_number(self) -> str:
        first = format_invoice_number(self.invoice_prefix, 1, self.number_width)
        try:
            with self.db.session() as session:
                numbers = session.scalars(
                    select(Invoice.invoice_number).where(
                        Invoice.invoice_number.like(f"{self.invoice_prefix}%")
                    )
                ).all()
        except SQLAlchemyError as e:
            logger.error("Error fetching last invoice number: {}", e)
            return first
        sequences = [
            invoice_number_sequence(n[len(self.invoice_prefix):]) for n in numbers
        ]
        sequences = [s for s in sequences if s is not None]
        if not sequences:
            return first
        return format_invoice_number(self.invoice_prefix, max(sequences) + 1, self.number_width)

    def validate_invoice(
        self,
        session: Session,
        form: InvoiceFormState,
        billed_id: Optional[str],
        shipped_id: Optional[str],
        invoice_id: Optional[str] = None,
    ) -> None:
        errors = []
        if not _clean(form.invoice_number):
            errors.append("Invoice number is required.")
        else:
            clash = session.scalars(
                select(Invoice.id).where(Invoice.invoice_number == form.invoice_number.strip())
            ).first()
            if clash is not None and clash != invoice_id:
                errors.append(f"Invoice number {form.invoice_number.strip()} already exists.")
        if not form.invoice_date:
            errors.append("Invoice date is required.")

        if not billed_id:
            errors.append("Billing client is required.")
        if not shipped_id:
            errors.append("Shipping client is required.")

        valid, message = validate_gstin(form.billing.get("gstin"))
        if not valid:
            errors.append(f"Billing client: {message or 'Invalid GSTIN.'}")
        if not form.same_as_billed_to:
            valid, message = validate_gstin(form.shipping.get("gstin"))
            if not valid:
                errors.append(f"Shipping client: {message or 'Invalid GSTIN.'}")

        if not form.items:
            errors.append("At least one item is required.")
        for n, item in enumerate(form.items, start=1):
            if not item.product_id and not item.name:
                errors.append(f"Item {n}: Product is required.")
            if item.quantity <= 0:
                errors.append(f"Item {n}: Quantity must be positive.")
            if item.rate < 0:
                errors.append(f"Item {n}: Rate cannot be negative.")
        if not form.tax.tax_type:
            errors.append("Tax type (CGST/SGST or IGST) must be selected.")

        if errors:
            raise ValidationError(errors)

    def _resolve_clients(self, session: Session, form: InvoiceFormState, mode: str):
        billed_id = form.billed_client_id
        if _has_client_details(form.billing):
            billed_id = self.find_or_create_client(session, form.billing, mode)

        if form.same_as_billed_to:
            return billed_id, billed_id

        shipped_id = form.shipped_client_id
        if _has_client_details(form.shipping):
            shipped_id = self.find_or_create_client(session, form.shipping, mode)
        return billed_id, shipped_id

    def amount_in_words(self, amount) -> str:
        return asyncio.run(amount_to_words(amount, self.to_words))

    def save_invoice(self, form: InvoiceFormState, mode: str = CREATE, invoice_id: Optional[str] = None) -> str:
        """
        Persist the form as a new invoice, or overwrite ``invoice_id`` in edit
        mode. Everything is written in one transaction.
        """
        if mode == EDIT and not invoice_id:
            raise InvoiceError("Invoice id is required in edit mode.")

        totals = form.recalculate()
        words = self.amount_in_words(totals.total_amount_after_tax)
        tax_type = form.tax.tax_type

        try:
            with self.db.session() as session:
                billed_id, shipped_id = self._resolve_clients(session, form, mode)
                self.validate_invoice(session, form, billed_id, shipped_id, invoice_id)
                product_ids = [self.find_or_create_product(session, item) for item in form.items]

                if mode == EDIT:
                    invoice = session.get(Invoice, invoice_id)
                    if invoice is None:
                        raise NotFoundError(f"Invoice {invoice_id} not found")
                    invoice.items.clear()
                    session.flush()
                else:
                    invoice = Invoice()
                    session.add(invoice)

                invoice.invoice_number = form.invoice_number.strip()
                invoice.invoice_date = form.invoice_date
                invoice.transport_mode = form.transport_mode_value
                invoice.vehicle_number = _clean(form.vehicle_number)
                invoice.supply_date_time = form.supply_date_time
                invoice.place_of_supply = _clean(form.place_of_supply)
                invoice.po_rgp_no = _clean(form.po_rgp_no)
                invoice.order_date = form.order_date
                invoice.billed_to_client_id = billed_id
                invoice.shipped_to_client_id = shipped_id
                invoice.tax_type = tax_type
                invoice.cgst_rate = form.tax.cgst_rate if tax_type == CGST_SGST else 0
                invoice.sgst_rate = form.tax.sgst_rate if tax_type == CGST_SGST else 0
                invoice.igst_rate = form.tax.igst_rate if tax_type == IGST else 0
                invoice.packing_cartage_charges = form.tax.packing_cartage_charges or 0
                invoice.total_amount_before_tax = totals.total_amount_before_tax
                invoice.cgst_amount = totals.cgst_amount
                invoice.sgst_amount = totals.sgst_amount
                invoice.igst_amount = totals.igst_amount
                invoice.total_amount_after_tax = totals.total_amount_after_tax
                invoice.total_amount_in_words = words

                for position, (item, product_id) in enumerate(zip(form.items, product_ids)):
                    invoice.items.append(InvoiceItem(
                        product_id=product_id,
                        position=position,
                        quantity=item.quantity,
                        rate=item.rate,
                        taxable_value=item.taxable_value,
                    ))
                session.flush()
                saved_id = invoice.id
        except SQLAlchemyError as e:
            logger.exception("Failed to {} invoice {}", mode, form.invoice_number)
            action = "update" if mode == EDIT else "create"
            raise InvoiceError(f"Failed to {action} invoice: {e}") from e

        logger.info("Invoice {} {}", form.invoice_number, "updated" if mode == EDIT else "created")
        return saved_id

    def get_invoice(self, invoice_id: str) -> Dict[str, Any]:
        with self.db.session() as session:
            invoice = session.scalars(
                select(Invoice)
                .where(Invoice.id == invoice_id)
                .options(
                    selectinload(Invoice.billed_client),
                    selectinload(Invoice.shipped_client),
                    selectinload(Invoice.items).selectinload(InvoiceItem.product),
                )
            ).first()
            if invoice is None:
                raise NotFoundError(f"Invoice {invoice_id} not found")
            return _invoice_to_dict(invoice)

    def load_form(self, invoice_id: str) -> InvoiceFormState:
        return InvoiceFormState.from_invoice(self.get_invoice(invoice_id), self.company.state_code)

    def list_invoices(self, query: str = "", page: int = 1, per_page: Optional[int] = 7) -> InvoicePage:
        """
        Newest invoices first. A dd/mm/yyyy query matches the invoice date;
        any other query matches the invoice number or the billed client's name.
        """
        query = (query or "").strip()
        page = max(1, int(page or 1))
        stmt = select(Invoice)

        if query:
            invoice_date = parse_date_ddmmyyyy(query)
            if invoice_date is not None:
                stmt = stmt.where(Invoice.invoice_date == invoice_date)
            else:
                client_ids = select(Client.id).where(Client.name.ilike(f"%{query}%"))
                stmt = stmt.where(or_(
                    Invoice.invoice_number.ilike(f"%{query}%"),
                    Invoice.billed_to_client_id.in_(client_ids),
                ))

        with self.db.session() as session:
            total = session.scalar(select(func.count()).select_from(stmt.subquery())) or 0
            stmt = stmt.options(selectinload(Invoice.billed_client)).order_by(
                Invoice.created_at.desc(), Invoice.invoice_number.desc()
            )
            if per_page:
                stmt = stmt.offset((page - 1) * per_page).limit(per_page)
            rows = [
                {
                    "id": inv.id,
                    "invoice_number": inv.invoice_number,
                    "invoice_date": inv.invoice_date,
                    "billed_client": inv.billed_client.name if inv.billed_client else None,
                    "tax_type": inv.tax_type,
                    "total_amount_before_tax": inv.total_amount_before_tax,
                    "total_amount_after_tax": inv.total_amount_after_tax,
                }
                for inv in session.scalars(stmt).all()
            ]
        return InvoicePage(invoices=rows, total=total, page=page, per_page=per_page)
