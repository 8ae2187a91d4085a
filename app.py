import streamlit as st
from datetime import date, datetime
from loguru import logger

from config import COMPANY_PROFILE, configure_logging, get_settings
from db import create_database
from invoice_form import FormError, InvoiceFormState
from invoice_generator import (
    COPY_LABELS, generate_invoice_pdf, generate_register_csv_bytes, generate_register_xlsx_bytes,
)
from invoice_service import CREATE, EDIT, InvoiceError, InvoiceService, ValidationError
from tax_calc import CGST_SGST, IGST, TAX_TYPES
from utils import TRANSPORT_MODES, format_date_ddmmyyyy

# ---------------------------------------------------
# PAGE CONFIG
# ---------------------------------------------------
st.set_page_config(page_title="S R Precision Tools - Invoices", layout="wide")

settings = get_settings()


@st.cache_resource
def get_service() -> InvoiceService:
    configure_logging(settings.LOG_LEVEL, settings.DEBUG)
    database = create_database(settings.DATABASE_URL)
    logger.info("Invoice app started")
    return InvoiceService(
        database,
        COMPANY_PROFILE,
        invoice_prefix=settings.INVOICE_PREFIX,
        number_width=settings.INVOICE_NUMBER_WIDTH,
    )


service = get_service()

# ---------------------------------------------------
# CUSTOM CSS STYLING
# ---------------------------------------------------
st.markdown("""
    <style>
        .main, .stApp {
            background-color: #f7faff;
        }
        h1, h2, h3, h4 {
            color: #0b5394;
        }
        .company-header {
            text-align: center;
            background-color: #ffffff;
            color: #cc0000;
            padding: 12px 0;
            border-radius: 8px;
            border: 1px solid #f1c5c5;
            margin-bottom: 15px;
        }
        .company-header h2 {
            margin: 0;
            font-weight: 700;
            color: #cc0000;
        }
        .company-header p {
            margin: 2px 0;
            font-size: 13px;
        }
        .section-title {
            font-size: 20px;
            color: #0b5394;
            font-weight: 700;
            border-bottom: 2px solid #0b5394;
            margin: 12px 0;
            padding-bottom: 4px;
        }
        .summary-box {
            background-color: #eaf1fb;
            padding: 12px 18px;
            border-radius: 8px;
            font-weight: 600;
            margin-top: 15px;
            border-left: 4px solid #0b5394;
        }
    </style>
""", unsafe_allow_html=True)

# ---------------------------------------------------
# COMPANY HEADER
# ---------------------------------------------------
st.markdown(f"""
<div class="company-header">
    <h2>{COMPANY_PROFILE.name}</h2>
    <p>{COMPANY_PROFILE.address_line1}, {COMPANY_PROFILE.address_line2}</p>
    <p>GSTIN: {COMPANY_PROFILE.gstin} | 📞 {COMPANY_PROFILE.mobile} | ✉️ {COMPANY_PROFILE.email}</p>
</div>
""", unsafe_allow_html=True)

# Initialize session state
if "page" not in st.session_state:
    st.session_state.page = "Dashboard"
if "dashboard_page" not in st.session_state:
    st.session_state.dashboard_page = 1
if "query" not in st.session_state:
    st.session_state.query = ""


def go_to(page, **state):
    st.session_state.page = page
    for key, value in state.items():
        st.session_state[key] = value
    st.rerun()


def section(title):
    st.markdown(f'<div class="section-title">{title}</div>', unsafe_allow_html=True)


# ---------------------------------------------------
# DASHBOARD
# ---------------------------------------------------
def render_dashboard():
    st.title("🧾 Invoices Dashboard")
    flash = st.session_state.pop("flash", None)
    if flash:
        st.success(flash)

    col1, col2 = st.columns([4, 1])
    with col1:
        query = st.text_input("Search by client, invoice no. or date (dd/mm/yyyy)",
                              value=st.session_state.query)
    with col2:
        st.write("")
        if st.button("➕ Create Invoice"):
            st.session_state.form = service.new_form()
            go_to("Create Invoice")

    if query != st.session_state.query:
        st.session_state.query = query
        st.session_state.dashboard_page = 1

    result = service.list_invoices(query, st.session_state.dashboard_page, settings.PAGE_SIZE)
    if not result.invoices:
        st.info("📝 No invoices found.")
        return

    header = st.columns([2, 2, 3, 2, 2, 3, 1])
    for col, label in zip(header, ["Invoice No.", "Date", "Billed To", "Tax", "Total", "PDF", ""]):
        col.markdown(f"**{label}**")

    for inv in result.invoices:
        row = st.columns([2, 2, 3, 2, 2, 3, 1])
        row[0].write(inv["invoice_number"])
        row[1].write(format_date_ddmmyyyy(inv["invoice_date"]))
        row[2].write(inv["billed_client"] or "N/A")
        row[3].write("CGST+SGST" if inv["tax_type"] == CGST_SGST else "IGST")
        row[4].write(f"₹{inv['total_amount_after_tax'] or 0:,.2f}")
        with row[5]:
            copy_type = st.selectbox("Copy", list(COPY_LABELS), key=f"copy_{inv['id']}",
                                     label_visibility="collapsed")
            if st.button("Prepare PDF", key=f"pdf_{inv['id']}"):
                try:
                    pdf = generate_invoice_pdf(service.get_invoice(inv["id"]), copy_type,
                                               COMPANY_PROFILE, settings.PDF_FONT_PATH)
                except InvoiceError as e:
                    st.error(str(e))
                else:
                    st.download_button("📄 Download PDF", data=pdf,
                                       file_name=f"Invoice_{inv['invoice_number']}.pdf",
                                       mime="application/pdf", key=f"dl_{inv['id']}")
        if row[6].button("✏️", key=f"edit_{inv['id']}"):
            st.session_state.form = service.load_form(inv["id"])
            go_to("Edit Invoice", edit_invoice_id=inv["id"])

    # Pagination
    col1, col2, col3 = st.columns([1, 2, 1])
    with col1:
        if st.button("◀ Previous", disabled=result.page <= 1):
            st.session_state.dashboard_page -= 1
            st.rerun()
    with col2:
        first = (result.page - 1) * result.per_page + 1
        last = min(result.page * result.per_page, result.total)
        st.caption(f"Showing {first}-{last} of {result.total} | Page {result.page} of {result.total_pages}")
    with col3:
        if st.button("Next ▶", disabled=result.page >= result.total_pages):
            st.session_state.dashboard_page += 1
            st.rerun()

    # Register export
    register = service.list_invoices(query, per_page=None).invoices
    col1, col2 = st.columns(2)
    with col1:
        st.download_button("⬇️ Download register (CSV)", data=generate_register_csv_bytes(register),
                           file_name="invoice_register.csv", mime="text/csv")
    with col2:
        st.download_button("⬇️ Download register (Excel)", data=generate_register_xlsx_bytes(register),
                           file_name="invoice_register.xlsx",
                           mime="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet")


# ---------------------------------------------------
# CLIENT / PRODUCT ADD FORMS
# ---------------------------------------------------
def render_add_client(form: InvoiceFormState):
    with st.expander("➕ Add new client"):
        with st.form("add_client", clear_on_submit=True):
            details = {
                "name": st.text_input("Client Name *"),
                "address": st.text_input("Address"),
                "gstin": st.text_input("GSTIN"),
                "phone": st.text_input("Phone"),
                "state": st.text_input("State"),
                "state_code": st.text_input("State Code"),
            }
            if st.form_submit_button("Save Client"):
                try:
                    client = service.add_client(details)
                except InvoiceError as e:
                    st.error(str(e))
                else:
                    form.select_billing_client(client)
                    st.success(f"Client '{client['name']}' added.")


def render_add_product(form: InvoiceFormState):
    with st.expander("➕ Add new product"):
        with st.form("add_product", clear_on_submit=True):
            name = st.text_input("Product Name *")
            hsn = st.text_input("HSN/SAC Code")
            if st.form_submit_button("Save Product"):
                try:
                    product = service.add_product(name, hsn)
                except InvoiceError as e:
                    st.error(str(e))
                else:
                    target = next((i for i, it in enumerate(form.items) if not it.product_id), None)
                    if target is None:
                        form.add_item_row()
                        target = len(form.items) - 1
                    form.select_product(target, product)
                    st.success(f"Product '{product['name']}' added.")


def client_picker(label, key, on_select):
    search = st.text_input(f"Search {label}", key=f"{key}_search")
    options = service.suggest_clients(search)
    if options:
        labels = ["Select..."] + [f"{o['label']} ({o['data'].get('gstin') or 'Unregistered'})" for o in options]
        choice = st.selectbox(f"Matching {label}", labels, key=f"{key}_choice")
        if choice != labels[0] and st.button(f"Use selected {label.lower()}", key=f"{key}_use"):
            on_select(options[labels.index(choice) - 1]["data"])
            st.rerun()


def client_fields(details, key, on_change, disabled=False):
    fields = [("name", "Name"), ("address", "Address"), ("gstin", "GSTIN"),
              ("phone", "Phone"), ("state", "State"), ("state_code", "State Code")]
    for field_name, label in fields:
        current = details.get(field_name) or ""
        value = st.text_input(label, value=current, key=f"{key}_{field_name}_{details.get('id')}",
                              disabled=disabled)
        if value != current:
            on_change(field_name, value)


# ---------------------------------------------------
# CREATE / EDIT INVOICE
# ---------------------------------------------------
def render_invoice_form(mode):
    form: InvoiceFormState = st.session_state.get("form")
    if form is None:
        form = st.session_state.form = service.new_form()

    st.title("🧾 Create Invoice" if mode == CREATE else f"✏️ Edit Invoice {form.invoice_number}")
    if st.button("◀ Back to dashboard"):
        go_to("Dashboard")

    # Invoice details
    section("Invoice Details")
    col1, col2, col3 = st.columns(3)
    with col1:
        form.invoice_number = st.text_input("Invoice No.", value=form.invoice_number)
        form.invoice_date = st.date_input("Invoice Date", value=form.invoice_date or date.today(),
                                          format="DD/MM/YYYY")
        form.order_date = st.date_input("Order Date", value=form.order_date, format="DD/MM/YYYY")
    with col2:
        supply = form.supply_date_time or datetime.now().replace(second=0, microsecond=0)
        supply_date = st.date_input("Date of Supply", value=supply.date(), format="DD/MM/YYYY")
        supply_time = st.time_input("Time of Supply", value=supply.time())
        form.supply_date_time = datetime.combine(supply_date, supply_time)
        form.po_rgp_no = st.text_input("P.O./RGP No.", value=form.po_rgp_no)
    with col3:
        mode_choice = st.selectbox("Transport Mode", TRANSPORT_MODES,
                                   index=TRANSPORT_MODES.index(form.transport_mode))
        other = ""
        if mode_choice == "Other":
            other = st.text_input("Specify transport mode", value=form.other_transport_mode)
        form.set_transport_mode(mode_choice, other)
        form.vehicle_number = st.text_input("Vehicle No.", value=form.vehicle_number)
        form.place_of_supply = st.text_input("Place of Supply", value=form.place_of_supply)

    # Billing / shipping
    col1, col2 = st.columns(2)
    with col1:
        section("Billed To")
        client_picker("Billing client", "billing", form.select_billing_client)
        client_fields(form.billing, "billing", form.edit_billing_detail)
        render_add_client(form)
    with col2:
        section("Shipped To")
        same = st.checkbox("Same as Billed To", value=form.same_as_billed_to)
        if same != form.same_as_billed_to:
            form.set_same_as_billed_to(same)
        if not form.same_as_billed_to:
            client_picker("Shipping client", "shipping", form.select_shipping_client)
        client_fields(form.shipping, "shipping", form.edit_shipping_detail, disabled=form.same_as_billed_to)

    # Items
    section("Items")
    for i, item in enumerate(form.items):
        cols = st.columns([4, 2, 2, 2, 2, 1])
        with cols[0]:
            name = st.text_input(f"Product {i+1}", value=item.name or "", key=f"name{i}")
            if name != (item.name or ""):
                matches = service.suggest_products(name, limit=1)
                if matches and matches[0]["label"].lower() == name.strip().lower():
                    form.select_product(i, matches[0]["data"])
                else:
                    form.update_item(i, "name", name)
        with cols[1]:
            hsn = st.text_input(f"HSN/SAC {i+1}", value=item.hsn_sac_code or "", key=f"hsn{i}")
            if hsn != (item.hsn_sac_code or ""):
                form.update_item(i, "hsn_sac_code", hsn)
        with cols[2]:
            qty = st.number_input(f"Qty {i+1}", min_value=0.0, value=float(item.quantity), key=f"qty{i}")
            if qty != item.quantity:
                form.update_item(i, "quantity", qty)
        with cols[3]:
            rate = st.number_input(f"Rate {i+1}", min_value=0.0, value=float(item.rate), key=f"rate{i}")
            if rate != item.rate:
                form.update_item(i, "rate", rate)
        cols[4].metric(f"Amount {i+1}", f"₹{item.taxable_value:,.2f}")
        if cols[5].button("🗑️", key=f"rm{i}"):
            try:
                form.remove_item_row(i)
            except FormError as e:
                st.warning(str(e))
            else:
                st.rerun()
    if st.button("➕ Add Item"):
        form.add_item_row()
        st.rerun()
    render_add_product(form)

    # Tax & totals
    section("Tax & Totals")
    col1, col2 = st.columns(2)
    with col1:
        tax_type = st.radio("Tax Type", TAX_TYPES, horizontal=True,
                            index=TAX_TYPES.index(form.tax.tax_type or IGST),
                            format_func=lambda t: "CGST + SGST" if t == CGST_SGST else "IGST")
        if tax_type != form.tax.tax_type:
            form.set_tax_type(tax_type)
        if form.tax.tax_type == CGST_SGST:
            form.set_rates(
                cgst=st.number_input("CGST %", min_value=0.0, value=float(form.tax.cgst_rate)),
                sgst=st.number_input("SGST %", min_value=0.0, value=float(form.tax.sgst_rate)),
            )
        else:
            form.set_rates(igst=st.number_input("IGST %", min_value=0.0, value=float(form.tax.igst_rate)))
        form.set_packing_charges(st.number_input("Packing/Cartage Charges", min_value=0.0,
                                                 value=float(form.tax.packing_cartage_charges)))
    with col2:
        totals = form.totals
        tax_lines = (f"CGST: ₹{totals.cgst_amount:,.2f} | SGST: ₹{totals.sgst_amount:,.2f}"
                     if form.tax.tax_type == CGST_SGST else f"IGST: ₹{totals.igst_amount:,.2f}")
        st.markdown(f"""
        <div class="summary-box">
            Taxable Amount: ₹{totals.total_amount_before_tax:,.2f}<br>
            {tax_lines}<br>
            <b>Grand Total: ₹{totals.total_amount_after_tax:,.2f}</b><br>
            <i>{service.amount_in_words(totals.total_amount_after_tax)}</i>
        </div>
        """, unsafe_allow_html=True)

    if st.button("💾 Save Invoice" if mode == CREATE else "💾 Update Invoice", type="primary"):
        try:
            service.save_invoice(form, mode, st.session_state.get("edit_invoice_id"))
        except ValidationError as e:
            for message in e.messages:
                st.error(message)
        except InvoiceError as e:
            st.error(str(e))
        else:
            st.session_state.form = None
            go_to("Dashboard", flash=f"Invoice {form.invoice_number} {'updated' if mode == EDIT else 'created'} successfully.")


# ---------------------------------------------------
# ROUTING
# ---------------------------------------------------
if st.session_state.page == "Dashboard":
    render_dashboard()
elif st.session_state.page == "Create Invoice":
    render_invoice_form(CREATE)
else:
    render_invoice_form(EDIT)
