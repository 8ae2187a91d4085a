import os
from io import BytesIO

import pandas as pd
from loguru import logger
from reportlab.lib.pagesizes import A4
from reportlab.lib.utils import simpleSplit
from reportlab.pdfbase import pdfmetrics
from reportlab.pdfbase.ttfonts import TTFont
from reportlab.pdfgen import canvas

from config import COMPANY_PROFILE
from tax_calc import CGST_SGST
from utils import format_date_ddmmyyyy, format_supply_datetime

COPY_LABELS = {
    "original": "ORIGINAL FOR RECIPIENT",
    "duplicate": "DUPLICATE FOR TRANSPORTER",
    "triplicate": "TRIPLICATE FOR SUPPLIER",
}

BRAND_RED = (0.8, 0, 0)

REGISTER_COLUMNS = {
    "invoice_number": "Invoice No.",
    "invoice_date": "Invoice Date",
    "billed_client": "Billed To",
    "tax_type": "Tax Type",
    "total_amount_before_tax": "Taxable Amount",
    "total_amount_after_tax": "Grand Total",
}


def register_pdf_font(font_path):
    """
    Register a TTF font carrying the rupee glyph.
    Returns (regular, bold, currency) for drawing; falls back to Helvetica.
    """
    if font_path and os.path.exists(font_path):
        try:
            pdfmetrics.registerFont(TTFont("InvoiceFont", font_path))
            return "InvoiceFont", "InvoiceFont", "₹"
        except Exception as e:
            logger.warning("Could not register PDF font {}: {}", font_path, e)
    return "Helvetica", "Helvetica-Bold", "Rs."


def _client_lines(client):
    if not client:
        return ["N/A"]
    lines = [client.get("name") or "N/A"]
    if client.get("address"):
        lines.append(client["address"])
    if client.get("gstin"):
        lines.append(f"GSTIN: {client['gstin']}")
    if client.get("phone"):
        lines.append(f"Phone: {client['phone']}")
    if client.get("state"):
        lines.append(f"State: {client['state']} ({client.get('state_code') or ''})")
    return lines


def _wrap_lines(lines, font, size, max_width):
    wrapped = []
    for line in lines:
        wrapped.extend(simpleSplit(line, font, size, max_width) or [""])
    return wrapped


def _totals_rows(invoice, cur):
    taxable = invoice.get("total_amount_before_tax") or 0
    packing = invoice.get("packing_cartage_charges") or 0
    rows = [("Subtotal", f"{cur} {taxable - packing:.2f}")]
    if packing > 0:
        rows.append(("Packing/Cartage", f"{cur} {packing:.2f}"))
    rows.append(("Taxable Amount", f"{cur} {taxable:.2f}"))
    if invoice.get("tax_type") == CGST_SGST:
        rows.append((f"CGST @{invoice.get('cgst_rate') or 0:g}%", f"{cur} {invoice.get('cgst_amount') or 0:.2f}"))
        rows.append((f"SGST @{invoice.get('sgst_rate') or 0:g}%", f"{cur} {invoice.get('sgst_amount') or 0:.2f}"))
    else:
        rows.append((f"IGST @{invoice.get('igst_rate') or 0:g}%", f"{cur} {invoice.get('igst_amount') or 0:.2f}"))
    return rows


def generate_invoice_pdf(invoice_dict, copy_type="original", company=COMPANY_PROFILE, font_path=""):
    """Render one copy of a stored invoice (see InvoiceService.get_invoice) as A4 PDF bytes."""
    if copy_type not in COPY_LABELS:
        raise ValueError(f"Unknown invoice copy type: {copy_type}")
    regular, bold, cur = register_pdf_font(font_path)

    buffer = BytesIO()
    c = canvas.Canvas(buffer, pagesize=A4)
    c.setTitle(f"Invoice {invoice_dict['invoice_number']}")
    width, height = A4

    # Set initial coordinates
    x, y = 40, height - 40

    # Company Header
    c.setFillColorRGB(*BRAND_RED)
    c.setFont(bold, 16)
    c.drawCentredString(width/2, y, company.name)
    y -= 16
    c.setFont(regular, 9)
    for line in (company.address_line1, company.address_line2,
                 f"Mobile: {company.mobile} | Email: {company.email}"):
        c.drawCentredString(width/2, y, line)
        y -= 12
    c.setFont(bold, 9)
    c.drawCentredString(width/2, y, f"GSTIN: {company.gstin}")
    c.setFillColorRGB(0, 0, 0)
    y -= 20

    # Tax Invoice Heading
    c.setFont(bold, 12)
    c.drawString(x, y, "TAX INVOICE")
    c.drawRightString(width - x, y, COPY_LABELS[copy_type])
    y -= 8
    c.line(x, y, width - x, y)
    y -= 16

    # Billed To / Shipped To
    c.setFont(bold, 10)
    c.drawString(x, y, "Billed To:")
    c.drawString(width/2, y, "Shipped To:")
    y -= 14
    c.setFont(regular, 9)
    column = width/2 - x - 10
    billed = _wrap_lines(_client_lines(invoice_dict.get("billed_client")), regular, 9, column)
    shipped = _wrap_lines(_client_lines(invoice_dict.get("shipped_client")), regular, 9, column)
    for i in range(max(len(billed), len(shipped))):
        if i < len(billed):
            c.drawString(x, y, billed[i])
        if i < len(shipped):
            c.drawString(width/2, y, shipped[i])
        y -= 12
    y -= 4
    c.line(x, y, width - x, y)
    y -= 16

    # Invoice Details
    left = [
        ("Invoice No:", invoice_dict["invoice_number"]),
        ("Invoice Date:", format_date_ddmmyyyy(invoice_dict.get("invoice_date"))),
        ("Order Date:", format_date_ddmmyyyy(invoice_dict.get("order_date")) if invoice_dict.get("order_date") else "N/A"),
        ("Date & Time of Supply:", format_supply_datetime(invoice_dict.get("supply_date_time"))),
    ]
    right = [
        (label, invoice_dict.get(key))
        for label, key in (
            ("P.O./RGP No:", "po_rgp_no"),
            ("Transport Mode:", "transport_mode"),
            ("Vehicle No:", "vehicle_number"),
            ("Place of Supply:", "place_of_supply"),
        )
        if invoice_dict.get(key)
    ]
    for i in range(max(len(left), len(right))):
        if i < len(left):
            c.setFont(bold, 9)
            c.drawString(x, y, left[i][0])
            c.setFont(regular, 9)
            c.drawString(x + 120, y, str(left[i][1]))
        if i < len(right):
            c.setFont(bold, 9)
            c.drawString(width/2, y, right[i][0])
            c.setFont(regular, 9)
            c.drawString(width/2 + 100, y, str(right[i][1]))
        y -= 13
    y -= 10

    # Table Header
    headers = ["Sr. No.", "Description", "HSN/SAC", "Qty", f"Rate ({cur})", f"Amount ({cur})"]
    positions = [x, x+45, x+280, x+345, x+395, x+460]

    def draw_table_header(y):
        c.setFont(bold, 9)
        for header, pos in zip(headers, positions):
            c.drawString(pos, y, header)
        c.line(x, y - 5, width - x, y - 5)
        return y - 18

    y = draw_table_header(y)

    # Table Items
    c.setFont(regular, 9)
    description_width = positions[2] - positions[1] - 8
    for sr, item in enumerate(invoice_dict.get("items", []), start=1):
        description = _wrap_lines([str(item.get("product_name") or "N/A")], regular, 9, description_width)
        if y - 11 * (len(description) - 1) < 100:
            c.showPage()
            y = draw_table_header(height - 40)
            c.setFont(regular, 9)
        c.drawString(positions[0], y, str(sr))
        for n, line in enumerate(description):
            c.drawString(positions[1], y - 11 * n, line)
        c.drawString(positions[2], y, str(item.get("hsn_sac_code") or "-"))
        c.drawString(positions[3], y, f"{item['quantity']:g}")
        c.drawString(positions[4], y, f"{item['rate']:.2f}")
        c.drawString(positions[5], y, f"{item['taxable_value']:.2f}")
        y -= 15 + 11 * (len(description) - 1)

        # Page break if needed
        if y < 100:
            c.showPage()
            y = draw_table_header(height - 40)
            c.setFont(regular, 9)

    # Bank details + totals need roughly 330pt below the table
    if y < 330:
        c.showPage()
        y = height - 40
    c.line(x, y, width - x, y)
    y -= 16

    # Bank Details
    block_top = y
    c.setFont(bold, 10)
    c.drawString(x, y, "BANK DETAILS:")
    c.setFont(regular, 9)
    for line in (f"Name: {company.bank_name}", f"Branch: {company.bank_branch}",
                 f"A/c No.: {company.bank_account_no}", f"IFSC Code: {company.bank_ifsc_code}"):
        y -= 13
        c.drawString(x, y, line)

    # Totals
    ty = block_top
    for label, value in _totals_rows(invoice_dict, cur):
        c.setFont(bold, 9)
        c.drawString(width/2 + 10, ty, label)
        c.setFont(regular, 9)
        c.drawRightString(width - x, ty, value)
        ty -= 13
    c.line(width/2 + 10, ty + 8, width - x, ty + 8)
    grand_total = round(invoice_dict.get("total_amount_after_tax") or 0)
    c.setFont(bold, 11)
    c.drawString(width/2 + 10, ty - 4, "Grand Total")
    c.drawRightString(width - x, ty - 4, f"{cur} {grand_total:.2f}")
    y = min(y, ty - 4) - 24

    # Amount in Words
    c.setFont(bold, 9)
    words = f"Amount in Words: {invoice_dict.get('total_amount_in_words') or ''}"
    for line in _wrap_lines([words], bold, 9, width - 2 * x):
        c.drawString(x, y, line)
        y -= 11
    y -= 7
    c.line(x, y + 8, width - x, y + 8)

    # Terms and Conditions
    c.setFont(bold, 10)
    c.drawString(x, y - 6, "TERMS AND CONDITIONS:")
    y -= 20
    c.setFont(regular, 8)
    for n, term in enumerate(company.terms, start=1):
        c.drawString(x, y, f"{n}. {term}")
        y -= 11

    # Signatures
    y = max(min(y - 40, 90), 50)
    c.line(x + 30, y, x + 180, y)
    c.line(width - x - 180, y, width - x - 30, y)
    c.setFont(bold, 9)
    c.drawCentredString(x + 105, y - 12, "Receiver Signature")
    c.drawCentredString(width - x - 105, y - 12, company.signatory_text)

    c.showPage()
    c.save()
    buffer.seek(0)
    return buffer.read()


def _register_frame(invoices):
    df = pd.DataFrame(invoices, columns=list(REGISTER_COLUMNS))
    df["invoice_date"] = df["invoice_date"].map(format_date_ddmmyyyy)
    return df.rename(columns=REGISTER_COLUMNS)


def generate_register_csv_bytes(invoices):
    df = _register_frame(invoices)
    buffer = BytesIO()
    buffer.write(df.to_csv(index=False).encode('utf-8'))
    buffer.seek(0)
    return buffer.getvalue()


def generate_register_xlsx_bytes(invoices):
    df = _register_frame(invoices)
    buffer = BytesIO()

    with pd.ExcelWriter(buffer, engine="openpyxl") as writer:
        df.to_excel(writer, index=False, sheet_name="Invoices")
        totals_df = pd.DataFrame([{
            "Invoices": len(df),
            "Taxable Amount": df["Taxable Amount"].sum(),
            "Grand Total": df["Grand Total"].sum(),
        }])
        totals_df.to_excel(writer, index=False, sheet_name="Totals")

    buffer.seek(0)
    return buffer.getvalue()
