# Overview: Normalised view of business documents for accounting rule evaluation.

"""
Transaction sources

A TransactionSource is what the rule evaluator sees of a purchase order,
PO receipt, invoice, payment or inventory transfer: category, reference,
date, divisions, transaction type, the bill-to / remit-to parties, a flat
dict of filterable fields and the named amounts a rule line can pick from.

Amount names are matched case-insensitively.

    PO / PO receipt   Total PO Value, Sum of line, Item total price,
                      Total GST value, Total PO CGST, Total PO SGST,
                      Total PO IGST
    Invoice           Total invoice value, Total item value, Total GST value
    Payment           Payment amount, Amount, Total amount, Payment value
    Transfer          Total transfer value, Item total price
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date

from ..models import Invoice, InventoryTransfer, Payment, PurchaseOrder
from ..models.finance import CATEGORY_INVOICE, CATEGORY_PAYMENT, CATEGORY_PO, CATEGORY_TRANSFER


PO_AMOUNT_SOURCES = (
    "Total PO Value",
    "Sum of line",
    "Item total price",
    "Total GST value",
    "Total PO CGST",
    "Total PO SGST",
    "Total PO IGST",
)
INVOICE_AMOUNT_SOURCES = ("Total invoice value", "Total item value", "Total GST value")
PAYMENT_AMOUNT_SOURCES = ("Payment amount", "Amount", "Total amount", "Payment value")
TRANSFER_AMOUNT_SOURCES = ("Total transfer value", "Item total price")

AMOUNT_SOURCES_BY_CATEGORY = {
    CATEGORY_PO: PO_AMOUNT_SOURCES,
    CATEGORY_INVOICE: INVOICE_AMOUNT_SOURCES,
    CATEGORY_PAYMENT: PAYMENT_AMOUNT_SOURCES,
    CATEGORY_TRANSFER: TRANSFER_AMOUNT_SOURCES,
}


def is_valid_amount_source(category: str, name: str | None) -> bool:
    if not name:
        return False
    allowed = AMOUNT_SOURCES_BY_CATEGORY.get(category, ())
    return name.strip().lower() in {a.lower() for a in allowed}


@dataclass
class TransactionSource:
    org_id: int
    category: str
    reference: str
    transaction_date: date | None
    division_id: int | None = None
    destination_division_id: int | None = None
    transaction_type: str | None = None
    bill_to_org_id: int | None = None
    remit_to_org_id: int | None = None
    bill_to_contact_id: int | None = None
    remit_to_contact_id: int | None = None
    fields: dict = field(default_factory=dict)
    amounts: dict = field(default_factory=dict)

    def __post_init__(self):
        self.amounts = {k.strip().lower(): v for k, v in self.amounts.items()}

    def amount(self, name: str | None) -> int | None:
        if not name:
            return None
        return self.amounts.get(name.strip().lower())


def _gst_split(gst_rows) -> tuple[int, int, int]:
    cgst = sum(r.cgst_cents for r in gst_rows)
    sgst = sum(r.sgst_cents for r in gst_rows)
    igst = sum(r.igst_cents for r in gst_rows)
    return cgst, sgst, igst


def _po_fields(po: PurchaseOrder) -> dict:
    return {
        "po_number": po.po_number,
        "status": po.status,
        "supplier_id": po.supplier_org_id,
        "supplier_code": po.supplier.code if po.supplier else None,
        "supplier_name": po.supplier.name if po.supplier else None,
        "division_id": po.division_id,
        "division_code": po.division.code if po.division else None,
        "payment_terms": po.payment_terms,
        "is_interstate": po.is_interstate,
        "total_cents": po.total_cents,
        "total_gst_cents": po.total_gst_cents,
    }


def from_purchase_order(po: PurchaseOrder) -> TransactionSource:
    cgst, sgst, igst = _gst_split(po.gst_breakdown)
    return TransactionSource(
        org_id=po.org_id,
        category=CATEGORY_PO,
        reference=po.po_number,
        transaction_date=po.po_date,
        division_id=po.division_id,
        bill_to_org_id=po.org_id,
        remit_to_org_id=po.supplier_org_id,
        fields=_po_fields(po),
        amounts={
            "Total PO Value": po.total_cents,
            "Sum of line": po.total_item_cents,
            "Item total price": po.total_item_cents,
            "Total GST value": po.total_gst_cents,
            "Total PO CGST": cgst,
            "Total PO SGST": sgst,
            "Total PO IGST": igst,
        },
    )


def from_po_receipt(po: PurchaseOrder, received: list[tuple], *, reference: str, receipt_date=None) -> TransactionSource:
    """
    Source for one receiving event.

    received holds (PurchaseOrderLine, quantity) pairs; amounts are computed
    over the received quantities only, GST split the same way as the PO.
    """
    item_total = 0
    gst_total = 0
    for line, qty in received:
        value = qty * line.unit_price_cents
        item_total += value
        gst_total += (value * line.gst_bps + 5000) // 10000

    if po.is_interstate:
        cgst = sgst = 0
        igst = gst_total
    else:
        cgst = gst_total // 2
        sgst = gst_total - cgst
        igst = 0

    fields = _po_fields(po)
    fields["receipt_reference"] = reference
    return TransactionSource(
        org_id=po.org_id,
        category=CATEGORY_PO,
        reference=po.po_number,
        transaction_date=receipt_date or po.po_date,
        division_id=po.division_id,
        bill_to_org_id=po.org_id,
        remit_to_org_id=po.supplier_org_id,
        fields=fields,
        amounts={
            "Total PO Value": item_total + gst_total,
            "Sum of line": item_total,
            "Item total price": item_total,
            "Total GST value": gst_total,
            "Total PO CGST": cgst,
            "Total PO SGST": sgst,
            "Total PO IGST": igst,
        },
    )


def from_invoice(invoice: Invoice) -> TransactionSource:
    return TransactionSource(
        org_id=invoice.org_id,
        category=CATEGORY_INVOICE,
        reference=invoice.invoice_number,
        transaction_date=invoice.invoice_date,
        division_id=invoice.division_id,
        bill_to_org_id=invoice.bill_to_org_id,
        remit_to_org_id=invoice.remit_to_org_id,
        bill_to_contact_id=invoice.bill_to_contact_id,
        remit_to_contact_id=invoice.remit_to_contact_id,
        fields={
            "invoice_number": invoice.invoice_number,
            "status": invoice.status,
            "po_number": invoice.purchase_order.po_number if invoice.purchase_order else None,
            "supplier_id": invoice.remit_to_org_id,
            "supplier_code": invoice.remit_to.code if invoice.remit_to else None,
            "supplier_name": invoice.remit_to.name if invoice.remit_to else None,
            "division_id": invoice.division_id,
            "total_cents": invoice.total_cents,
            "total_gst_cents": invoice.total_gst_cents,
        },
        amounts={
            "Total invoice value": invoice.total_cents,
            "Total item value": invoice.total_item_cents,
            "Total GST value": invoice.total_gst_cents,
        },
    )


def from_payment(payment: Payment) -> TransactionSource:
    """The payment mode is the transaction type a rule can narrow on."""
    invoice = payment.invoice
    return TransactionSource(
        org_id=payment.org_id,
        category=CATEGORY_PAYMENT,
        reference=payment.payment_number,
        transaction_date=payment.payment_date,
        division_id=payment.division_id,
        transaction_type=payment.payment_mode,
        bill_to_org_id=payment.org_id,
        remit_to_org_id=payment.payee_org_id,
        bill_to_contact_id=invoice.bill_to_contact_id if invoice else None,
        remit_to_contact_id=invoice.remit_to_contact_id if invoice else None,
        fields={
            "payment_number": payment.payment_number,
            "payment_mode": payment.payment_mode,
            "status": payment.status,
            "payee_id": payment.payee_org_id,
            "payee_code": payment.payee.code if payment.payee else None,
            "payee_name": payment.payee.name if payment.payee else None,
            "invoice_number": invoice.invoice_number if invoice else None,
            "reference_number": payment.reference_number,
            "division_id": payment.division_id,
            "amount_cents": payment.amount_cents,
        },
        amounts={
            "Payment amount": payment.amount_cents,
            "Amount": payment.amount_cents,
            "Total amount": payment.amount_cents,
            "Payment value": payment.amount_cents,
        },
    )


def from_transfer(transfer: InventoryTransfer) -> TransactionSource:
    total = transfer.total_value_cents
    return TransactionSource(
        org_id=transfer.org_id,
        category=CATEGORY_TRANSFER,
        reference=transfer.transfer_number,
        transaction_date=transfer.transfer_date,
        division_id=transfer.origin_division_id,
        destination_division_id=transfer.destination_division_id,
        bill_to_org_id=transfer.org_id,
        remit_to_org_id=transfer.org_id,
        fields={
            "transfer_number": transfer.transfer_number,
            "status": transfer.status,
            "tracking_number": transfer.tracking_number,
            "origin_division_id": transfer.origin_division_id,
            "origin_division_code": transfer.origin_division.code if transfer.origin_division else None,
            "destination_division_id": transfer.destination_division_id,
            "destination_division_code": (
                transfer.destination_division.code if transfer.destination_division else None
            ),
            "total_value_cents": total,
        },
        amounts={
            "Total transfer value": total,
            "Item total price": total,
        },
    )
