# Overview: Spreadsheet (XLSX) exports of tenant data sets.

from __future__ import annotations

import io

from openpyxl import Workbook
from openpyxl.styles import Font
from openpyxl.utils import get_column_letter

from . import (
    general_ledger_service,
    inventory_service,
    invoice_service,
    journal_service,
    master_data_service,
    purchase_order_service,
    transfer_service,
)
from .session_service import SessionContext


XLSX_MIMETYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


class ExportError(Exception):
    """Raised for an unknown export data set."""
    pass


def build_workbook(title: str, columns: list[tuple[str, str]], rows: list[dict]) -> bytes:
    """
    Render rows as a single-sheet workbook.

    columns is a list of (key, header) pairs; the header row is bold and
    frozen. Returns the XLSX file content.
    """
    wb = Workbook()
    sheet = wb.active
    sheet.title = (title or "Export")[:31]

    sheet.append([header for _, header in columns])
    for cell in sheet[1]:
        cell.font = Font(bold=True)
    sheet.freeze_panes = "A2"

    for row in rows:
        sheet.append([row.get(key) for key, _ in columns])

    for idx, (key, header) in enumerate(columns, start=1):
        width = max([len(str(header))] + [len(str(r.get(key))) for r in rows if r.get(key) is not None])
        sheet.column_dimensions[get_column_letter(idx)].width = min(max(width + 2, 10), 60)

    buffer = io.BytesIO()
    wb.save(buffer)
    return buffer.getvalue()


def _items(ctx: SessionContext, args: dict) -> list[dict]:
    return [i.to_dict(include_children=False) for i in master_data_service.list_items(ctx, search=args.get("search"))]


def _stock(ctx: SessionContext, args: dict) -> list[dict]:
    division_id = args.get("division_id")
    return inventory_service.stock_summary(ctx, division_id=int(division_id) if division_id else None)


def _transfers(ctx: SessionContext, args: dict) -> list[dict]:
    return [t.to_dict(include_lines=False) for t in transfer_service.list_transfers(ctx, status=args.get("status"))]


def _purchase_orders(ctx: SessionContext, args: dict) -> list[dict]:
    return [
        po.to_dict(include_lines=False)
        for po in purchase_order_service.list_purchase_orders(ctx, status=args.get("status"))
    ]


def _invoices(ctx: SessionContext, args: dict) -> list[dict]:
    return [i.to_dict(include_lines=False) for i in invoice_service.list_invoices(ctx, status=args.get("status"))]


def _journals(ctx: SessionContext, args: dict) -> list[dict]:
    return [j.to_dict(include_lines=False) for j in journal_service.list_journals(ctx, status=args.get("status"))]


def _general_ledger(ctx: SessionContext, args: dict) -> list[dict]:
    remit_to = args.get("remit_to_id")
    if ctx.org_id is None:
        return []
    parties = [int(remit_to)] if remit_to else general_ledger_service.counterparties(ctx.org_id)
    rows = []
    for party_id in parties:
        for row in general_ledger_service.ledger_statement(ctx.org_id, party_id):
            rows.append(dict(row, remit_to_id=party_id))
    return rows


# dataset -> (sheet title, required permission, columns, loader)
DATASETS = {
    "items": (
        "Items",
        "view-item",
        [("item_code", "Item Code"), ("description", "Description"), ("item_group", "Item Group"),
         ("category", "Category"), ("uom", "UOM"), ("gst_bps", "GST (bps)"), ("status", "Status")],
        _items,
    ),
    "stock": (
        "Stock",
        "view-inventory",
        [("division_code", "Division"), ("item_code", "Item Code"), ("description", "Description"),
         ("uom", "UOM"), ("available_quantity", "Available"), ("in_process_quantity", "In Process"),
         ("unit_cost_cents", "Unit Cost (cents)"), ("available_value_cents", "Value (cents)")],
        _stock,
    ),
    "transfers": (
        "Transfers",
        "View Inventory transfer",
        [("transfer_number", "Transfer #"), ("transfer_date", "Date"), ("origin_division_code", "From"),
         ("destination_division_code", "To"), ("tracking_number", "Tracking #"), ("status", "Status"),
         ("total_value_cents", "Value (cents)")],
        _transfers,
    ),
    "purchase-orders": (
        "Purchase Orders",
        "View PO",
        [("po_number", "PO #"), ("po_date", "Date"), ("supplier_code", "Supplier"), ("division_code", "Division"),
         ("status", "Status"), ("total_item_cents", "Items (cents)"), ("total_gst_cents", "GST (cents)"),
         ("total_cents", "Total (cents)")],
        _purchase_orders,
    ),
    "invoices": (
        "Invoices",
        "View Invoices",
        [("invoice_number", "Invoice #"), ("invoice_date", "Date"), ("due_date", "Due"),
         ("remit_to_code", "Remit To"), ("status", "Status"), ("total_cents", "Total (cents)")],
        _invoices,
    ),
    "journals": (
        "Journals",
        "View Journal",
        [("journal_number", "Journal #"), ("journal_date", "Date"), ("source_type", "Source"),
         ("source_reference", "Reference"), ("status", "Status"), ("total_debit_cents", "Debit (cents)"),
         ("total_credit_cents", "Credit (cents)")],
        _journals,
    ),
    "general-ledger": (
        "General Ledger",
        "View General Ledger",
        [("remit_to_id", "Remit To"), ("transaction_date", "Date"), ("transaction_type", "Type"),
         ("reference_number", "Reference"), ("debit_cents", "Debit (cents)"), ("credit_cents", "Credit (cents)"),
         ("running_balance_cents", "Balance (cents)")],
        _general_ledger,
    ),
}


def dataset_permission(dataset: str) -> str:
    if dataset not in DATASETS:
        raise ExportError(f"Unknown export: {dataset}")
    return DATASETS[dataset][1]


def export_dataset(ctx: SessionContext, dataset: str, args: dict | None = None) -> tuple[str, bytes]:
    """Returns (filename, xlsx bytes) for a data set, scoped to the caller's organization."""
    if dataset not in DATASETS:
        raise ExportError(f"Unknown export: {dataset}")
    title, _, columns, loader = DATASETS[dataset]
    rows = loader(ctx, args or {})
    filename = f"{dataset}-{ctx.org_code or 'export'}.xlsx"
    return filename, build_workbook(title, columns, rows)
