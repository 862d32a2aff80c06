"""View model for the drill-down transaction table and its detail panels."""

from collections.abc import Sequence
from typing import Any, Final

from core.models import ColumnProperty, Transaction, TransactionCharges
from core.view_types import CellTone, TransactionColumnViewModel, TransactionRowViewModel
from utils.formatting import fmt_datetime, format_money

# (key, label) in display order; dynamic columns go between the two chunks.
FIXED_LEADING_COLUMNS: Final[tuple[tuple[str, str], ...]] = (
    ("reference", "Reference"),
    ("transaction_date", "Date"),
    ("business_day", "Business Day"),
    ("payment_method", "Payment Method"),
    ("amount", "Amount"),
    ("in_transit_due_date", "In-Transit Deadline"),
    ("settlement_status", "Settlement Status"),
)
FIXED_TRAILING_COLUMNS: Final[tuple[tuple[str, str], ...]] = (("charges", "Charges"),)

# First match wins.
_STATUS_TONES: Final[tuple[tuple[str, CellTone], ...]] = (
    ("EXCEPTION", "negative"),
    ("INTRANSIT", "info"),
    ("RECONCILED", "positive"),
)


def status_tone(*status_tags: str) -> CellTone:
    """Pick the tone for a pair of status tags (reconciliation/posting and settlement)."""
    for status, tone in _STATUS_TONES:
        if status in status_tags:
            return tone
    return "neutral"


def sorted_columns(column_properties: Sequence[ColumnProperty]) -> list[ColumnProperty]:
    return sorted(column_properties, key=lambda c: c.order)


def table_columns(column_properties: Sequence[ColumnProperty]) -> list[TransactionColumnViewModel]:
    columns: list[TransactionColumnViewModel] = [{"key": key, "label": label, "info": None, "dynamic": False} for key, label in FIXED_LEADING_COLUMNS]
    columns.extend({"key": c.accessor, "label": c.label, "info": c.info, "dynamic": True} for c in sorted_columns(column_properties))
    columns.extend({"key": key, "label": label, "info": None, "dynamic": False} for key, label in FIXED_TRAILING_COLUMNS)
    return columns


def resolve_dynamic_value(transaction: Transaction, column: ColumnProperty) -> Any:
    """Look a backend-declared column up on a transaction by its accessor name.

    List columns render each ``{Key, Value}`` entry as ``"Key: Value"``.
    """
    record = transaction.model_dump(by_alias=True)
    value = record.get(column.accessor)
    if column.is_list and isinstance(value, (list, tuple)):
        rendered = []
        for item in value:
            if isinstance(item, dict):
                rendered.append(f"{item.get('Key', '')}: {item.get('Value') if item.get('Value') is not None else ''}")
            else:
                rendered.append(str(item))
        return rendered
    return value


def settlement_detail(transaction: Transaction) -> dict[str, Any]:
    return {
        "amount": format_money(transaction.amount),
        "acquirer_amount": format_money(transaction.acquirer_amount),
        "variance": format_money(transaction.transaction_variance),
        "mismatches": transaction.mismatch_names or None,
        "batch_transactions_amount": format_money(transaction.batch_transactions_amount),
        "batch_amount": format_money(transaction.settlement_batch_amount),
        "settlement_variance": format_money(transaction.settlement_variance),
        "batch_reference": transaction.batch_reconciliation_reference,
        "batch_date": fmt_datetime(transaction.batch_reconciliation_date),
    }


def charges_detail(charges: TransactionCharges) -> dict[str, Any]:
    return {
        "contractual_fees": format_money(charges.contractual_fees_amount),
        "contractual_vat": format_money(charges.contractual_vat_amount),
        "applied_fees": format_money(charges.applied_fees_amount),
        "applied_vat": format_money(charges.applied_vat_amount),
        "charges_variance": format_money(charges.charges_variance),
        "charge_mismatches": charges.charge_mismatch_names or None,
        "postings_amount": format_money(charges.postings_amount),
        "postings_batch_amount": format_money(charges.postings_batch_amount),
        "postings_variance": format_money(charges.postings_variance),
        "batch_reference": charges.batch_reconciliation_reference,
        "batch_date": fmt_datetime(charges.batch_reconciliation_date),
    }


def build_transaction_row(transaction: Transaction, columns: Sequence[ColumnProperty]) -> TransactionRowViewModel:
    charges = transaction.charges
    cells: dict[str, Any] = {
        "reference": transaction.reference,
        "transaction_date": fmt_datetime(transaction.transaction_date),
        "business_day": fmt_datetime(transaction.business_day),
        "payment_method": transaction.payment_method_name,
        "amount": format_money(transaction.amount),
        "in_transit_due_date": fmt_datetime(transaction.in_transit_due_date),
        "settlement_status": transaction.blended_settlement_status_name or transaction.blended_settlement_status_tag,
    }
    for column in columns:
        cells[column.accessor] = resolve_dynamic_value(transaction, column)
    cells["charges"] = charges.blended_charges_status_name or charges.blended_charges_status_tag

    return {
        "key": transaction.reference,
        "cells": cells,
        "settlement_tone": status_tone(transaction.reconciliation_status_tag, transaction.settlement_status_tag),
        "charges_tone": status_tone(charges.charges_reconciliation_status_tag, charges.charges_posting_status_tag),
        "in_transit_overdue": transaction.is_in_transit_overdue,
        "settlement_detail": settlement_detail(transaction),
        "charges_detail": charges_detail(charges),
    }


def build_transaction_table(transactions: Sequence[Transaction], column_properties: Sequence[ColumnProperty]) -> dict[str, Any]:
    columns = sorted_columns(column_properties)
    return {
        "columns": table_columns(column_properties),
        "rows": [build_transaction_row(t, columns) for t in transactions],
    }
