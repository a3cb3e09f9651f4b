"""
Payment ledger: idempotent writer of payment and invoice facts.
"""

from billing.ledger.services import PaymentLedger
from billing.ledger.types import InvoiceData

__all__ = ["InvoiceData", "PaymentLedger"]
