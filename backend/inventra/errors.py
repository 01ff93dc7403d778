# Overview: Typed error taxonomy shared by services, routes and the CLI.

"""
Ledger error taxonomy.

Every service raises one of these before or during a transaction. Routes map
them to HTTP responses via `status_code`; nothing here is ever swallowed.
"""

from __future__ import annotations


class LedgerError(Exception):
    """Base class for user-displayable ledger failures."""

    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"error": self.message, "code": type(self).__name__}


class ValidationError(LedgerError):
    """Non-positive amount, missing required field, malformed input."""

    status_code = 400


class NotFoundError(LedgerError):
    """Customer, invoice, payment, material, variant or item absent."""

    status_code = 404


class InsufficientStockError(LedgerError):
    """Operation would drive a Stock row negative."""

    status_code = 409


class InsufficientCreditError(LedgerError):
    """Refund or credit payment exceeds the customer's available credit."""

    status_code = 409


class OverpaymentError(LedgerError):
    """Payment exceeds what is owed on an invoice or account."""

    status_code = 409


class InvalidStateError(LedgerError):
    """Operation not allowed in the entity's current state."""

    status_code = 409


class ConflictError(LedgerError):
    """Unique-constraint or optimistic-version conflict at the persistence layer."""

    status_code = 409
