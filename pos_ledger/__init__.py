"""Point-of-sale sales, refund and stock ledger."""

__version__ = "0.1.0"
