"""
Branch Finance

Installment-based debt amortization and ledger-posting engine for branch
loans and payment plans. All money math uses Decimal and every accounting
entry is written through a single posting path.
"""

__version__ = "1.0.0"
