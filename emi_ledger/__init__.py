"""
EMI Ledger

Loan amortization and payment ledger engine for a personal-finance tracker:
EMI calculation, amortization schedules and a replayable payment ledger,
with all money math done in Decimal.
"""

__version__ = "1.0.0"
