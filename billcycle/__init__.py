"""
Billcycle - Billing-Cycle & Ledger Computation Engine

Pure, date-driven arithmetic for personal credit cards, bank accounts,
recurring bills, installment loans and budgets.

DESIGN PRINCIPLES:
1. The engine never performs I/O - callers load and persist records
2. Every operation returns new records, inputs are never mutated
3. Calendar-day semantics only (no time, no timezone)
4. Malformed input degrades to a safe default, domain violations raise
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Billcycle Team"
