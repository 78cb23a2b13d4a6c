"""
Investment Core

Value-accrual and withdrawal-eligibility engine for fixed-term investment
products: daily capped accrual, profit claims, escrowed withdrawals with
manual approval, and an append-only transaction ledger.
"""

__version__ = "1.0.0"
