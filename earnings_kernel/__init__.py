"""
Earnings Kernel

Domain and persistence core for instructor payment accounts:
- Single-state payment-account lifecycle (none -> pending -> complete)
- Immutable payment records read from the ledger store
- Exact decimal money arithmetic
- Structured logging and typed errors
"""

__version__ = "0.1.0"
