"""
Settlement Kernel

Persistence and ledger core of the settlement engine:
- Append-only double-entry ledger with idempotent postings
- Immutable FX snapshots per payment lifecycle point
- Per-organization chart of accounts with five rail clearing accounts
- Typed exceptions and structured logging shared by every package
"""

__version__ = "0.1.0"
