"""
Flipping trade store.

SQLite persistence for item-flipping trade history: accounts, their items and
offer events, recipe flips, and account-wide preferences, plus the one-time
conversion from the older per-account JSON documents.
"""

__version__ = "1.0.0"
