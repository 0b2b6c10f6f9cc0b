"""
Usage ledger storage.

Persists tracked usage metrics in SQLite.
"""
