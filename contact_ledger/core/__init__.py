"""
Core modules for Contact Ledger.

This package contains unlock pricing, the in-memory ledgers, the
read-only catalogs and the unlock engine.
"""
