"""
Contact Ledger.

Credit balances, subscriptions and exactly-once contact unlocks for
businesses on a service marketplace.
"""

__version__ = "0.1.0"
