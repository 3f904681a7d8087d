"""
Commerce Ledger API.

HTTP surface over the ledger service.
"""

__version__ = "0.1.0"
