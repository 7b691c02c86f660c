"""
finbridge: backend between a browser client and the Plaid API.

Exchanges Link tokens for access credentials, polls asynchronously
generated reports, and syncs transactions through Plaid's cursor feed.
"""

__version__ = "0.1.0"
