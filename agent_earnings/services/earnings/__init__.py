"""
Earnings ingestion, ledger and lifecycle services.
"""
