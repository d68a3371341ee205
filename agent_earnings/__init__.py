"""
Agent Earnings Backend

Backend service for agent earnings administration that provides:
- Bulk ingestion of earnings from JSON or CSV with a reconciliation report
- Review lifecycle (approve / reject, single and bulk)
- Exactly-once application of confirmed earnings to agent balances
- REST API for the admin console
"""

__version__ = "0.1.0"
