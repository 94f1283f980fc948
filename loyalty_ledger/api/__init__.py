"""
HTTP API blueprints for the loyalty ledger.
"""
