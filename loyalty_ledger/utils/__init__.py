"""
Shared utilities: error types, error responses and logging setup.
"""
