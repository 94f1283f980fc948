"""
Middleware package for the loyalty ledger.
"""
from .auth_context import get_caller_from_request, require_role

__all__ = ['get_caller_from_request', 'require_role']
