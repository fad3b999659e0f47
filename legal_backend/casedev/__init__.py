"""
Case.dev Integration
====================
"""

from .client import CaseDevClient, CaseDevError, get_casedev_client, close_casedev_client

__all__ = [
    "CaseDevClient",
    "CaseDevError",
    "get_casedev_client",
    "close_casedev_client",
]
