"""
PARHub: legacy data reconciliation and identity resolution for the shop CRM.
"""

__version__ = "1.0.0"
