# ==============================================================================
# Base Abstract Classes
# ==============================================================================
"""
The storage port and SQL dialect contract every backing store implements.
"""

from siteanalytics.base.storage import Dialect, Statement, StoragePort

__all__ = [
    "Dialect",
    "Statement",
    "StoragePort",
]
