# ==============================================================================
# Site Analytics
# ==============================================================================
"""
Website event ingestion, session derivation, aggregate analytics and
deterministic experiment bucketing.
"""

__version__ = "0.1.0"
