"""
Call activity report aggregation.

Merges a tenant's inbound queue, outbound queue, campaign activity and CDR
report feeds into one time-ordered, deduplicated, incrementally revealed
stream.
"""

__version__ = "1.0.0"
