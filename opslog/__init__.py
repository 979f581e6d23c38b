"""
opslog - access-scoped revision engine for shift logs.

Logs are append-only revision trees, visible only to accounts that share
a group with the log's creator, and deletable only by administrators.
"""

__version__ = "1.0.0"
