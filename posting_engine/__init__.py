"""
Posting Engine - rule-driven journal and subledger posting.

Turns document lifecycle changes (invoice approved, payment created, ...)
into posted double-entry journals:
- GST breakdown per tax percentage
- Configured accounting rule matching
- Balanced journal generation and posting
- Per-party subledger entries linked to the journal
- Idempotent, retriable posting outcomes
"""

__version__ = "0.1.0"
