"""Trust & Safety moderation engine.

This package provides:
- Report intake with per-reporter de-duplication
- The moderation workflow state machine (review, dismiss, remove, escalate)
- An escalating strike ledger with posting restrictions and suspensions
- Anonymity guarantees for reporters and anonymous authors
- An append-only audit trail usable as legal evidence
"""
