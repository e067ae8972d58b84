"""
Incentive Kernel

Sales-incentive calculation core with:
- Slab and target based payout resolution
- A calculation lifecycle state machine with versioned corrections
- Sequential multi-level approval with delegation, escalation and expiry
- Optimistic concurrency at the persistence boundary
- Domain events delivered through a transactional outbox
"""

__version__ = "0.1.0"
