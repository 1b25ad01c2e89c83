"""
Services package for the premium system.

- users: EntitlementStore, read-through/write-invalidate user access.
- gift_codes: GiftCodeStore, code generation and redemption.
- expiry: ExpirySweeper, periodic demotion of lapsed users.
"""

from .expiry import ExpirySweeper, SweepReport
from .gift_codes import GiftCodeStore, generate_code
from .users import EntitlementStore

__all__ = [
    "EntitlementStore",
    "ExpirySweeper",
    "GiftCodeStore",
    "SweepReport",
    "generate_code",
]
