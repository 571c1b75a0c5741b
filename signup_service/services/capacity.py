# signup_service/services/capacity.py
"""
Capacity evaluation for a single role pool. Pure, no I/O.

``reserved_count`` must be CONFIRMED + WAITLIST_PENDING for the signer's role,
counted inside the same transaction that performs the write.
"""


class SignupDecision:
    CONFIRMED = "CONFIRMED"
    WAITLIST = "WAITLIST"
    REJECTED = "REJECTED"


def decide(reserved_count: int, capacity: int, waitlist_enabled: bool) -> str:
    if reserved_count < capacity:
        return SignupDecision.CONFIRMED
    if waitlist_enabled:
        return SignupDecision.WAITLIST
    return SignupDecision.REJECTED


def available_slots(reserved_count: int, capacity: int) -> int:
    return max(0, capacity - reserved_count)
