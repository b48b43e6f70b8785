"""
Customer referral credits: spend oldest credits first.
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Awaitable, Callable, List, Optional, Tuple

from core.models import CustomerCredit


@dataclass
class CreditAllocation:
    # (credit id, amount taken, new remaining amount)
    entries: List[Tuple[str, float, float]] = field(default_factory=list)

    @property
    def consumed(self) -> float:
        return round(sum(taken for _, taken, _ in self.entries), 2)


def usable_credits(credits: List[CustomerCredit], now: datetime) -> List[CustomerCredit]:
    """Positive, unexpired credits, oldest first."""
    usable = [
        c for c in credits
        if c.remaining_amount > 0 and (c.expires_at is None or c.expires_at > now)
    ]
    return sorted(usable, key=lambda c: (c.created_at is None, c.created_at or now))


def take_from(credit: CustomerCredit, amount_left: float) -> Tuple[float, float]:
    """(amount taken from this credit, its new remaining amount)."""
    taken = min(credit.remaining_amount, amount_left)
    return taken, round(credit.remaining_amount - taken, 2)


CommitFn = Callable[[CustomerCredit, float, float], Awaitable[bool]]


async def allocate_credits(
    credits: List[CustomerCredit],
    amount: float,
    now: datetime,
    commit: Optional[CommitFn] = None,
) -> CreditAllocation:
    """
    Pay ``amount`` from a customer's credits.

    Never takes more than requested nor more than a credit holds. When
    ``commit(credit, taken, remaining)`` is given it persists each step;
    a step it rejects keeps that credit's balance and the next credit
    covers the rest.
    """
    allocation = CreditAllocation()
    left = amount
    for credit in usable_credits(credits, now):
        if left <= 0:
            break
        taken, remaining = take_from(credit, left)
        if commit is not None and not await commit(credit, taken, remaining):
            continue
        allocation.entries.append((credit.id, taken, remaining))
        left -= taken
    return allocation
