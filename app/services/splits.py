from dataclasses import dataclass
from decimal import ROUND_DOWN, Decimal
from typing import List, Optional

from ..models.split import SplitType


class SplitAllocationError(ValueError):
    pass


@dataclass
class Participant:
    email: str
    name: str
    percentage: Optional[float] = None
    amount: Optional[float] = None


@dataclass
class Share:
    email: str
    name: str
    amount: float
    percentage: Optional[float] = None
    is_payer: bool = False


def _cents(value: float) -> float:
    return round(value, 2)


def allocate_split(
    total: float,
    payer: Participant,
    participants: List[Participant],
    split_type: SplitType,
) -> List[Share]:
    """Divide ``total`` between the payer and ``participants``.

    The payer's share is always whatever is left once the participants'
    shares are rounded to cents, so the shares add up to ``total`` exactly.
    The payer's share comes first in the result.
    """
    if not participants:
        raise SplitAllocationError("At least one participant is required")

    split_type = SplitType(split_type)
    shares: List[Share] = []

    if split_type is SplitType.equal:
        # shares are cut down to the cent so the payer never ends up below zero
        each = float((Decimal(str(total)) / (len(participants) + 1)).quantize(Decimal("0.01"), rounding=ROUND_DOWN))
        if each <= 0:
            raise SplitAllocationError(
                f"Total is too small to split equally between {len(participants) + 1} people"
            )
        for p in participants:
            shares.append(Share(email=p.email, name=p.name, amount=each))
        payer_percentage = None

    elif split_type is SplitType.percentage:
        total_percentage = 0.0
        for p in participants:
            if p.percentage is None or p.percentage <= 0:
                raise SplitAllocationError(f"Invalid percentage for participant {p.email}")
            total_percentage += p.percentage
        if total_percentage > 100:
            raise SplitAllocationError("Total percentage cannot exceed 100%")
        for p in participants:
            shares.append(
                Share(email=p.email, name=p.name, amount=_cents(total * p.percentage / 100), percentage=p.percentage)
            )
        payer_percentage = round(100 - total_percentage, 2)

    else:
        for p in participants:
            if p.amount is None or p.amount <= 0:
                raise SplitAllocationError(f"Invalid amount for participant {p.email}")
        if _cents(sum(p.amount for p in participants)) > _cents(total):
            raise SplitAllocationError("Split amounts cannot exceed total expense amount")
        for p in participants:
            shares.append(Share(email=p.email, name=p.name, amount=_cents(p.amount)))
        payer_percentage = None

    payer_amount = _cents(total - sum(s.amount for s in shares))
    if payer_amount < 0:
        raise SplitAllocationError("Split amounts cannot exceed total expense amount")

    payer_share = Share(
        email=payer.email,
        name=payer.name,
        amount=payer_amount,
        percentage=payer_percentage,
        is_payer=True,
    )
    return [payer_share] + shares
