"""
Payment settlement.

Allocates a tendered amount across the carried balance, the parking fee
and the queue of unpaid fines, in that order.
"""

from collections.abc import Sequence
from dataclasses import dataclass
from decimal import Decimal

from parkflow.domain.errors import ValidationError
from parkflow.domain.models import ZERO, Fine, Settlement


@dataclass
class PaymentSettlement:
    """
    Waterfall allocator for exit payments.

    The carried balance is added to the tender first. A negative balance
    is an earlier shortfall and the tender clears it before anything else;
    that cleared part is booked as parking revenue. Whatever remains goes
    to the parking fee, then to fines oldest first. A fine is only paid
    when the remainder covers it in full, and allocation stops at the first
    fine that cannot be covered. The unconsumed remainder, which may be
    negative, becomes the new balance.

    Example:
        >>> settlement = PaymentSettlement().apply(
        ...     balance=Decimal("0"), tendered=Decimal("100"),
        ...     parking_fee=Decimal("20"), unpaid_fines=[],
        ... )
        >>> settlement.new_balance
        Decimal('80')
    """

    def apply(
        self,
        balance: Decimal,
        tendered: Decimal,
        parking_fee: Decimal,
        unpaid_fines: Sequence[Fine],
    ) -> Settlement:
        """
        Allocate a tendered amount.

        Args:
            balance: Vehicle's carried balance before this exit.
            tendered: Amount handed over at the exit.
            parking_fee: Fee for the session being closed.
            unpaid_fines: Unpaid fines, oldest first.

        Returns:
            Settlement: What was paid and the balance to carry forward.

        Raises:
            ValidationError: If tendered is negative.
        """
        if tendered < 0:
            raise ValidationError(f"Tendered amount must be non-negative, got {tendered}")

        balance_cleared = min(-balance, tendered) if balance < 0 else ZERO
        parking_fee_paid = balance_cleared

        remaining = tendered + balance
        if remaining > 0:
            parking_fee_paid += min(remaining, parking_fee)
        remaining -= parking_fee

        paid: list[Fine] = []
        for fine in unpaid_fines:
            if remaining < fine.amount:
                break
            paid.append(fine)
            remaining -= fine.amount

        return Settlement(
            balance_cleared=balance_cleared,
            parking_fee_paid=parking_fee_paid,
            paid_fines=tuple(paid),
            fine_amount_paid=sum((fine.amount for fine in paid), ZERO),
            new_balance=remaining,
        )
