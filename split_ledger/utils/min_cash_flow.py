"""
Min-Cash-Flow Algorithm Module

This module folds stored expenses into per-member net balances and turns those
balances into a short list of payer -> receiver transfers that settle the group.

The accounting model:
1. The creator of an expense paid its full amount up front (+amount)
2. Every split line owes its share (-split.amount), including the creator's own
   line when the creator also participates
3. Net balance = total_paid - total_owed: positive is owed money (creditor),
   negative owes money (debtor)

Settlement uses greedy two-pointer matching between debtors and creditors:
1. Separate members into debtors and creditors, keeping balance-map order
   (or largest amount first with strategy="largest_first")
2. Transfer min(debt, credit) from the current debtor to the current creditor
3. Advance whichever pointer reaches exactly zero
4. Stop when either list is exhausted

Time Complexity: O(n) for matching, O(n log n) with strategy="largest_first"
Space Complexity: O(n) for balances and settlement results

Example Usage:
    from split_ledger.utils.min_cash_flow import calculate_member_balances, min_cash_flow

    balances = calculate_member_balances(expenses, ["A", "B", "C"])
    settlements = min_cash_flow(balances)

    # Result: [SettlementSuggestion(payer_id="B", receiver_id="A", amount=Decimal("40.00")), ...]
"""

import logging
from decimal import ROUND_HALF_UP, Decimal
from typing import Dict, Iterable, List, Mapping, Sequence, Tuple

from split_ledger.exceptions import CalculationError, ValidationError
from split_ledger.schemas.expense_schema import ExpenseRecord
from split_ledger.schemas.group_schema import GroupBalance
from split_ledger.schemas.settlement_schema import SettlementSuggestion
from split_ledger.utils.money import TOLERANCE, to_decimal

# Configure logger
logger = logging.getLogger(__name__)

STRATEGY_IN_ORDER = "in_order"
STRATEGY_LARGEST_FIRST = "largest_first"
SETTLEMENT_STRATEGIES = (STRATEGY_IN_ORDER, STRATEGY_LARGEST_FIRST)

UNKNOWN_MEMBER_NAME = "Unknown member"


def round_decimal(value: Decimal, precision: Decimal = Decimal('0.01')) -> Decimal:
    """
    Round a Decimal value to the specified precision, half away from zero.

    Args:
        value: The Decimal value to round
        precision: The precision to round to (default: 0.01 for cents)

    Returns:
        Rounded Decimal value

    Example:
        >>> round_decimal(Decimal("43.335"))
        Decimal('43.34')
    """
    return value.quantize(precision, rounding=ROUND_HALF_UP)


def validate_balance_sum(balances: Mapping[str, Decimal], tolerance: Decimal = TOLERANCE) -> Decimal:
    """
    Validate that the sum of all balances is approximately zero.

    In a correctly balanced group the net balances add up to zero: every unit
    one member paid is owed by someone. EXACT splits may leave a residual of up
    to 0.01 per expense, so drift can accumulate across many expenses.

    Args:
        balances: Dictionary mapping user_id to net balance
        tolerance: Maximum allowed deviation from zero (default: 0.01)

    Returns:
        The drift (sum of all balances)

    Raises:
        CalculationError: If the drift exceeds the tolerance

    Example:
        >>> validate_balance_sum({"A": Decimal("50"), "B": Decimal("-50")})
        Decimal('0')
    """
    total = sum(balances.values(), Decimal("0"))
    if abs(total) > tolerance:
        raise CalculationError(
            f"Balances not zero-sum: total={total}, tolerance={tolerance}. "
            f"This indicates unbalanced expense data."
        )
    return total


def calculate_member_balances(
    expenses: Sequence[ExpenseRecord],
    member_ids: Iterable[str],
) -> Dict[str, Decimal]:
    """
    Calculate the net balance of every member from a set of expenses.

    Net balance = total_paid - total_owed
    - Positive balance: member is owed money (creditor)
    - Negative balance: member owes money (debtor)

    Every id in member_ids appears in the result, with 0 if untouched. Ids that
    only appear in expenses (for example former members) are added as they
    are seen. The result does not depend on the order of expenses.

    Args:
        expenses: Expenses with amount, creator_id and splits
        member_ids: Active member ids, in the order the result should follow

    Returns:
        Dictionary mapping user_id -> net balance rounded to cents

    Example:
        >>> expense = ExpenseRecord(amount=Decimal("100"), creator_id="A", splits=[
        ...     ExpenseSplit(user_id="A", amount=Decimal("50"), type=SplitType.EQUAL),
        ...     ExpenseSplit(user_id="B", amount=Decimal("50"), type=SplitType.EQUAL),
        ... ])
        >>> calculate_member_balances([expense], ["A", "B"])
        {'A': Decimal('50.00'), 'B': Decimal('-50.00')}
    """
    balances: Dict[str, Decimal] = {member_id: Decimal('0') for member_id in member_ids}

    for expense in expenses:
        creator_id = expense.creator_id

        # Creator fronted the full amount
        balances[creator_id] = balances.get(creator_id, Decimal('0')) + expense.amount

        # Each participant owes their share
        for split in expense.splits:
            balances[split.user_id] = balances.get(split.user_id, Decimal('0')) - split.amount

    # Round all final balances
    return {user_id: round_decimal(balance) for user_id, balance in balances.items()}


def calculate_group_balances(
    expenses: Sequence[ExpenseRecord],
    member_names: Mapping[str, str],
) -> List[GroupBalance]:
    """
    Calculate member balances and attach display names.

    Args:
        expenses: Expenses with amount, creator_id and splits
        member_names: Ordered mapping of member user_id -> name

    Returns:
        One GroupBalance per member, followed by any non-member that still
        appears in an expense
    """
    balances = calculate_member_balances(expenses, member_names.keys())
    return [
        GroupBalance(
            user_id=user_id,
            user_name=member_names.get(user_id, UNKNOWN_MEMBER_NAME),
            balance=balance,
        )
        for user_id, balance in balances.items()
    ]


def _partition(balances: Mapping[str, Decimal]) -> Tuple[List[List], List[List]]:
    debtors = []
    creditors = []
    for user_id, balance in balances.items():
        balance = to_decimal(balance)
        if balance < 0:
            debtors.append([user_id, -balance])  # Store as positive for easier matching
        elif balance > 0:
            creditors.append([user_id, balance])
    return debtors, creditors


def min_cash_flow(
    balances: Mapping[str, Decimal],
    strategy: str = STRATEGY_IN_ORDER,
    max_iterations: int = 10000,
) -> List[SettlementSuggestion]:
    """
    Produce payer -> receiver transfers that bring every balance to zero.

    Greedy two-pointer matching between debtors and creditors. With the
    default "in_order" strategy both lists keep the order of the balance map,
    so the output is deterministic for a given map but not guaranteed to use
    the fewest possible transfers. "largest_first" sorts both lists by amount
    (largest first) before matching.

    Edge Cases Handled:
    - Empty balances or all zero: returns []
    - Only creditors or only debtors: returns []
    - Balances not zero-sum: the unmatched remainder is left unsettled

    Args:
        balances: Dictionary mapping user_id -> net balance
        strategy: "in_order" (default) or "largest_first"
        max_iterations: Safety limit on matching steps

    Returns:
        List of SettlementSuggestion with amounts rounded to cents

    Raises:
        ValidationError: If the strategy is unknown
        CalculationError: If max_iterations is exceeded

    Example:
        >>> min_cash_flow({"A": Decimal("20"), "B": Decimal("-20")})
        [SettlementSuggestion(payer_id='B', receiver_id='A', amount=Decimal('20.00'))]
    """
    if strategy not in SETTLEMENT_STRATEGIES:
        raise ValidationError(f"Unknown settlement strategy: {strategy}")

    debtors, creditors = _partition(balances)

    if strategy == STRATEGY_LARGEST_FIRST:
        # Stable sort keeps map order among equal amounts
        debtors.sort(key=lambda x: x[1], reverse=True)
        creditors.sort(key=lambda x: x[1], reverse=True)

    settlements: List[SettlementSuggestion] = []
    iterations = 0

    i, j = 0, 0
    while i < len(debtors) and j < len(creditors):
        iterations += 1

        # Safety check: prevent infinite loops
        if iterations > max_iterations:
            raise CalculationError(
                f"Settlement loop exceeded max_iterations ({max_iterations}). "
                f"This may indicate malformed input."
            )

        debtor = debtors[i]
        creditor = creditors[j]

        amount = min(debtor[1], creditor[1])

        settlements.append(SettlementSuggestion(
            payer_id=debtor[0],
            receiver_id=creditor[0],
            amount=round_decimal(amount),
        ))

        debtor[1] -= amount
        creditor[1] -= amount

        if debtor[1] == 0:
            i += 1
        if creditor[1] == 0:
            j += 1

    logger.debug(f"Settled {len(debtors)} debtors and {len(creditors)} creditors with {len(settlements)} transfers")

    return settlements
