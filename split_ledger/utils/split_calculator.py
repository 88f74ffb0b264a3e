"""
Split Calculator Module

Turns an expense total, a member list and a division policy into a list of
per-member splits whose amounts reconcile with the total.

Three policies are supported:
1. EQUAL: the total is divided evenly in minor units (cents, or whole units for
   zero-decimal currencies). Leftover minor units go one each to the first
   members in input order, so the sum is always exact.
2. EXACT: the caller provides every member's amount. The sum must match the
   total within the 0.01 reconciliation tolerance; a residual inside the
   tolerance is reported but not corrected.
3. PERCENTAGE: the caller provides every member's percentage (summing to 100).
   The rounding residual is added to the first member so the sum is exact.

Example Usage:
    from split_ledger.schemas.expense_schema import (
        ExpenseMember, SplitCalculationInput, SplitType
    )
    from split_ledger.utils.split_calculator import calculate_splits

    result = calculate_splits(SplitCalculationInput(
        total_amount=Decimal("100"),
        currency="USD",
        members=[ExpenseMember(id="a", name="Ana"), ExpenseMember(id="b", name="Bo"),
                 ExpenseMember(id="c", name="Cy")],
        split_type=SplitType.EQUAL,
    ))
    # amounts: 33.34, 33.33, 33.33
"""

import logging
from decimal import ROUND_HALF_UP, Decimal
from typing import Dict, List

from split_ledger.exceptions import CalculationError, ValidationError
from split_ledger.schemas.expense_schema import (
    CustomSplit,
    ExpenseMember,
    ExpenseSplit,
    SplitCalculationInput,
    SplitCalculationResult,
    SplitSummary,
    SplitType,
)
from split_ledger.utils.money import (
    CURRENCY_CONFIG,
    TOLERANCE,
    get_quantum,
    is_supported_currency,
    round_amount,
    to_decimal,
)

logger = logging.getLogger(__name__)

UNKNOWN_MEMBER_NAME = "Unknown member"


def calculate_splits(split_input: SplitCalculationInput) -> SplitCalculationResult:
    """
    Calculate the splits of an expense according to its split type.

    Args:
        split_input: Total, currency, members, split type and, for EXACT and
            PERCENTAGE, one custom split per member

    Returns:
        SplitCalculationResult with the splits, the allocated total and the
        unresolved remainder

    Raises:
        ValidationError: If the input is malformed or contradictory
        CalculationError: If EXACT amounts do not reconcile with the total
    """
    validate_split_input(split_input)

    if split_input.split_type == SplitType.EQUAL:
        result = _calculate_equal_splits(split_input)
    elif split_input.split_type == SplitType.EXACT:
        result = _calculate_exact_splits(split_input)
    elif split_input.split_type == SplitType.PERCENTAGE:
        result = _calculate_percentage_splits(split_input)
    else:
        raise ValidationError(f"Unsupported split type: {split_input.split_type}")

    logger.debug(
        f"Calculated {split_input.split_type.value} split of {split_input.total_amount} "
        f"{split_input.currency} across {len(result.splits)} members"
    )
    return result


def validate_split_input(split_input: SplitCalculationInput) -> None:
    """
    Validate a split calculation input before any arithmetic happens.

    Raises:
        ValidationError: On a non-positive total, unsupported currency, empty or
            duplicated members, or custom splits that do not name exactly the
            member set
    """
    if not is_supported_currency(split_input.currency):
        raise ValidationError(f"Unsupported currency: {split_input.currency}")

    total = split_input.total_amount
    if not total.is_finite() or total <= 0 or round_amount(total, split_input.currency) <= 0:
        raise ValidationError("Total amount must be greater than 0")

    if not split_input.members:
        raise ValidationError("There must be at least one member")

    member_ids = [member.id for member in split_input.members]
    if len(member_ids) != len(set(member_ids)):
        raise ValidationError("Member ids must be unique")

    if split_input.split_type in (SplitType.EXACT, SplitType.PERCENTAGE):
        custom_splits = split_input.custom_splits
        if not custom_splits:
            raise ValidationError(
                f"Custom splits are required for {split_input.split_type.value} splits"
            )

        custom_ids = [split.user_id for split in custom_splits]
        if len(custom_ids) != len(set(custom_ids)):
            raise ValidationError("Custom splits must not repeat a member")

        if set(custom_ids) != set(member_ids):
            missing = set(member_ids) - set(custom_ids)
            extra = set(custom_ids) - set(member_ids)
            raise ValidationError(
                f"Every member must have exactly one custom split. "
                f"Missing: {sorted(missing)}, unknown: {sorted(extra)}"
            )


def _custom_splits_by_member(split_input: SplitCalculationInput) -> Dict[str, CustomSplit]:
    return {split.user_id: split for split in split_input.custom_splits or []}


def _calculate_equal_splits(split_input: SplitCalculationInput) -> SplitCalculationResult:
    currency = split_input.currency
    places = CURRENCY_CONFIG[currency].decimal_places
    quantum = get_quantum(currency)

    total = round_amount(split_input.total_amount, currency)
    total_minor = int(total.scaleb(places))

    base_minor, remainder_minor = divmod(total_minor, len(split_input.members))

    splits = []
    for index, member in enumerate(split_input.members):
        # The first `remainder_minor` members absorb one extra minor unit each
        minor = base_minor + 1 if index < remainder_minor else base_minor
        splits.append(ExpenseSplit(
            user_id=member.id,
            amount=Decimal(minor).scaleb(-places).quantize(quantum),
            type=SplitType.EQUAL,
        ))

    return SplitCalculationResult(
        splits=splits,
        total_allocated=total,
        remainder=Decimal("0"),
    )


def _calculate_exact_splits(split_input: SplitCalculationInput) -> SplitCalculationResult:
    currency = split_input.currency
    custom_by_member = _custom_splits_by_member(split_input)

    splits = []
    total_allocated = Decimal("0")

    for member in split_input.members:
        custom_split = custom_by_member.get(member.id)
        if custom_split is None or custom_split.amount is None:
            raise ValidationError(f"Amount required for member {member.name}")

        if custom_split.amount < 0:
            raise ValidationError(f"Amount cannot be negative for {member.name}")

        amount = round_amount(custom_split.amount, currency)
        total_allocated += amount
        splits.append(ExpenseSplit(user_id=member.id, amount=amount, type=SplitType.EXACT))

    total = round_amount(split_input.total_amount, currency)
    remainder = total - total_allocated

    if abs(remainder) > TOLERANCE:
        raise CalculationError(
            f"Sum of exact amounts ({total_allocated}) does not match the total "
            f"({total}). Difference: {remainder}"
        )

    return SplitCalculationResult(
        splits=splits,
        total_allocated=total_allocated,
        remainder=remainder,
    )


def _calculate_percentage_splits(split_input: SplitCalculationInput) -> SplitCalculationResult:
    currency = split_input.currency
    custom_by_member = _custom_splits_by_member(split_input)

    percentages: Dict[str, Decimal] = {}
    total_percentage = Decimal("0")

    for member in split_input.members:
        custom_split = custom_by_member.get(member.id)
        if custom_split is None or custom_split.percentage is None:
            raise ValidationError(f"Percentage required for member {member.name}")

        percentage = custom_split.percentage
        if percentage < 0 or percentage > 100:
            raise ValidationError(f"Invalid percentage for {member.name}: {percentage}%")

        total_percentage += percentage
        percentages[member.id] = percentage

    if abs(total_percentage - 100) > TOLERANCE:
        raise ValidationError(f"Percentages must add up to 100%. Current total: {total_percentage}%")

    total = round_amount(split_input.total_amount, currency)

    splits = []
    for member in split_input.members:
        percentage = percentages[member.id]
        splits.append(ExpenseSplit(
            user_id=member.id,
            amount=round_amount(total * percentage / 100, currency),
            type=SplitType.PERCENTAGE,
            percentage=percentage,
        ))

    residual = total - sum((split.amount for split in splits), Decimal("0"))
    if residual != 0:
        splits[0].amount = round_amount(splits[0].amount + residual, currency)
        logger.info(f"Applied rounding adjustment of {residual} {currency} to member {splits[0].user_id}")

    return SplitCalculationResult(
        splits=splits,
        total_allocated=total,
        remainder=Decimal("0"),
    )


def validate_splits_total(splits: List[ExpenseSplit], expected_total: Decimal) -> bool:
    """Check that splits add up to the expected total within the tolerance."""
    cents = Decimal("0.01")
    actual = sum((split.amount for split in splits), Decimal("0")).quantize(cents, rounding=ROUND_HALF_UP)
    expected = to_decimal(expected_total).quantize(cents, rounding=ROUND_HALF_UP)
    return abs(actual - expected) <= TOLERANCE


def get_split_summary(splits: List[ExpenseSplit], members: List[ExpenseMember]) -> List[SplitSummary]:
    """Join splits with member names for display."""
    member_map = {member.id: member for member in members}

    return [
        SplitSummary(
            user_id=split.user_id,
            user_name=member_map[split.user_id].name if split.user_id in member_map else UNKNOWN_MEMBER_NAME,
            amount=split.amount,
            type=split.type,
            percentage=split.percentage,
        )
        for split in splits
    ]
