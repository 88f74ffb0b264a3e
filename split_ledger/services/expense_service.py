import logging
import math
from datetime import datetime, timezone
from decimal import Decimal
from typing import List, Optional

from split_ledger.config import Settings, get_settings
from split_ledger.exceptions import NotFoundError, PermissionDeniedError, ValidationError
from split_ledger.repositories.base import LedgerRepository
from split_ledger.schemas.expense_schema import (
    CustomSplit,
    ExpenseCreate,
    ExpenseMember,
    ExpenseOut,
    ExpensePage,
    ExpenseUpdate,
    SplitCalculationInput,
    SplitCalculationResult,
    SplitType,
)
from split_ledger.schemas.group_schema import GroupMemberOut, GroupOut
from split_ledger.services.cache import CacheBackend, expenses_page_key, invalidate_group
from split_ledger.services.group_service import require_group, require_group_member
from split_ledger.utils.money import round_amount, validate_amount
from split_ledger.utils.split_calculator import calculate_splits

logger = logging.getLogger(__name__)

MIN_TITLE_LENGTH = 2
MAX_PAGE_SIZE = 100


def _validate_title(title: str) -> str:
    title = title.strip()
    if len(title) < MIN_TITLE_LENGTH:
        raise ValidationError(f"Expense title must be at least {MIN_TITLE_LENGTH} characters")
    return title


def _validate_expense_amount(amount: Decimal, currency: str) -> Decimal:
    errors = validate_amount(amount, currency)
    if errors:
        raise ValidationError("; ".join(errors))
    return round_amount(amount, currency)


def _normalize_date(value: Optional[datetime]) -> datetime:
    if value is None:
        return datetime.now(timezone.utc)
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _resolve_participants(members: List[GroupMemberOut], participant_ids: Optional[List[str]]) -> List[ExpenseMember]:
    """Map participant ids to split members, defaulting to the whole group in join order"""
    members_by_id = {member.user_id: member for member in members}
    if participant_ids is None:
        participant_ids = [member.user_id for member in members]

    participants = []
    for user_id in participant_ids:
        member = members_by_id.get(user_id)
        if member is None:
            raise ValidationError(f"User {user_id} is not a member of this group")
        participants.append(ExpenseMember(id=member.user_id, name=member.name, email=member.email))
    return participants


def _stored_custom_splits(expense: ExpenseOut) -> Optional[List[CustomSplit]]:
    """Rebuild the custom input of an EXACT or PERCENTAGE expense from its splits"""
    if expense.split_type == SplitType.EXACT:
        return [CustomSplit(user_id=split.user_id, amount=split.amount) for split in expense.splits]
    if expense.split_type == SplitType.PERCENTAGE:
        return [CustomSplit(user_id=split.user_id, percentage=split.percentage) for split in expense.splits]
    return None


def _compute_splits(
    group: GroupOut,
    members: List[GroupMemberOut],
    amount: Decimal,
    split_type: SplitType,
    participant_ids: Optional[List[str]],
    custom_splits: Optional[List[CustomSplit]],
) -> SplitCalculationResult:
    return calculate_splits(SplitCalculationInput(
        total_amount=amount,
        currency=group.currency,
        members=_resolve_participants(members, participant_ids),
        split_type=split_type,
        custom_splits=custom_splits,
    ))


def _check_can_edit(expense: ExpenseOut, group: GroupOut, user_id: str, action: str) -> None:
    if expense.creator_id != user_id and group.owner_id != user_id:
        raise PermissionDeniedError(f"Only the expense creator or the group owner can {action} the expense")


def create_expense(
    repo: LedgerRepository,
    group_id: str,
    creator_id: str,
    expense_data: ExpenseCreate,
    cache: Optional[CacheBackend] = None,
) -> ExpenseOut:
    """Create a new expense and its splits; the creator is recorded as having paid it"""
    group = require_group(repo, group_id)

    if not repo.is_group_member(group_id, creator_id):
        raise PermissionDeniedError("Only group members can create expenses")

    title = _validate_title(expense_data.title)
    amount = _validate_expense_amount(expense_data.amount, group.currency)

    result = _compute_splits(
        group,
        repo.get_group_members(group_id),
        amount,
        expense_data.split_type,
        expense_data.participant_ids,
        expense_data.custom_splits,
    )

    expense = repo.create_expense(
        group_id,
        creator_id,
        {
            "title": title,
            "description": expense_data.description.strip() if expense_data.description else None,
            "amount": amount,
            "currency": group.currency,
            "category": expense_data.category.strip() if expense_data.category else None,
            "split_type": expense_data.split_type,
            "date": _normalize_date(expense_data.date),
        },
        result.splits,
    )

    invalidate_group(cache, group_id)

    logger.info(
        f"Expense created: id={expense.id} group={group_id} creator={creator_id} "
        f"amount={amount} {group.currency} split={expense_data.split_type.value}"
    )
    return expense


def get_expense(repo: LedgerRepository, expense_id: str, user_id: Optional[str] = None) -> ExpenseOut:
    """Get an expense; with user_id, also check that the user belongs to its group"""
    expense = repo.get_expense(expense_id)
    if not expense:
        raise NotFoundError("Expense not found")

    if user_id is not None:
        require_group_member(repo, expense.group_id, user_id)
    return expense


def list_group_expenses(
    repo: LedgerRepository,
    group_id: str,
    page: int = 1,
    limit: Optional[int] = None,
    cache: Optional[CacheBackend] = None,
    settings: Optional[Settings] = None,
) -> ExpensePage:
    """Get one page of a group's expenses, newest first"""
    settings = settings or get_settings()
    if limit is None:
        limit = settings.expenses_page_size

    if page < 1:
        raise ValidationError("Page must be at least 1")
    if limit < 1 or limit > MAX_PAGE_SIZE:
        raise ValidationError(f"Limit must be between 1 and {MAX_PAGE_SIZE}")

    key = expenses_page_key(group_id, page, limit)
    if cache is not None:
        cached = cache.get(key)
        if cached is not None:
            return cached.model_copy(deep=True)

    require_group(repo, group_id)
    expenses = repo.get_group_expenses(group_id)

    start = (page - 1) * limit
    result = ExpensePage(
        data=expenses[start:start + limit],
        page=page,
        limit=limit,
        total=len(expenses),
        total_pages=math.ceil(len(expenses) / limit),
    )

    if cache is not None:
        cache.set(key, result.model_copy(deep=True), settings.expenses_cache_ttl)
    return result


def update_expense(
    repo: LedgerRepository,
    expense_id: str,
    user_id: str,
    update_data: ExpenseUpdate,
    cache: Optional[CacheBackend] = None,
) -> ExpenseOut:
    """
    Update an expense (creator or group owner only).

    Changing the amount, split type, participants or custom splits recomputes
    the whole split set. Stored percentages (or exact amounts) are reused when
    the split type is unchanged and no new custom splits are given.
    """
    expense = repo.get_expense(expense_id)
    if not expense:
        raise NotFoundError("Expense not found")

    group = require_group(repo, expense.group_id)
    _check_can_edit(expense, group, user_id, "update")

    provided = update_data.model_dump(exclude_unset=True)
    changes = {}

    if update_data.title is not None:
        changes["title"] = _validate_title(update_data.title)
    if "description" in provided:
        changes["description"] = update_data.description.strip() if update_data.description else None
    if "category" in provided:
        changes["category"] = update_data.category.strip() if update_data.category else None
    if update_data.date is not None:
        changes["date"] = _normalize_date(update_data.date)

    splits = None
    recompute_fields = ("amount", "split_type", "participant_ids", "custom_splits")
    if any(provided.get(field) is not None for field in recompute_fields):
        amount = expense.amount
        if update_data.amount is not None:
            amount = _validate_expense_amount(update_data.amount, group.currency)

        split_type = update_data.split_type or expense.split_type
        participant_ids = update_data.participant_ids
        if participant_ids is None:
            participant_ids = [split.user_id for split in expense.splits]

        custom_splits = update_data.custom_splits
        if custom_splits is None and split_type == expense.split_type:
            custom_splits = _stored_custom_splits(expense)

        result = _compute_splits(
            group,
            repo.get_group_members(expense.group_id),
            amount,
            split_type,
            participant_ids,
            custom_splits,
        )
        changes["amount"] = amount
        changes["split_type"] = split_type
        splits = result.splits

    if not changes:
        return expense

    updated = repo.update_expense(expense_id, changes, splits)

    invalidate_group(cache, expense.group_id)

    logger.info(
        f"Expense updated: id={expense_id} by={user_id} fields={sorted(changes)}"
        + (f" splits={len(splits)}" if splits is not None else "")
    )
    return updated


def delete_expense(
    repo: LedgerRepository,
    expense_id: str,
    user_id: str,
    cache: Optional[CacheBackend] = None,
) -> None:
    """Delete an expense (creator or group owner only)"""
    expense = repo.get_expense(expense_id)
    if not expense:
        raise NotFoundError("Expense not found")

    group = require_group(repo, expense.group_id)
    _check_can_edit(expense, group, user_id, "delete")

    repo.delete_expense(expense_id)

    invalidate_group(cache, expense.group_id)

    logger.info(f"Expense deleted: id={expense_id} group={expense.group_id} by={user_id}")
