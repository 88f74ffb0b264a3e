import logging
from typing import Iterable, List, Optional

from split_ledger.config import Settings, get_settings
from split_ledger.exceptions import (
    CalculationError,
    ConflictError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from split_ledger.repositories.base import LedgerRepository
from split_ledger.schemas.group_schema import (
    GroupBalance,
    GroupCreate,
    GroupMemberCreate,
    GroupMemberOut,
    GroupOut,
    GroupUpdate,
    GroupWithMembers,
)
from split_ledger.schemas.settlement_schema import SettlementSuggestion
from split_ledger.services.cache import (
    CacheBackend,
    balances_key,
    invalidate_group,
    settlements_key,
    user_groups_key,
)
from split_ledger.utils.min_cash_flow import calculate_group_balances, min_cash_flow, validate_balance_sum
from split_ledger.utils.money import TOLERANCE, is_supported_currency

logger = logging.getLogger(__name__)

MIN_NAME_LENGTH = 2


def _invalidate_user_groups(cache: Optional[CacheBackend], user_ids: Iterable[str]) -> None:
    if cache is None:
        return
    for user_id in user_ids:
        cache.delete(user_groups_key(user_id))


def require_group(repo: LedgerRepository, group_id: str) -> GroupOut:
    """Get a group or raise NotFoundError"""
    group = repo.get_group(group_id)
    if not group:
        raise NotFoundError("Group not found")
    return group


def require_group_member(repo: LedgerRepository, group_id: str, user_id: str) -> None:
    if not repo.is_group_member(group_id, user_id):
        raise PermissionDeniedError("You are not a member of this group")


def create_group(
    repo: LedgerRepository,
    group_data: GroupCreate,
    owner_id: str,
    owner_name: str,
    owner_email: Optional[str] = None,
    cache: Optional[CacheBackend] = None,
    settings: Optional[Settings] = None,
) -> GroupOut:
    """Create a new group and add its owner as admin member"""
    settings = settings or get_settings()

    name = group_data.name.strip()
    if len(name) < MIN_NAME_LENGTH:
        raise ValidationError(f"Group name must be at least {MIN_NAME_LENGTH} characters")

    currency = group_data.currency or settings.default_currency
    if not is_supported_currency(currency):
        raise ValidationError(f"Unsupported currency: {currency}")

    description = group_data.description.strip() if group_data.description else None
    group = repo.create_group(
        group_data.model_copy(update={"name": name, "description": description}),
        owner_id,
        currency,
    )

    repo.add_member(
        group.id,
        GroupMemberCreate(user_id=owner_id, name=owner_name, email=owner_email, is_admin=True),
    )
    _invalidate_user_groups(cache, [owner_id])

    logger.info(f"Group created: id={group.id} owner={owner_id} name='{group.name}' currency={currency}")
    return group


def get_group(repo: LedgerRepository, group_id: str) -> GroupWithMembers:
    """Get a group together with its members"""
    group = require_group(repo, group_id)
    return GroupWithMembers(**group.model_dump(), members=repo.get_group_members(group_id))


def get_user_groups(
    repo: LedgerRepository,
    user_id: str,
    cache: Optional[CacheBackend] = None,
    settings: Optional[Settings] = None,
) -> List[GroupOut]:
    """Get all groups a user belongs to"""
    settings = settings or get_settings()
    key = user_groups_key(user_id)

    if cache is not None:
        cached = cache.get(key)
        if cached is not None:
            return [group.model_copy() for group in cached]

    groups = repo.get_user_groups(user_id)

    if cache is not None:
        cache.set(key, [group.model_copy() for group in groups], settings.groups_cache_ttl)
    return groups


def update_group(
    repo: LedgerRepository,
    group_id: str,
    update_data: GroupUpdate,
    user_id: str,
    cache: Optional[CacheBackend] = None,
) -> GroupOut:
    """Update a group (owner only)"""
    group = require_group(repo, group_id)
    if group.owner_id != user_id:
        raise PermissionDeniedError("Only the group owner can update the group")

    changes = update_data.model_dump(exclude_unset=True)
    if changes.get("name") is not None:
        changes["name"] = changes["name"].strip()
        if len(changes["name"]) < MIN_NAME_LENGTH:
            raise ValidationError(f"Group name must be at least {MIN_NAME_LENGTH} characters")
    elif "name" in changes:
        del changes["name"]

    if changes.get("description"):
        changes["description"] = changes["description"].strip()

    updated = repo.update_group(group_id, GroupUpdate(**changes))

    invalidate_group(cache, group_id)
    _invalidate_user_groups(cache, [member.user_id for member in repo.get_group_members(group_id)])

    logger.info(f"Group updated: id={group_id} by={user_id}")
    return updated


def add_member(
    repo: LedgerRepository,
    group_id: str,
    member_data: GroupMemberCreate,
    user_id: str,
    cache: Optional[CacheBackend] = None,
) -> GroupMemberOut:
    """Add a member to a group (owner or admin only)"""
    group = require_group(repo, group_id)

    members = repo.get_group_members(group_id)
    is_admin = any(member.user_id == user_id and member.is_admin for member in members)
    if group.owner_id != user_id and not is_admin:
        raise PermissionDeniedError("Only the group owner or an admin can add members")

    if any(member.user_id == member_data.user_id for member in members):
        raise ConflictError(f"User {member_data.user_id} is already a member of this group")

    member = repo.add_member(group_id, member_data)

    invalidate_group(cache, group_id)
    _invalidate_user_groups(cache, [member_data.user_id])

    logger.info(f"Member added: group={group_id} member={member_data.user_id} by={user_id}")
    return member


def get_group_members(repo: LedgerRepository, group_id: str) -> List[GroupMemberOut]:
    require_group(repo, group_id)
    return repo.get_group_members(group_id)


def is_group_member(repo: LedgerRepository, group_id: str, user_id: str) -> bool:
    return repo.is_group_member(group_id, user_id)


def get_group_balances(
    repo: LedgerRepository,
    group_id: str,
    cache: Optional[CacheBackend] = None,
    settings: Optional[Settings] = None,
) -> List[GroupBalance]:
    """
    Calculate the net balance of every group member.

    Balances are derived from the stored expenses on every call; with a cache
    the result is kept for balances_cache_ttl seconds and dropped on any
    mutation of the group.
    """
    settings = settings or get_settings()
    key = balances_key(group_id)

    if cache is not None:
        cached = cache.get(key)
        if cached is not None:
            return [balance.model_copy() for balance in cached]

    require_group(repo, group_id)
    members = repo.get_group_members(group_id)
    expenses = repo.get_group_expenses(group_id)

    balances = calculate_group_balances(expenses, {member.user_id: member.name for member in members})

    try:
        validate_balance_sum({balance.user_id: balance.balance for balance in balances})
    except CalculationError as e:
        # EXACT splits may leave up to 0.01 per expense unresolved
        logger.warning(f"Group {group_id}: {e}")

    if cache is not None:
        cache.set(key, [balance.model_copy() for balance in balances], settings.balances_cache_ttl)
    return balances


def get_settlement_suggestions(
    repo: LedgerRepository,
    group_id: str,
    cache: Optional[CacheBackend] = None,
    settings: Optional[Settings] = None,
    strategy: Optional[str] = None,
) -> List[SettlementSuggestion]:
    """Suggest payer -> receiver transfers that settle the group"""
    settings = settings or get_settings()
    strategy = strategy or settings.settlement_strategy
    key = settlements_key(group_id, strategy)

    if cache is not None:
        cached = cache.get(key)
        if cached is not None:
            return [suggestion.model_copy() for suggestion in cached]

    balances = get_group_balances(repo, group_id, cache=cache, settings=settings)
    suggestions = min_cash_flow({balance.user_id: balance.balance for balance in balances}, strategy=strategy)

    if cache is not None:
        cache.set(key, [suggestion.model_copy() for suggestion in suggestions], settings.settlements_cache_ttl)

    logger.debug(f"Group {group_id}: {len(suggestions)} settlement suggestions ({strategy})")
    return suggestions


def delete_group(
    repo: LedgerRepository,
    group_id: str,
    user_id: str,
    cache: Optional[CacheBackend] = None,
) -> None:
    """Delete a group (owner only, every balance settled)"""
    group = require_group(repo, group_id)
    if group.owner_id != user_id:
        raise PermissionDeniedError("Only the group owner can delete the group")

    # Always recompute: a stale cached balance must not allow deletion
    balances = get_group_balances(repo, group_id)
    outstanding = [balance for balance in balances if abs(balance.balance) > TOLERANCE]
    if outstanding:
        raise ValidationError(
            f"Cannot delete a group with outstanding balances "
            f"({len(outstanding)} members not settled)"
        )

    member_ids = [member.user_id for member in repo.get_group_members(group_id)]
    repo.delete_group(group_id)

    invalidate_group(cache, group_id)
    _invalidate_user_groups(cache, member_ids)

    logger.info(f"Group deleted: id={group_id} by={user_id}")
