import threading
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from split_ledger.exceptions import NotFoundError
from split_ledger.repositories.base import LedgerRepository
from split_ledger.schemas.expense_schema import ExpenseOut, ExpenseSplit, SplitType
from split_ledger.schemas.group_schema import (
    GroupCreate,
    GroupMemberCreate,
    GroupMemberOut,
    GroupOut,
    GroupUpdate,
)


class InMemoryLedgerRepository(LedgerRepository):
    """Dict-backed LedgerRepository for tests and single-process use.

    Returned objects are copies, so callers cannot mutate stored state.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._groups: Dict[str, GroupOut] = {}
        self._members: Dict[str, List[GroupMemberOut]] = {}
        self._expenses: Dict[str, ExpenseOut] = {}

    @staticmethod
    def _now() -> datetime:
        return datetime.now(timezone.utc)

    # Groups

    def create_group(self, group_data: GroupCreate, owner_id: str, currency: str) -> GroupOut:
        group = GroupOut(
            id=str(uuid.uuid4()),
            name=group_data.name,
            description=group_data.description,
            currency=currency,
            owner_id=owner_id,
            created_at=self._now(),
        )
        with self._lock:
            self._groups[group.id] = group
            self._members[group.id] = []
        return group.model_copy(deep=True)

    def get_group(self, group_id: str) -> Optional[GroupOut]:
        with self._lock:
            group = self._groups.get(group_id)
            return group.model_copy(deep=True) if group else None

    def get_user_groups(self, user_id: str) -> List[GroupOut]:
        with self._lock:
            return [
                group.model_copy(deep=True)
                for group_id, group in self._groups.items()
                if any(member.user_id == user_id for member in self._members.get(group_id, []))
            ]

    def update_group(self, group_id: str, update_data: GroupUpdate) -> GroupOut:
        with self._lock:
            group = self._groups.get(group_id)
            if group is None:
                raise NotFoundError("Group not found")
            group = group.model_copy(update=update_data.model_dump(exclude_unset=True))
            self._groups[group_id] = group
        return group.model_copy(deep=True)

    def delete_group(self, group_id: str) -> None:
        with self._lock:
            if group_id not in self._groups:
                raise NotFoundError("Group not found")
            del self._groups[group_id]
            self._members.pop(group_id, None)
            for expense_id in [e.id for e in self._expenses.values() if e.group_id == group_id]:
                del self._expenses[expense_id]

    # Members

    def add_member(self, group_id: str, member_data: GroupMemberCreate) -> GroupMemberOut:
        member = GroupMemberOut(
            id=str(uuid.uuid4()),
            group_id=group_id,
            user_id=member_data.user_id,
            name=member_data.name,
            email=member_data.email,
            is_admin=member_data.is_admin,
            joined_at=self._now(),
        )
        with self._lock:
            self._members.setdefault(group_id, []).append(member)
        return member.model_copy(deep=True)

    def get_group_members(self, group_id: str) -> List[GroupMemberOut]:
        with self._lock:
            return [member.model_copy(deep=True) for member in self._members.get(group_id, [])]

    def is_group_member(self, group_id: str, user_id: str) -> bool:
        with self._lock:
            return any(member.user_id == user_id for member in self._members.get(group_id, []))

    # Expenses

    def create_expense(
        self,
        group_id: str,
        creator_id: str,
        expense_data: Dict[str, Any],
        splits: List[ExpenseSplit],
    ) -> ExpenseOut:
        data = dict(expense_data)
        data["split_type"] = SplitType(data["split_type"])
        expense = ExpenseOut(
            id=str(uuid.uuid4()),
            group_id=group_id,
            creator_id=creator_id,
            created_at=self._now(),
            splits=[split.model_copy() for split in splits],
            **data,
        )
        with self._lock:
            self._expenses[expense.id] = expense
        return expense.model_copy(deep=True)

    def get_expense(self, expense_id: str) -> Optional[ExpenseOut]:
        with self._lock:
            expense = self._expenses.get(expense_id)
            return expense.model_copy(deep=True) if expense else None

    def get_group_expenses(self, group_id: str) -> List[ExpenseOut]:
        with self._lock:
            expenses = [
                expense.model_copy(deep=True)
                for expense in self._expenses.values()
                if expense.group_id == group_id
            ]
        expenses.sort(key=lambda e: (e.date, e.created_at), reverse=True)
        return expenses

    def update_expense(
        self,
        expense_id: str,
        changes: Dict[str, Any],
        splits: Optional[List[ExpenseSplit]] = None,
    ) -> ExpenseOut:
        with self._lock:
            expense = self._expenses.get(expense_id)
            if expense is None:
                raise NotFoundError("Expense not found")

            update = dict(changes)
            if "split_type" in update:
                update["split_type"] = SplitType(update["split_type"])
            if splits is not None:
                update["splits"] = [split.model_copy() for split in splits]

            expense = expense.model_copy(update=update)
            self._expenses[expense_id] = expense
        return expense.model_copy(deep=True)

    def delete_expense(self, expense_id: str) -> None:
        with self._lock:
            if expense_id not in self._expenses:
                raise NotFoundError("Expense not found")
            del self._expenses[expense_id]
