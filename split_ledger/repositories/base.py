"""Storage interface the ledger services are written against."""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from split_ledger.schemas.expense_schema import ExpenseOut, ExpenseSplit
from split_ledger.schemas.group_schema import (
    GroupCreate,
    GroupMemberCreate,
    GroupMemberOut,
    GroupOut,
    GroupUpdate,
)


class LedgerRepository(ABC):
    """Durable store of groups, members and expenses with their splits.

    Implementations return pydantic ``*Out`` schemas, never storage rows.
    Expense splits are stored and returned in the order they were given.
    """

    # Groups

    @abstractmethod
    def create_group(self, group_data: GroupCreate, owner_id: str, currency: str) -> GroupOut:
        pass

    @abstractmethod
    def get_group(self, group_id: str) -> Optional[GroupOut]:
        pass

    @abstractmethod
    def get_user_groups(self, user_id: str) -> List[GroupOut]:
        pass

    @abstractmethod
    def update_group(self, group_id: str, update_data: GroupUpdate) -> GroupOut:
        pass

    @abstractmethod
    def delete_group(self, group_id: str) -> None:
        """Delete a group with its members and expenses."""

    # Members

    @abstractmethod
    def add_member(self, group_id: str, member_data: GroupMemberCreate) -> GroupMemberOut:
        pass

    @abstractmethod
    def get_group_members(self, group_id: str) -> List[GroupMemberOut]:
        """Members in join order."""

    @abstractmethod
    def is_group_member(self, group_id: str, user_id: str) -> bool:
        pass

    # Expenses

    @abstractmethod
    def create_expense(
        self,
        group_id: str,
        creator_id: str,
        expense_data: Dict[str, Any],
        splits: List[ExpenseSplit],
    ) -> ExpenseOut:
        """Store an expense.

        expense_data holds title, description, amount, currency, category,
        split_type and date.
        """

    @abstractmethod
    def get_expense(self, expense_id: str) -> Optional[ExpenseOut]:
        pass

    @abstractmethod
    def get_group_expenses(self, group_id: str) -> List[ExpenseOut]:
        """All expenses of a group, newest first."""

    @abstractmethod
    def update_expense(
        self,
        expense_id: str,
        changes: Dict[str, Any],
        splits: Optional[List[ExpenseSplit]] = None,
    ) -> ExpenseOut:
        """Apply field changes; a non-None splits list replaces the whole split set."""

    @abstractmethod
    def delete_expense(self, expense_id: str) -> None:
        pass
