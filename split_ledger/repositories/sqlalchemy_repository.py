import logging
from collections import defaultdict
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from split_ledger.exceptions import NotFoundError
from split_ledger.models.expenses import Expense, ExpenseSplit as ExpenseSplitRow
from split_ledger.models.groups import Group, GroupMember
from split_ledger.repositories.base import LedgerRepository
from split_ledger.schemas.expense_schema import ExpenseOut, ExpenseSplit, SplitType
from split_ledger.schemas.group_schema import (
    GroupCreate,
    GroupMemberCreate,
    GroupMemberOut,
    GroupOut,
    GroupUpdate,
)

logger = logging.getLogger(__name__)


class SqlAlchemyLedgerRepository(LedgerRepository):
    """LedgerRepository backed by a SQLAlchemy session.

    One instance per unit of work; the session is not shared across threads.
    """

    def __init__(self, db: Session):
        self.db = db

    # ========================================================================
    # Groups
    # ========================================================================

    def _get_group_row(self, group_id: str) -> Group:
        group = self.db.query(Group).filter(Group.id == group_id).first()
        if not group:
            raise NotFoundError("Group not found")
        return group

    def create_group(self, group_data: GroupCreate, owner_id: str, currency: str) -> GroupOut:
        group = Group(
            name=group_data.name,
            description=group_data.description,
            currency=currency,
            owner_id=owner_id,
        )
        self.db.add(group)
        self.db.commit()
        self.db.refresh(group)
        return GroupOut.model_validate(group)

    def get_group(self, group_id: str) -> Optional[GroupOut]:
        group = self.db.query(Group).filter(Group.id == group_id).first()
        return GroupOut.model_validate(group) if group else None

    def get_user_groups(self, user_id: str) -> List[GroupOut]:
        groups = (
            self.db.query(Group)
            .join(GroupMember, GroupMember.group_id == Group.id)
            .filter(GroupMember.user_id == user_id)
            .order_by(Group.created_at)
            .all()
        )
        return [GroupOut.model_validate(group) for group in groups]

    def update_group(self, group_id: str, update_data: GroupUpdate) -> GroupOut:
        group = self._get_group_row(group_id)

        for field, value in update_data.model_dump(exclude_unset=True).items():
            setattr(group, field, value)

        self.db.commit()
        self.db.refresh(group)
        return GroupOut.model_validate(group)

    def delete_group(self, group_id: str) -> None:
        group = self._get_group_row(group_id)

        # SQLite does not enforce ON DELETE CASCADE unless asked to, so clean up explicitly
        expense_ids = [row.id for row in self.db.query(Expense.id).filter(Expense.group_id == group_id)]
        if expense_ids:
            self.db.query(ExpenseSplitRow).filter(
                ExpenseSplitRow.expense_id.in_(expense_ids)
            ).delete(synchronize_session=False)
            self.db.query(Expense).filter(Expense.group_id == group_id).delete(synchronize_session=False)
        self.db.query(GroupMember).filter(GroupMember.group_id == group_id).delete(synchronize_session=False)

        self.db.delete(group)
        self.db.commit()

    # ========================================================================
    # Members
    # ========================================================================

    def add_member(self, group_id: str, member_data: GroupMemberCreate) -> GroupMemberOut:
        position = self.db.query(GroupMember).filter(GroupMember.group_id == group_id).count()
        member = GroupMember(
            group_id=group_id,
            user_id=member_data.user_id,
            name=member_data.name,
            email=member_data.email,
            is_admin=member_data.is_admin,
            position=position,
        )
        self.db.add(member)
        self.db.commit()
        self.db.refresh(member)
        return GroupMemberOut.model_validate(member)

    def get_group_members(self, group_id: str) -> List[GroupMemberOut]:
        members = (
            self.db.query(GroupMember)
            .filter(GroupMember.group_id == group_id)
            .order_by(GroupMember.position)
            .all()
        )
        return [GroupMemberOut.model_validate(member) for member in members]

    def is_group_member(self, group_id: str, user_id: str) -> bool:
        return self.db.query(GroupMember).filter(
            GroupMember.group_id == group_id,
            GroupMember.user_id == user_id,
        ).first() is not None

    # ========================================================================
    # Expenses
    # ========================================================================

    def _add_split_rows(self, expense_id: str, splits: List[ExpenseSplit]) -> None:
        for position, split in enumerate(splits):
            self.db.add(ExpenseSplitRow(
                expense_id=expense_id,
                user_id=split.user_id,
                position=position,
                amount=split.amount,
                type=SplitType(split.type).value,
                percentage=split.percentage,
            ))

    @staticmethod
    def _to_split(row: ExpenseSplitRow) -> ExpenseSplit:
        return ExpenseSplit(
            user_id=row.user_id,
            amount=row.amount,
            type=SplitType(row.type),
            percentage=row.percentage,
        )

    @staticmethod
    def _to_expense_out(expense: Expense, splits: List[ExpenseSplit]) -> ExpenseOut:
        return ExpenseOut(
            id=expense.id,
            group_id=expense.group_id,
            title=expense.title,
            description=expense.description,
            amount=expense.amount,
            currency=expense.currency,
            category=expense.category,
            creator_id=expense.creator_id,
            split_type=SplitType(expense.split_type),
            date=expense.date,
            created_at=expense.created_at,
            splits=splits,
        )

    def create_expense(
        self,
        group_id: str,
        creator_id: str,
        expense_data: Dict[str, Any],
        splits: List[ExpenseSplit],
    ) -> ExpenseOut:
        data = dict(expense_data)
        data["split_type"] = SplitType(data["split_type"]).value

        expense = Expense(group_id=group_id, creator_id=creator_id, **data)
        self.db.add(expense)
        self.db.flush()

        self._add_split_rows(expense.id, splits)
        self.db.commit()

        return self.get_expense(expense.id)

    def get_expense(self, expense_id: str) -> Optional[ExpenseOut]:
        expense = self.db.query(Expense).filter(Expense.id == expense_id).first()
        if not expense:
            return None

        rows = (
            self.db.query(ExpenseSplitRow)
            .filter(ExpenseSplitRow.expense_id == expense_id)
            .order_by(ExpenseSplitRow.position)
            .all()
        )
        return self._to_expense_out(expense, [self._to_split(row) for row in rows])

    def get_group_expenses(self, group_id: str) -> List[ExpenseOut]:
        expenses = (
            self.db.query(Expense)
            .filter(Expense.group_id == group_id)
            .order_by(Expense.date.desc(), Expense.created_at.desc())
            .all()
        )
        if not expenses:
            return []

        # One query for every split of the group instead of one per expense
        splits_by_expense: Dict[str, List[ExpenseSplit]] = defaultdict(list)
        rows = (
            self.db.query(ExpenseSplitRow)
            .filter(ExpenseSplitRow.expense_id.in_([expense.id for expense in expenses]))
            .order_by(ExpenseSplitRow.expense_id, ExpenseSplitRow.position)
            .all()
        )
        for row in rows:
            splits_by_expense[row.expense_id].append(self._to_split(row))

        return [self._to_expense_out(expense, splits_by_expense[expense.id]) for expense in expenses]

    def update_expense(
        self,
        expense_id: str,
        changes: Dict[str, Any],
        splits: Optional[List[ExpenseSplit]] = None,
    ) -> ExpenseOut:
        expense = self.db.query(Expense).filter(Expense.id == expense_id).first()
        if not expense:
            raise NotFoundError("Expense not found")

        for field, value in changes.items():
            if field == "split_type":
                value = SplitType(value).value
            setattr(expense, field, value)

        if splits is not None:
            # Split sets are replaced wholesale, never edited in place
            self.db.query(ExpenseSplitRow).filter(
                ExpenseSplitRow.expense_id == expense_id
            ).delete(synchronize_session=False)
            self._add_split_rows(expense_id, splits)

        self.db.commit()
        return self.get_expense(expense_id)

    def delete_expense(self, expense_id: str) -> None:
        expense = self.db.query(Expense).filter(Expense.id == expense_id).first()
        if not expense:
            raise NotFoundError("Expense not found")

        self.db.query(ExpenseSplitRow).filter(
            ExpenseSplitRow.expense_id == expense_id
        ).delete(synchronize_session=False)
        self.db.delete(expense)
        self.db.commit()
