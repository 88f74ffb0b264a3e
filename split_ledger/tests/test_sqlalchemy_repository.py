"""
Tests for the SQLAlchemy repository and the ledger context, on in-memory SQLite.
"""
import pytest
from datetime import datetime, timezone
from decimal import Decimal

from split_ledger.exceptions import NotFoundError
from split_ledger.main import create_ledger_context
from split_ledger.models.expenses import Expense, ExpenseSplit as ExpenseSplitRow
from split_ledger.models.groups import GroupMember
from split_ledger.schemas.expense_schema import ExpenseCreate, ExpenseSplit, SplitType
from split_ledger.schemas.group_schema import GroupCreate, GroupMemberCreate, GroupUpdate
from split_ledger.services import expense_service, group_service


def expense_data(title="Dinner", amount="30", day=1):
    return {
        "title": title,
        "description": None,
        "amount": Decimal(amount),
        "currency": "USD",
        "category": None,
        "split_type": SplitType.EQUAL,
        "date": datetime(2024, 5, day, tzinfo=timezone.utc),
    }


def equal_splits(*pairs):
    return [ExpenseSplit(user_id=user_id, amount=Decimal(amount), type=SplitType.EQUAL) for user_id, amount in pairs]


@pytest.fixture
def group(sql_repo):
    group = sql_repo.create_group(GroupCreate(name="Flat"), owner_id="ana", currency="EUR")
    for user_id, name in [("ana", "Ana"), ("bo", "Bo"), ("cy", "Cy")]:
        sql_repo.add_member(group.id, GroupMemberCreate(user_id=user_id, name=name, is_admin=user_id == "ana"))
    return group


@pytest.mark.integration
class TestSqlAlchemyLedgerRepository:
    """Test persistence details not covered by the service tests."""

    def test_members_keep_join_order(self, sql_repo, group, db_session):
        positions = [
            (row.user_id, row.position)
            for row in db_session.query(GroupMember).filter(GroupMember.group_id == group.id).order_by(GroupMember.position)
        ]
        assert positions == [("ana", 0), ("bo", 1), ("cy", 2)]

    def test_split_order_is_preserved(self, sql_repo, group):
        expense = sql_repo.create_expense(
            group.id, "bo", expense_data(),
            equal_splits(("cy", "10"), ("ana", "10"), ("bo", "10")),
        )
        assert [split.user_id for split in expense.splits] == ["cy", "ana", "bo"]

        listed = sql_repo.get_group_expenses(group.id)
        assert [split.user_id for split in listed[0].splits] == ["cy", "ana", "bo"]

    def test_group_expenses_each_get_their_own_splits(self, sql_repo, group):
        older = sql_repo.create_expense(group.id, "ana", expense_data("Old", "20", day=1), equal_splits(("ana", "10"), ("bo", "10")))
        newer = sql_repo.create_expense(group.id, "bo", expense_data("New", "9", day=2), equal_splits(("cy", "9")))

        listed = sql_repo.get_group_expenses(group.id)

        assert [e.id for e in listed] == [newer.id, older.id]
        assert [s.user_id for s in listed[0].splits] == ["cy"]
        assert [s.user_id for s in listed[1].splits] == ["ana", "bo"]

    def test_update_replaces_split_set(self, sql_repo, group, db_session):
        expense = sql_repo.create_expense(group.id, "ana", expense_data(), equal_splits(("ana", "15"), ("bo", "15")))

        updated = sql_repo.update_expense(
            expense.id,
            {"amount": Decimal("30"), "split_type": SplitType.EXACT},
            [ExpenseSplit(user_id="cy", amount=Decimal("30"), type=SplitType.EXACT)],
        )

        assert updated.split_type == SplitType.EXACT
        assert [(s.user_id, s.amount) for s in updated.splits] == [("cy", Decimal("30.00"))]
        assert db_session.query(ExpenseSplitRow).filter(ExpenseSplitRow.expense_id == expense.id).count() == 1

    def test_update_without_splits_keeps_them(self, sql_repo, group):
        expense = sql_repo.create_expense(group.id, "ana", expense_data(), equal_splits(("ana", "15"), ("bo", "15")))
        updated = sql_repo.update_expense(expense.id, {"title": "Brunch"})

        assert updated.title == "Brunch"
        assert len(updated.splits) == 2

    def test_update_group_fields(self, sql_repo, group):
        updated = sql_repo.update_group(group.id, GroupUpdate(description="shared flat"))
        assert updated.description == "shared flat"
        assert updated.name == "Flat"
        assert updated.currency == "EUR"

    def test_delete_group_removes_everything(self, sql_repo, group, db_session):
        expense = sql_repo.create_expense(group.id, "ana", expense_data(), equal_splits(("ana", "15"), ("bo", "15")))

        sql_repo.delete_group(group.id)

        assert sql_repo.get_group(group.id) is None
        assert sql_repo.get_group_members(group.id) == []
        assert db_session.query(Expense).count() == 0
        assert db_session.query(ExpenseSplitRow).filter(ExpenseSplitRow.expense_id == expense.id).count() == 0

    def test_delete_expense_removes_splits(self, sql_repo, group, db_session):
        expense = sql_repo.create_expense(group.id, "ana", expense_data(), equal_splits(("ana", "15"), ("bo", "15")))
        sql_repo.delete_expense(expense.id)

        assert sql_repo.get_expense(expense.id) is None
        assert db_session.query(ExpenseSplitRow).count() == 0

    def test_missing_rows_raise_not_found(self, sql_repo):
        with pytest.raises(NotFoundError):
            sql_repo.update_group("missing", GroupUpdate(name="x"))
        with pytest.raises(NotFoundError):
            sql_repo.delete_group("missing")
        with pytest.raises(NotFoundError):
            sql_repo.update_expense("missing", {"title": "x"})
        with pytest.raises(NotFoundError):
            sql_repo.delete_expense("missing")

    def test_user_groups(self, sql_repo, group):
        other = sql_repo.create_group(GroupCreate(name="Other"), owner_id="zed", currency="USD")
        sql_repo.add_member(other.id, GroupMemberCreate(user_id="zed", name="Zed"))

        assert [g.id for g in sql_repo.get_user_groups("bo")] == [group.id]
        assert [g.id for g in sql_repo.get_user_groups("zed")] == [other.id]


@pytest.mark.integration
class TestLedgerContext:
    """Test wiring the services to a database through create_ledger_context."""

    def test_services_share_one_database(self, settings):
        context = create_ledger_context(settings)
        try:
            with context.repository() as repo:
                group = group_service.create_group(
                    repo, GroupCreate(name="Trip"), "ana", "Ana", cache=context.cache, settings=settings
                )
                group_service.add_member(
                    repo, group.id, GroupMemberCreate(user_id="bo", name="Bo"), "ana", cache=context.cache
                )

            with context.repository() as repo:
                expense_service.create_expense(
                    repo, group.id, "bo", ExpenseCreate(title="Taxi", amount=Decimal("40")), cache=context.cache
                )

            with context.repository() as repo:
                suggestions = group_service.get_settlement_suggestions(
                    repo, group.id, cache=context.cache, settings=settings
                )

            assert [(s.payer_id, s.receiver_id, s.amount) for s in suggestions] == [("ana", "bo", Decimal("20.00"))]
        finally:
            context.dispose()

    def test_errors_propagate_out_of_repository(self, settings):
        context = create_ledger_context(settings)
        try:
            with pytest.raises(NotFoundError):
                with context.repository() as repo:
                    group_service.get_group(repo, "missing")
        finally:
            context.dispose()
