"""
Pytest configuration and fixtures for split_ledger tests.
"""
import pytest
from decimal import Decimal
from typing import Dict, List

from split_ledger.config import Settings
from split_ledger.db.database import create_db_engine, create_session_factory, init_db
from split_ledger.repositories.memory_repository import InMemoryLedgerRepository
from split_ledger.repositories.sqlalchemy_repository import SqlAlchemyLedgerRepository
from split_ledger.schemas.expense_schema import ExpenseMember, ExpenseRecord, ExpenseSplit, SplitType
from split_ledger.schemas.group_schema import GroupCreate, GroupMemberCreate
from split_ledger.schemas.settlement_schema import SettlementSuggestion
from split_ledger.services.cache import InMemoryCache


class FakeClock:
    """Manually advanced clock for cache expiry tests."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def equal_expense(creator_id: str, amount: str, participants: List[str]) -> ExpenseRecord:
    """Build an EQUAL expense record the way the split calculator would."""
    total = Decimal(amount)
    cents = int(total * 100)
    base, remainder = divmod(cents, len(participants))
    splits = [
        ExpenseSplit(
            user_id=user_id,
            amount=Decimal(base + (1 if index < remainder else 0)) / 100,
            type=SplitType.EQUAL,
        )
        for index, user_id in enumerate(participants)
    ]
    return ExpenseRecord(amount=total, creator_id=creator_id, splits=splits)


def verify_settlements_settle_debts(
    balances: Dict[str, Decimal],
    settlements: List[SettlementSuggestion],
) -> None:
    """
    Helper to verify settlements settle all debts.

    A payer's debt shrinks by what they pay and a receiver's credit by what
    they receive, so final balance = initial_balance + paid - received.
    """
    paid: Dict[str, Decimal] = {}
    received: Dict[str, Decimal] = {}

    for settlement in settlements:
        paid[settlement.payer_id] = paid.get(settlement.payer_id, Decimal("0")) + settlement.amount
        received[settlement.receiver_id] = received.get(settlement.receiver_id, Decimal("0")) + settlement.amount

    for user, initial_balance in balances.items():
        final_balance = initial_balance + paid.get(user, Decimal("0")) - received.get(user, Decimal("0"))
        assert abs(final_balance) <= Decimal("0.01"), \
            f"User {user} not settled: initial={initial_balance}, final={final_balance}"


@pytest.fixture
def settle_check():
    """Expose the settlement verification helper to test modules."""
    return verify_settlements_settle_debts


@pytest.fixture
def make_equal_expense():
    return equal_expense


@pytest.fixture
def sample_expenses():
    """Sample expenses for testing."""
    return [
        equal_expense("A", "120", ["A", "B", "C"]),
        equal_expense("B", "60", ["B", "C"]),
        equal_expense("C", "40", ["A", "C", "D"]),
    ]


@pytest.fixture
def sample_balances():
    """Sample balances for testing."""
    return {
        "A": Decimal("66.66"),
        "B": Decimal("-10.00"),
        "C": Decimal("-43.33"),
        "D": Decimal("-13.33"),
    }


@pytest.fixture
def members():
    return [
        ExpenseMember(id="ana", name="Ana"),
        ExpenseMember(id="bo", name="Bo"),
        ExpenseMember(id="cy", name="Cy"),
    ]


@pytest.fixture
def settings():
    """Settings isolated from the environment and any .env file."""
    return Settings(
        _env_file=None,
        database_url="sqlite://",
        default_currency="USD",
        expenses_page_size=20,
        settlement_strategy="in_order",
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache(clock):
    return InMemoryCache(clock=clock)


@pytest.fixture
def memory_repo():
    return InMemoryLedgerRepository()


@pytest.fixture
def db_engine():
    engine = create_db_engine("sqlite://")
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db_session(db_engine):
    session = create_session_factory(db_engine)()
    yield session
    session.close()


@pytest.fixture
def sql_repo(db_session):
    return SqlAlchemyLedgerRepository(db_session)


@pytest.fixture(params=["memory", "sqlalchemy"])
def repo(request):
    """Run a test against both repository implementations."""
    if request.param == "memory":
        return InMemoryLedgerRepository()
    return request.getfixturevalue("sql_repo")


@pytest.fixture
def trip_group(repo):
    """A USD group owned by ana with members bo and cy, in that join order."""
    group = repo.create_group(GroupCreate(name="Trip"), owner_id="ana", currency="USD")
    repo.add_member(group.id, GroupMemberCreate(user_id="ana", name="Ana", is_admin=True))
    repo.add_member(group.id, GroupMemberCreate(user_id="bo", name="Bo"))
    repo.add_member(group.id, GroupMemberCreate(user_id="cy", name="Cy"))
    return group
