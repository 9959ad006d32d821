from decimal import Decimal

import pytest

from budget_categorizer.models import Category, SubCategory, Transaction, TransactionType
from budget_categorizer.storage.memory import InMemoryCategoryStore, InMemoryHistoryStore

USER_ID = "user-1"


def make_transaction(description: str, amount: str = "-42.50", **kwargs) -> Transaction:
    return Transaction(user_id=kwargs.pop("user_id", USER_ID), description=description, amount=Decimal(amount), **kwargs)


def build_taxonomy(user_id: str = USER_ID) -> list[Category]:
    return [
        Category(
            id="food",
            user_id=user_id,
            name="Food",
            type=TransactionType.EXPENSE,
            sub_categories=[
                SubCategory(
                    id="restaurants",
                    parent_category_id="food",
                    name="Restaurants",
                    keywords=["restaurant", "מסעדה", "coffee shop"],
                ),
                SubCategory(
                    id="groceries",
                    parent_category_id="food",
                    name="Groceries",
                    keywords=["grocery", "supermarket"],
                ),
            ],
        ),
        Category(
            id="taxes",
            user_id=user_id,
            name="Taxes",
            type=TransactionType.EXPENSE,
            sub_categories=[
                SubCategory(
                    id="income-tax",
                    parent_category_id="taxes",
                    name="Income Tax",
                    keywords=["מס", "tax"],
                ),
            ],
        ),
        Category(
            id="salary",
            user_id=user_id,
            name="Salary",
            type=TransactionType.INCOME,
            keywords=["salary", "משכורת"],
        ),
        Category(
            id="transfers",
            user_id=user_id,
            name="Transfers",
            type=TransactionType.TRANSFER,
            keywords=["bank transfer"],
        ),
    ]


@pytest.fixture
def category_store() -> InMemoryCategoryStore:
    return InMemoryCategoryStore(build_taxonomy())


@pytest.fixture
def history_store() -> InMemoryHistoryStore:
    return InMemoryHistoryStore()


@pytest.fixture
def anyio_backend():
    return "asyncio"
