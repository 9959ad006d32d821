import json
import time
from datetime import datetime, timedelta
from pathlib import Path

import pytest

from budget_categorizer.models import Category, HistoricalCategorization, SubCategory, TransactionType
from budget_categorizer.storage.memory import (
    InMemoryCategoryStore,
    InMemoryHistoryStore,
    JsonCategoryStore,
    JsonHistoryStore,
)

from conftest import USER_ID, build_taxonomy


def _record(description: str, category_id: str = "food", **kwargs) -> HistoricalCategorization:
    return HistoricalCategorization(
        user_id=kwargs.pop("user_id", USER_ID),
        description=description,
        category_id=category_id,
        **kwargs,
    )


def test_save_normalizes_and_finds_exact(history_store: InMemoryHistoryStore) -> None:
    history_store.save(_record("  Coffee Shop   PAYMENT ", sub_category_id="restaurants"))

    matches = history_store.find_matches("coffee shop payment", USER_ID)

    assert len(matches) == 1
    assert matches[0].description == "coffee shop payment"
    assert matches[0].sub_category_id == "restaurants"
    assert matches[0].confidence == 1.0


def test_find_is_scoped_per_user(history_store: InMemoryHistoryStore) -> None:
    history_store.save(_record("Coffee Shop Payment"))
    assert history_store.find_matches("Coffee Shop Payment", "someone-else") == []


def test_memo_match_preferred_over_plain_description(history_store: InMemoryHistoryStore) -> None:
    history_store.save(_record("Bit Transfer", category_id="transfers"))
    history_store.save(_record("Bit Transfer", category_id="food", memo="Pizza night"))

    with_memo = history_store.find_matches("Bit Transfer", USER_ID, memo="pizza NIGHT")
    assert [r.category_id for r in with_memo] == ["food"]

    unknown_memo = history_store.find_matches("Bit Transfer", USER_ID, memo="rent")
    assert [r.category_id for r in unknown_memo] == ["transfers"]

    no_memo = history_store.find_matches("Bit Transfer", USER_ID)
    assert [r.category_id for r in no_memo] == ["transfers"]


def test_save_upserts_existing_record(history_store: InMemoryHistoryStore) -> None:
    first = history_store.save(_record("Coffee Shop Payment", sub_category_id="restaurants"))
    time.sleep(0.01)
    second = history_store.save(_record("coffee shop payment", category_id="taxes", sub_category_id="income-tax"))

    assert second.match_count == 2
    assert second.category_id == "taxes"
    assert second.last_used > first.last_used
    assert len(history_store.records(USER_ID)) == 1


def test_fuzzy_fallback_scales_confidence(history_store: InMemoryHistoryStore) -> None:
    history_store.save(_record("Payment Coffee Shop"))

    matches = history_store.find_matches("Coffee Shop Payment", USER_ID)

    # token_sort_ratio ignores word order
    assert len(matches) == 1
    assert matches[0].confidence == 1.0


def test_fuzzy_fallback_below_threshold(history_store: InMemoryHistoryStore) -> None:
    history_store.save(_record("Coffee Shop Payment"))
    assert history_store.find_matches("Gas Station Payment", USER_ID) == []


def test_fuzzy_fallback_ignores_weak_records(history_store: InMemoryHistoryStore) -> None:
    history_store.save(_record("Coffee Shop Payment", confidence=0.4))

    assert history_store.find_matches("Coffee Shop Paymnt", USER_ID) == []
    # Exact lookups still return the record.
    assert len(history_store.find_matches("Coffee Shop Payment", USER_ID)) == 1


def test_results_are_copies(history_store: InMemoryHistoryStore) -> None:
    history_store.save(_record("Coffee Shop Payment"))
    match = history_store.find_matches("Coffee Shop Payment", USER_ID)[0]
    match.category_id = "mutated"

    assert history_store.find_matches("Coffee Shop Payment", USER_ID)[0].category_id == "food"


def test_exact_matches_ranked_by_usage_then_recency(history_store: InMemoryHistoryStore) -> None:
    now = datetime.now()
    history_store._records = [
        _record("rent", category_id="old", last_used=now - timedelta(days=10), match_count=3),
        _record("rent", category_id="recent", last_used=now, match_count=3),
        _record("rent", category_id="rare", last_used=now, match_count=1),
    ]

    matches = history_store.find_matches("Rent", USER_ID)

    assert [r.category_id for r in matches] == ["recent", "old", "rare"]


def test_clear(history_store: InMemoryHistoryStore) -> None:
    history_store.save(_record("Coffee Shop Payment"))
    history_store.clear()
    assert history_store.records() == []


def test_json_history_store_persists(tmp_path: Path) -> None:
    path = tmp_path / "history.json"
    store = JsonHistoryStore(data_path=str(path))
    store.save(_record("קפה ארומה", sub_category_id="restaurants"))

    assert path.exists()
    reloaded = JsonHistoryStore(data_path=str(path))
    matches = reloaded.find_matches("קפה ארומה", USER_ID)
    assert len(matches) == 1
    assert matches[0].sub_category_id == "restaurants"


def test_json_history_store_corrupt_file(tmp_path: Path) -> None:
    path = tmp_path / "history.json"
    path.write_text("{not json", encoding="utf-8")

    store = JsonHistoryStore(data_path=str(path))

    assert store.records() == []


def test_category_store_lookups(category_store: InMemoryCategoryStore) -> None:
    assert category_store.get_category(USER_ID, "food").name == "Food"
    assert category_store.get_category("someone-else", "food") is None
    assert category_store.get_sub_category(USER_ID, "groceries").parent_category_id == "food"
    assert category_store.get_sub_category(USER_ID, "missing") is None
    assert len(category_store.get_taxonomy(USER_ID)) == 4


def test_category_store_keyword_filters(category_store: InMemoryCategoryStore) -> None:
    flat = category_store.find_by_type_and_keywords(USER_ID, [TransactionType.INCOME, TransactionType.TRANSFER])
    assert {c.id for c in flat} == {"salary", "transfers"}

    pairs = category_store.find_sub_categories_by_type_and_keywords(USER_ID, [TransactionType.EXPENSE])
    assert [(sub.id, parent.id) for sub, parent in pairs] == [
        ("restaurants", "food"),
        ("groceries", "food"),
        ("income-tax", "taxes"),
    ]


def test_category_store_rejects_foreign_sub_category() -> None:
    store = InMemoryCategoryStore()
    with pytest.raises(ValueError):
        store.add_category(Category(
            id="food",
            user_id=USER_ID,
            name="Food",
            type=TransactionType.EXPENSE,
            sub_categories=[SubCategory(id="x", parent_category_id="other", name="X")],
        ))


def test_json_category_store_round_trip(tmp_path: Path) -> None:
    path = tmp_path / "categories.json"
    path.write_text(
        json.dumps([c.model_dump(mode="json") for c in build_taxonomy()], ensure_ascii=False),
        encoding="utf-8",
    )

    store = JsonCategoryStore(data_path=str(path))
    assert store.get_sub_category(USER_ID, "income-tax").keywords == ["מס", "tax"]

    store.add_category(Category(id="rent", user_id=USER_ID, name="Rent", type=TransactionType.EXPENSE))
    reloaded = JsonCategoryStore(data_path=str(path))
    assert reloaded.get_category(USER_ID, "rent") is not None


def test_json_category_store_missing_file(tmp_path: Path) -> None:
    store = JsonCategoryStore(data_path=str(tmp_path / "missing.json"))
    assert store.get_taxonomy(USER_ID) == []
