import asyncio
import json
import threading
import time
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from budget_categorizer.app import build_service
from budget_categorizer.core.configuration import AppSettings
from budget_categorizer.domain.errors import InvalidTransactionError
from budget_categorizer.integration.tfidf import TfidfSuggestionProvider
from budget_categorizer.integration.translation import IdentityTranslator
from budget_categorizer.manager import CategorizerService
from budget_categorizer.models import CategorizationMethod, CategorizationOutcome, TransactionType
from budget_categorizer.services.categorization import CategorizationPipeline
from budget_categorizer.storage.memory import InMemoryCategoryStore, InMemoryHistoryStore

from conftest import build_taxonomy, make_transaction


def _settings(data_dir: Path, **overrides) -> AppSettings:
    values = dict(
        data_dir=str(data_dir),
        openai_api_key=None,
        openai_model="gpt-4o-mini",
        openai_base_url=None,
        ai_timeout=2.0,
        ai_cache_ttl=0.0,
        keyword_threshold=0.5,
        history_fuzzy_threshold=90.0,
        ambiguity_table_path=None,
        batch_concurrency=2,
        translation_enabled=False,
    )
    values.update(overrides)
    return AppSettings(**values)


@pytest.mark.anyio
async def test_categorize_one_applies_outcome(
    history_store: InMemoryHistoryStore, category_store: InMemoryCategoryStore
) -> None:
    service = CategorizerService(history=history_store, categories=category_store)
    pipeline = CategorizationPipeline(service=service)
    tx = make_transaction("Salary Deposit", amount="12000")

    outcome = await pipeline.categorize_one(tx)

    assert outcome.category_id == "salary"
    assert tx.category_id == "salary"
    assert tx.categorization_method == CategorizationMethod.PREVIOUS_DATA
    assert tx.categorization_confidence == outcome.confidence
    assert tx.categorization_reasoning == outcome.reasoning


@pytest.mark.anyio
async def test_uncategorized_outcome_leaves_transaction_untouched(
    history_store: InMemoryHistoryStore, category_store: InMemoryCategoryStore
) -> None:
    service = CategorizerService(history=history_store, categories=category_store)
    pipeline = CategorizationPipeline(service=service)
    tx = make_transaction("XYZ Unknown Merchant 42")

    outcome = await pipeline.categorize_one(tx)

    assert not outcome.is_categorized
    assert tx.category_id is None
    assert tx.categorization_method is None
    assert tx.type == TransactionType.EXPENSE


@pytest.mark.anyio
async def test_batch_keeps_input_order(
    history_store: InMemoryHistoryStore, category_store: InMemoryCategoryStore
) -> None:
    service = CategorizerService(history=history_store, categories=category_store)
    pipeline = CategorizationPipeline(service=service, concurrency=3)
    transactions = [
        make_transaction("Salary Deposit", amount="12000"),
        make_transaction("XYZ Unknown Merchant 42"),
        make_transaction("income tax payment"),
        make_transaction("Weekly supermarket"),
    ]

    outcomes = await pipeline.categorize_batch(transactions)

    assert [o.category_id for o in outcomes] == ["salary", None, "taxes", "food"]
    assert [tx.category_id for tx in transactions] == ["salary", None, "taxes", "food"]


@pytest.mark.anyio
async def test_batch_respects_concurrency_limit() -> None:
    lock = threading.Lock()
    running = 0
    peak = 0

    def categorize(transaction):
        nonlocal running, peak
        with lock:
            running += 1
            peak = max(peak, running)
        time.sleep(0.05)
        with lock:
            running -= 1
        return CategorizationOutcome()

    service = MagicMock()
    service.categorize.side_effect = categorize
    pipeline = CategorizationPipeline(service=service, concurrency=2)

    outcomes = await pipeline.categorize_batch([make_transaction(f"tx {i}") for i in range(6)])

    assert len(outcomes) == 6
    assert peak <= 2
    assert service.categorize.call_count == 6


@pytest.mark.anyio
async def test_batch_empty() -> None:
    pipeline = CategorizationPipeline(service=MagicMock())
    assert await pipeline.categorize_batch([]) == []


@pytest.mark.anyio
async def test_rejected_batch_leaves_every_row_untouched(
    history_store: InMemoryHistoryStore, category_store: InMemoryCategoryStore
) -> None:
    service = CategorizerService(history=history_store, categories=category_store)
    pipeline = CategorizationPipeline(service=service)
    good = make_transaction("Salary Deposit", amount="12000")
    bad = make_transaction(" ")

    with pytest.raises(InvalidTransactionError):
        await pipeline.categorize_batch([good, bad])

    assert good.category_id is None
    assert good.type is None
    assert good.categorization_method is None


@pytest.mark.anyio
async def test_store_errors_propagate(category_store: InMemoryCategoryStore) -> None:
    history = MagicMock()
    history.find_matches.side_effect = OSError("disk gone")
    service = CategorizerService(history=history, categories=category_store)
    pipeline = CategorizationPipeline(service=service)

    with pytest.raises(OSError):
        await pipeline.categorize_one(make_transaction("Coffee Shop Payment"))


@pytest.mark.anyio
async def test_build_service_end_to_end(tmp_path: Path) -> None:
    (tmp_path / "categories.json").write_text(
        json.dumps([c.model_dump(mode="json") for c in build_taxonomy()], ensure_ascii=False),
        encoding="utf-8",
    )
    service = build_service(_settings(tmp_path))
    pipeline = CategorizationPipeline(service=service, concurrency=2)

    assert isinstance(service.ai.provider, TfidfSuggestionProvider)
    assert isinstance(service.keywords.translator, IdentityTranslator)

    tx = make_transaction("Falafel Hakosem")
    service.record_manual_categorization(tx, "food", "restaurants")
    assert (tmp_path / "history.json").exists()

    outcomes = await pipeline.categorize_batch([
        make_transaction("falafel hakosem"),
        make_transaction("Supermarket Deal"),
    ])
    service.close()

    assert outcomes[0].method == CategorizationMethod.PREVIOUS_DATA
    assert outcomes[0].sub_category_id == "restaurants"
    assert outcomes[1].sub_category_id == "groceries"


def test_build_service_custom_ambiguity_table(tmp_path: Path) -> None:
    table = tmp_path / "ambiguity.json"
    table.write_text(json.dumps({"shop": {"substring_allowed": True}}), encoding="utf-8")

    service = build_service(_settings(tmp_path, ambiguity_table_path=str(table)))
    service.close()

    assert service.keywords.matcher.guard.is_whitelisted("shop")
    assert "מס" not in service.keywords.matcher.guard


def test_pipeline_concurrency_floor_and_predict(
    history_store: InMemoryHistoryStore, category_store: InMemoryCategoryStore
) -> None:
    service = CategorizerService(history=history_store, categories=category_store)
    pipeline = CategorizationPipeline(service=service, concurrency=0)

    assert pipeline.concurrency == 1
    outcome = asyncio.run(pipeline.predict(make_transaction("Salary Deposit", amount="100")))
    assert outcome.category_id == "salary"
