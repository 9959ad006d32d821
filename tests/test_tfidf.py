from decimal import Decimal

from budget_categorizer.integration.tfidf import TfidfSuggestionProvider
from budget_categorizer.models import AISuggestion, Category, TransactionType

from conftest import USER_ID, build_taxonomy


def test_tfidf_suggests_closest_sub_category() -> None:
    provider = TfidfSuggestionProvider()

    suggestion = provider.suggest("SUPERMARKET CITY CENTER", Decimal("-120"), build_taxonomy(), USER_ID)

    assert suggestion.category_id == "food"
    assert suggestion.sub_category_id == "groceries"
    assert 0.2 <= suggestion.confidence <= 1.0
    assert '"Food" > "Groceries"' in suggestion.reasoning


def test_tfidf_flat_categories_have_no_sub_category() -> None:
    provider = TfidfSuggestionProvider()

    suggestion = provider.suggest("monthly salary", Decimal("9000"), build_taxonomy(), USER_ID)

    assert suggestion.category_id == "salary"
    assert suggestion.sub_category_id is None


def test_tfidf_uses_hints() -> None:
    provider = TfidfSuggestionProvider()

    suggestion = provider.suggest(
        "POS 1234", Decimal("-80"), build_taxonomy(), USER_ID, raw_category_hint="restaurant"
    )

    assert suggestion.sub_category_id == "restaurants"


def test_tfidf_below_threshold_returns_empty() -> None:
    provider = TfidfSuggestionProvider(min_similarity=0.99)

    suggestion = provider.suggest("xyz qqq", Decimal("-5"), build_taxonomy(), USER_ID)

    assert suggestion == AISuggestion()


def test_tfidf_empty_inputs() -> None:
    provider = TfidfSuggestionProvider()

    assert provider.suggest("", Decimal("-5"), build_taxonomy(), USER_ID) == AISuggestion()
    assert provider.suggest("coffee", Decimal("-5"), [], USER_ID) == AISuggestion()


def test_tfidf_empty_vocabulary() -> None:
    provider = TfidfSuggestionProvider()
    # A name made only of punctuation leaves nothing to vectorize.
    taxonomy = [Category(id="x", user_id=USER_ID, name="!!", type=TransactionType.INCOME)]

    assert provider.suggest("x", Decimal("5"), taxonomy, USER_ID) == AISuggestion()
