from collections import Counter
from collections.abc import Collection

from budget_categorizer.classifiers.base import CategorizationContext, Classifier
from budget_categorizer.classifiers.history import HistoryMatcher
from budget_categorizer.classifiers.keywords import KeywordClassifier
from budget_categorizer.classifiers.llm import AISuggestionClassifier
from budget_categorizer.domain.errors import InvalidCategorizationError
from budget_categorizer.domain.transactions import (
    apply_outcome,
    default_type,
    existing_outcome,
    infer_candidate_types,
    is_fully_categorized,
    validate_transaction,
)
from budget_categorizer.integration.suggestion import SuggestionProvider
from budget_categorizer.integration.translation import Translator
from budget_categorizer.logger import get_logger
from budget_categorizer.matching.keywords import USABLE_CONFIDENCE, KeywordMatcher
from budget_categorizer.matching.normalizer import english_stopwords, normalize, tokenize
from budget_categorizer.models import (
    CategorizationMethod,
    CategorizationOutcome,
    HistoricalCategorization,
    Transaction,
    TransactionType,
)
from budget_categorizer.storage.base import CategoryStore, HistoryStore

logger = get_logger(__name__)

UNCATEGORIZED_REASONING = "No history, keyword or AI match; left for manual review"

MIN_SUGGESTION_TOKENS = 3
MIN_KEYWORD_LENGTH = 4
MAX_KEYWORD_SUGGESTIONS = 3


class CategorizerService:
    def __init__(self,
                 history: HistoryStore,
                 categories: CategoryStore,
                 provider: SuggestionProvider | None = None,
                 matcher: KeywordMatcher | None = None,
                 translator: Translator | None = None,
                 keyword_threshold: float = USABLE_CONFIDENCE,
                 ai_timeout: float = 10.0,
                 stopwords: Collection[str] | None = None):

        self.history = history
        self.categories = categories
        self.stopwords = stopwords
        self.classifiers: list[Classifier] = []

        # 1. Previous manual decisions (highest priority)
        self.history_matcher = HistoryMatcher(history=history, categories=categories)
        self.classifiers.append(self.history_matcher)

        # 2. Category and sub-category keywords
        self.keywords = KeywordClassifier(
            categories=categories,
            matcher=matcher,
            translator=translator,
            threshold=keyword_threshold,
        )
        self.classifiers.append(self.keywords)

        # 3. AI suggestion (fallback)
        if provider is not None:
            self.ai: AISuggestionClassifier | None = AISuggestionClassifier(
                provider=provider,
                categories=categories,
                timeout=ai_timeout,
            )
            self.classifiers.append(self.ai)
            logger.info(f"AI fallback enabled: provider={provider.__class__.__name__}")
        else:
            self.ai = None
            logger.warning("No suggestion provider configured. AI fallback disabled.")

    def categorize(self, transaction: Transaction) -> CategorizationOutcome:
        validate_transaction(transaction)

        if transaction.category_id:
            category = self.categories.get_category(transaction.user_id, transaction.category_id)
            category_type = category.type if category else transaction.type
            if is_fully_categorized(transaction, category_type):
                logger.debug(f"[CASCADE] Transaction {transaction.id} already categorized, skipping")
                return existing_outcome(transaction)

        context = CategorizationContext(
            transaction=transaction,
            candidate_types=tuple(infer_candidate_types(transaction)),
        )

        for classifier in self.classifiers:
            logger.debug(f"[CASCADE] Trying {classifier.name} for: '{transaction.description[:50]}'")
            outcome = classifier.attempt(context)
            if outcome:
                logger.debug(
                    f"[CASCADE] {classifier.name} returned category {outcome.category_id} "
                    f"(confidence: {outcome.confidence:.2f})"
                )
                self._backfill_type(transaction, outcome)
                return outcome

        if transaction.type is None:
            transaction.type = default_type(transaction)
        logger.debug(
            f"[CASCADE] No stage matched '{transaction.description[:50]}', "
            f"type defaulted to {transaction.type.value}"
        )
        return CategorizationOutcome(reasoning=UNCATEGORIZED_REASONING)

    def _backfill_type(self, transaction: Transaction, outcome: CategorizationOutcome) -> None:
        if transaction.type is not None or outcome.category_id is None:
            return
        category = self.categories.get_category(transaction.user_id, outcome.category_id)
        if category:
            transaction.type = category.type

    def record_manual_categorization(
        self,
        transaction: Transaction,
        category_id: str,
        sub_category_id: str | None = None,
    ) -> HistoricalCategorization:
        """
        Apply a user's decision to the transaction and remember it for future
        imports of the same description.
        """
        validate_transaction(transaction)

        category = self.categories.get_category(transaction.user_id, category_id)
        if category is None:
            raise InvalidCategorizationError(f"Unknown category '{category_id}'")

        if sub_category_id:
            sub_category = self.categories.get_sub_category(transaction.user_id, sub_category_id)
            if sub_category is None or sub_category.parent_category_id != category.id:
                raise InvalidCategorizationError(
                    f"Sub-category '{sub_category_id}' does not belong to '{category.name}'"
                )
            if category.type != TransactionType.EXPENSE:
                raise InvalidCategorizationError(
                    f"{category.type.value} categories do not use sub-categories"
                )
        elif category.type == TransactionType.EXPENSE:
            raise InvalidCategorizationError("Expense categories require a sub-category")

        apply_outcome(transaction, CategorizationOutcome(
            category_id=category.id,
            sub_category_id=sub_category_id,
            method=CategorizationMethod.MANUAL,
            confidence=1.0,
            reasoning="Manually categorized",
        ))
        transaction.type = category.type

        record = self.history.save(HistoricalCategorization(
            user_id=transaction.user_id,
            description=transaction.description,
            memo=transaction.effective_memo,
            raw_category=transaction.raw_data.category if transaction.raw_data else None,
            category_id=category.id,
            sub_category_id=sub_category_id,
        ))
        logger.info(
            f"[HISTORY] Saved manual categorization '{record.description}' -> "
            f"{category.name} (used {record.match_count} times)"
        )
        return record

    def suggest_keywords(
        self,
        description: str,
        existing: Collection[str] | None = None,
        limit: int = MAX_KEYWORD_SUGGESTIONS,
    ) -> list[str]:
        """
        Propose new keywords for a sub-category from a transaction description.

        Short descriptions are translated first. Stopwords, numbers, tokens of
        three characters or fewer and keywords already in ``existing`` are
        dropped; the rest are ranked by frequency, ties kept in text order.
        """
        tokens = tokenize(description)
        if len(tokens) < MIN_SUGGESTION_TOKENS:
            translated = tokenize(self.keywords.translator.translate(description))
            if translated:
                tokens = translated

        known = {normalize(keyword) for keyword in existing or []}
        stop = self._stopwords()
        significant = [
            token for token in tokens
            if len(token) >= MIN_KEYWORD_LENGTH
            and not token.isdigit()
            and token not in stop
            and token not in known
        ]
        keywords = [token for token, _ in Counter(significant).most_common(limit)]
        logger.debug(f"[KEYWORDS] Suggested {keywords} from '{description[:50]}'")
        return keywords

    def _stopwords(self) -> Collection[str]:
        if self.stopwords is None:
            try:
                self.stopwords = english_stopwords()
            except LookupError as e:
                logger.warning(f"NLTK stopwords unavailable, suggesting without them: {e}")
                self.stopwords = frozenset()
        return self.stopwords

    def close(self) -> None:
        if self.ai is not None:
            self.ai.close()
