from budget_categorizer.domain.transactions import SearchTerm, build_search_terms
from budget_categorizer.integration.translation import IdentityTranslator, Translator
from budget_categorizer.logger import get_logger
from budget_categorizer.matching.keywords import USABLE_CONFIDENCE, KeywordMatcher, is_usable
from budget_categorizer.models import (
    CategorizationMethod,
    CategorizationOutcome,
    MatchResult,
    TransactionType,
)
from budget_categorizer.storage.base import CategoryStore

from .base import CategorizationContext, Classifier

logger = get_logger(__name__)

# Income and Transfer categories carry their keywords directly.
FLAT_CATEGORY_TYPES = (TransactionType.INCOME, TransactionType.TRANSFER)


class KeywordClassifier(Classifier):
    name = "keywords"

    def __init__(
        self,
        categories: CategoryStore,
        matcher: KeywordMatcher | None = None,
        translator: Translator | None = None,
        threshold: float = USABLE_CONFIDENCE,
    ):
        self.categories = categories
        self.matcher = matcher or KeywordMatcher()
        self.translator = translator or IdentityTranslator()
        self.threshold = threshold

    def attempt(self, context: CategorizationContext) -> CategorizationOutcome | None:
        tx = context.transaction
        terms = build_search_terms(tx)
        if not terms:
            return None
        translated: dict[str, str] = {}

        flat_types = [t for t in context.candidate_types if t in FLAT_CATEGORY_TYPES]
        if flat_types:
            for category in self.categories.find_by_type_and_keywords(tx.user_id, flat_types):
                result = self._match_terms(terms, translated, category.keywords)
                if result is None:
                    continue
                return CategorizationOutcome(
                    category_id=category.id,
                    sub_category_id=None,
                    method=CategorizationMethod.PREVIOUS_DATA,
                    confidence=result.confidence,
                    reasoning=(
                        f"Keyword match: {result.reasoning} in {result.matched_field}. "
                        f'Matched category: "{category.name}" (confidence: {result.confidence:.2f})'
                    ),
                )

        if TransactionType.EXPENSE in context.candidate_types:
            pairs = self.categories.find_sub_categories_by_type_and_keywords(
                tx.user_id, [TransactionType.EXPENSE]
            )
            for sub_category, parent in pairs:
                result = self._match_terms(terms, translated, sub_category.keywords)
                if result is None:
                    continue
                return CategorizationOutcome(
                    category_id=parent.id,
                    sub_category_id=sub_category.id,
                    method=CategorizationMethod.PREVIOUS_DATA,
                    confidence=result.confidence,
                    reasoning=(
                        f"Keyword match: {result.reasoning} in {result.matched_field}. "
                        f'Matched subcategory: "{parent.name}" > "{sub_category.name}" '
                        f"(confidence: {result.confidence:.2f})"
                    ),
                )

        return None

    def _match_terms(
        self,
        terms: list[SearchTerm],
        translated: dict[str, str],
        keywords: list[str],
    ) -> MatchResult | None:
        for term in terms:
            result = self.matcher.match_keywords(term.text, None, keywords)
            if not is_usable(result, self.threshold):
                # Translation is only fetched once the original text has missed.
                if term.field not in translated:
                    translated[term.field] = self.translator.translate(term.text)
                if translated[term.field] == term.text:
                    continue
                result = self.matcher.match_keywords(term.text, translated[term.field], keywords)
            if is_usable(result, self.threshold):
                result.matched_field = term.field
                return result
        return None
