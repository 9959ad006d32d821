from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FuturesTimeoutError

from budget_categorizer.integration.suggestion import SuggestionProvider
from budget_categorizer.logger import get_logger
from budget_categorizer.models import AISuggestion, CategorizationMethod, CategorizationOutcome
from budget_categorizer.storage.base import CategoryStore

from .base import CategorizationContext, Classifier

logger = get_logger(__name__)

DEFAULT_AI_CONFIDENCE = 0.5


class AISuggestionClassifier(Classifier):
    """
    Last cascade stage. Suggestions are accepted without a confidence floor;
    provider errors and timeouts count as "no suggestion".
    """

    name = "ai"

    def __init__(
        self,
        provider: SuggestionProvider,
        categories: CategoryStore,
        timeout: float = 10.0,
        max_workers: int = 4,
    ):
        self.provider = provider
        self.categories = categories
        self.timeout = timeout
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="ai-suggest")

    def attempt(self, context: CategorizationContext) -> CategorizationOutcome | None:
        tx = context.transaction
        taxonomy = self.categories.get_taxonomy(tx.user_id)
        memo = tx.effective_memo
        raw_category = tx.raw_data.category if tx.raw_data else None

        suggestion = self._request(tx.description, tx.amount, taxonomy, tx.user_id, raw_category, memo)
        if suggestion is None or not suggestion.category_id:
            return None

        category = next((c for c in taxonomy if c.id == suggestion.category_id), None)
        if category is None:
            logger.warning(f"[AI] Provider suggested unknown category id '{suggestion.category_id}'")
            return None

        sub_category = None
        if suggestion.sub_category_id:
            sub_category = next(
                (s for s in category.sub_categories if s.id == suggestion.sub_category_id),
                None,
            )
            if sub_category is None:
                logger.warning(
                    f"[AI] Sub-category '{suggestion.sub_category_id}' is not part of "
                    f"'{category.name}', keeping the category only"
                )

        used_fields = [f'description: "{tx.description}"']
        if memo:
            used_fields.append(f'memo: "{memo}"')
        if raw_category:
            used_fields.append(f'raw_data.category: "{raw_category}"')

        target = f'"{category.name}"'
        if sub_category:
            target += f' > "{sub_category.name}"'
        reasoning = f"AI categorization: Analyzed {', '.join(used_fields)}. AI suggested category: {target}"
        if suggestion.reasoning:
            reasoning += f". AI reasoning: {suggestion.reasoning}"

        confidence = suggestion.confidence if suggestion.confidence is not None else DEFAULT_AI_CONFIDENCE
        return CategorizationOutcome(
            category_id=category.id,
            sub_category_id=sub_category.id if sub_category else None,
            method=CategorizationMethod.AI,
            confidence=max(0.0, min(confidence, 1.0)),
            reasoning=reasoning,
        )

    def _request(self, *args: object) -> AISuggestion | None:
        future = self._executor.submit(self.provider.suggest, *args)
        try:
            return future.result(timeout=self.timeout)
        except FuturesTimeoutError:
            future.cancel()
            logger.warning(f"[AI] Provider timed out after {self.timeout:.1f}s")
            return None
        except Exception as e:
            logger.error(f"[AI] Provider error: {e}")
            return None

    def close(self) -> None:
        self._executor.shutdown(wait=False, cancel_futures=True)
