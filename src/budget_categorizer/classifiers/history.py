from budget_categorizer.logger import get_logger
from budget_categorizer.models import CategorizationMethod, CategorizationOutcome
from budget_categorizer.storage.base import CategoryStore, HistoryStore

from .base import CategorizationContext, Classifier

logger = get_logger(__name__)


class HistoryMatcher(Classifier):
    """Replays the user's earlier manual decisions for the same description."""

    name = "history"

    def __init__(self, history: HistoryStore, categories: CategoryStore):
        self.history = history
        self.categories = categories

    def attempt(self, context: CategorizationContext) -> CategorizationOutcome | None:
        tx = context.transaction
        memo = tx.effective_memo
        matches = self.history.find_matches(tx.description, tx.user_id, memo)
        if not matches:
            return None

        matches = sorted(matches, key=lambda r: (-r.match_count, -r.last_used.timestamp()))
        for record in matches:
            category = self.categories.get_category(tx.user_id, record.category_id)
            if category is None or category.type not in context.candidate_types:
                continue

            sub_category = (
                self.categories.get_sub_category(tx.user_id, record.sub_category_id)
                if record.sub_category_id
                else None
            )
            target = f'"{category.name}"'
            if sub_category:
                target += f' > "{sub_category.name}"'

            reasoning = (
                "Manual categorization match: found a previously categorized transaction. "
                f'Description: "{tx.description}"'
            )
            if memo:
                reasoning += f', Memo: "{memo}"'
            reasoning += f". Matched category: {target}"

            logger.debug(
                "[HISTORY] '%s' -> %s (used %s times)",
                tx.description,
                target,
                record.match_count,
            )
            return CategorizationOutcome(
                category_id=category.id,
                sub_category_id=sub_category.id if sub_category else None,
                method=CategorizationMethod.PREVIOUS_DATA,
                confidence=max(0.0, min(record.confidence, 1.0)),
                reasoning=reasoning,
            )

        logger.debug(
            "[HISTORY] %s records for '%s' but none of type %s",
            len(matches),
            tx.description,
            [t.value for t in context.candidate_types],
        )
        return None
