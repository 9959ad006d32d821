from abc import ABC, abstractmethod
from decimal import Decimal

from budget_categorizer.models import AISuggestion, Category


class SuggestionProvider(ABC):
    """Last-resort source of category suggestions. May raise or block."""

    @abstractmethod
    def suggest(
        self,
        description: str,
        amount: Decimal,
        taxonomy: list[Category],
        user_id: str,
        raw_category_hint: str | None = None,
        memo_hint: str | None = None,
    ) -> AISuggestion:
        pass


class NullSuggestionProvider(SuggestionProvider):
    def suggest(
        self,
        description: str,
        amount: Decimal,
        taxonomy: list[Category],
        user_id: str,
        raw_category_hint: str | None = None,
        memo_hint: str | None = None,
    ) -> AISuggestion:
        return AISuggestion()
