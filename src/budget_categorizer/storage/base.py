from abc import ABC, abstractmethod
from collections.abc import Iterable

from budget_categorizer.models import (
    Category,
    HistoricalCategorization,
    SubCategory,
    TransactionType,
)


class HistoryStore(ABC):
    @abstractmethod
    def find_matches(
        self, description: str, user_id: str, memo: str | None = None
    ) -> list[HistoricalCategorization]:
        """Return prior manual decisions for the description, best first."""
        pass

    @abstractmethod
    def save(self, record: HistoricalCategorization) -> HistoricalCategorization:
        """Create or update the record for (user, description, memo)."""
        pass


class CategoryStore(ABC):
    @abstractmethod
    def find_by_type_and_keywords(
        self, user_id: str, types: Iterable[TransactionType]
    ) -> list[Category]:
        """Categories of the given types that carry a non-empty keyword list."""
        pass

    @abstractmethod
    def find_sub_categories_by_type_and_keywords(
        self, user_id: str, types: Iterable[TransactionType]
    ) -> list[tuple[SubCategory, Category]]:
        """Sub-categories with keywords, joined to a parent of the given types."""
        pass

    @abstractmethod
    def get_category(self, user_id: str, category_id: str) -> Category | None:
        pass

    @abstractmethod
    def get_sub_category(self, user_id: str, sub_category_id: str) -> SubCategory | None:
        pass

    @abstractmethod
    def get_taxonomy(self, user_id: str) -> list[Category]:
        """Every category of the user, with sub-categories."""
        pass
