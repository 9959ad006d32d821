import json
import os
import threading
from collections.abc import Iterable
from datetime import datetime

from rapidfuzz import fuzz, process

from budget_categorizer.logger import get_logger
from budget_categorizer.matching.normalizer import normalize
from budget_categorizer.models import (
    Category,
    HistoricalCategorization,
    SubCategory,
    TransactionType,
)
from budget_categorizer.storage.base import CategoryStore, HistoryStore

logger = get_logger(__name__)

# Only well-established decisions are eligible for fuzzy replay.
FUZZY_MIN_RECORD_CONFIDENCE = 0.5


def _ranking_key(record: HistoricalCategorization) -> tuple[int, float]:
    return (-record.match_count, -record.last_used.timestamp())


class InMemoryHistoryStore(HistoryStore):
    def __init__(self, fuzzy_threshold: float = 90.0):
        self.fuzzy_threshold = fuzzy_threshold
        self._records: list[HistoricalCategorization] = []
        self._lock = threading.Lock()

    def find_matches(
        self, description: str, user_id: str, memo: str | None = None
    ) -> list[HistoricalCategorization]:
        normalized_description = normalize(description)
        normalized_memo = normalize(memo) or None
        if not normalized_description:
            return []

        with self._lock:
            user_records = [r.model_copy(deep=True) for r in self._records if r.user_id == user_id]

        # 1. Exact description + memo
        if normalized_memo:
            exact = [
                r for r in user_records
                if r.description == normalized_description and r.memo == normalized_memo
            ]
            if exact:
                return sorted(exact, key=_ranking_key)

        # 2. Exact description, record without memo
        exact = [
            r for r in user_records
            if r.description == normalized_description and r.memo is None
        ]
        if exact:
            return sorted(exact, key=_ranking_key)

        # 3. Fuzzy description for confident records only
        eligible = [r for r in user_records if r.confidence >= FUZZY_MIN_RECORD_CONFIDENCE]
        if not eligible:
            return []
        eligible.sort(key=_ranking_key)
        result = process.extractOne(
            normalized_description,
            [r.description for r in eligible],
            scorer=fuzz.token_sort_ratio,
        )
        if result:
            _, score, index = result
            if score >= self.fuzzy_threshold:
                record = eligible[index]
                record.confidence = round(record.confidence * score / 100.0, 2)
                logger.debug(
                    "[HISTORY] Fuzzy match '%s' -> '%s' (score: %.1f)",
                    normalized_description,
                    record.description,
                    score,
                )
                return [record]
        return []

    def save(self, record: HistoricalCategorization) -> HistoricalCategorization:
        description = normalize(record.description)
        memo = normalize(record.memo) or None
        raw_category = normalize(record.raw_category) or None

        with self._lock:
            for existing in self._records:
                if (
                    existing.user_id == record.user_id
                    and existing.description == description
                    and existing.memo == memo
                ):
                    existing.match_count += 1
                    existing.last_used = datetime.now()
                    existing.category_id = record.category_id
                    existing.sub_category_id = record.sub_category_id
                    existing.raw_category = raw_category
                    existing.confidence = 1.0
                    saved = existing.model_copy(deep=True)
                    break
            else:
                stored = record.model_copy(update={
                    "description": description,
                    "memo": memo,
                    "raw_category": raw_category,
                })
                self._records.append(stored)
                saved = stored.model_copy(deep=True)
            self._persist()
        return saved

    def records(self, user_id: str | None = None) -> list[HistoricalCategorization]:
        with self._lock:
            return [
                r.model_copy(deep=True)
                for r in self._records
                if user_id is None or r.user_id == user_id
            ]

    def clear(self) -> None:
        with self._lock:
            self._records = []
            self._persist()

    def _persist(self) -> None:
        """Hook for durable subclasses; called while holding the lock."""
        pass


class JsonHistoryStore(InMemoryHistoryStore):
    def __init__(self, data_path: str = "history.json", fuzzy_threshold: float = 90.0):
        super().__init__(fuzzy_threshold=fuzzy_threshold)
        self.data_path = data_path
        self.load()

    def load(self) -> None:
        if not os.path.exists(self.data_path):
            return
        try:
            with open(self.data_path, encoding="utf-8") as f:
                raw = json.load(f)
        except json.JSONDecodeError:
            logger.warning("[HISTORY] Could not parse %s, starting empty.", self.data_path)
            raw = []
        with self._lock:
            self._records = [HistoricalCategorization.model_validate(item) for item in raw]

    def _persist(self) -> None:
        with open(self.data_path, "w", encoding="utf-8") as f:
            json.dump(
                [r.model_dump(mode="json") for r in self._records],
                f,
                indent=2,
                ensure_ascii=False,
            )


class InMemoryCategoryStore(CategoryStore):
    def __init__(self, categories: Iterable[Category] | None = None):
        self._categories: list[Category] = []
        self._lock = threading.Lock()
        for category in categories or []:
            self.add_category(category)

    def add_category(self, category: Category) -> Category:
        stored = category.model_copy(deep=True)
        for sub in stored.sub_categories:
            if sub.parent_category_id != stored.id:
                raise ValueError(
                    f"Sub-category '{sub.name}' does not belong to category '{stored.name}'"
                )
        with self._lock:
            self._categories = [
                c for c in self._categories
                if not (c.id == stored.id and c.user_id == stored.user_id)
            ]
            self._categories.append(stored)
        return stored.model_copy(deep=True)

    def _user_categories(self, user_id: str) -> list[Category]:
        with self._lock:
            return [c.model_copy(deep=True) for c in self._categories if c.user_id == user_id]

    def find_by_type_and_keywords(
        self, user_id: str, types: Iterable[TransactionType]
    ) -> list[Category]:
        wanted = set(types)
        return [
            c for c in self._user_categories(user_id)
            if c.type in wanted and any(k.strip() for k in c.keywords)
        ]

    def find_sub_categories_by_type_and_keywords(
        self, user_id: str, types: Iterable[TransactionType]
    ) -> list[tuple[SubCategory, Category]]:
        wanted = set(types)
        pairs: list[tuple[SubCategory, Category]] = []
        for category in self._user_categories(user_id):
            if category.type not in wanted:
                continue
            for sub in category.sub_categories:
                if any(k.strip() for k in sub.keywords):
                    pairs.append((sub, category))
        return pairs

    def get_category(self, user_id: str, category_id: str) -> Category | None:
        for category in self._user_categories(user_id):
            if category.id == category_id:
                return category
        return None

    def get_sub_category(self, user_id: str, sub_category_id: str) -> SubCategory | None:
        for category in self._user_categories(user_id):
            for sub in category.sub_categories:
                if sub.id == sub_category_id:
                    return sub
        return None

    def get_taxonomy(self, user_id: str) -> list[Category]:
        return self._user_categories(user_id)


class JsonCategoryStore(InMemoryCategoryStore):
    def __init__(self, data_path: str = "categories.json"):
        super().__init__()
        self.data_path = data_path
        self.load()

    def load(self) -> None:
        if not os.path.exists(self.data_path):
            logger.info("[STORE] No category file at %s, taxonomy is empty.", self.data_path)
            return
        with open(self.data_path, encoding="utf-8") as f:
            raw = json.load(f)
        for item in raw:
            super().add_category(Category.model_validate(item))
        logger.info("[STORE] Loaded %s categories from %s", len(raw), self.data_path)

    def add_category(self, category: Category) -> Category:
        stored = super().add_category(category)
        self.save()
        return stored

    def save(self) -> None:
        with self._lock:
            payload = [c.model_dump(mode="json") for c in self._categories]
        with open(self.data_path, "w", encoding="utf-8") as f:
            json.dump(payload, f, indent=2, ensure_ascii=False)
