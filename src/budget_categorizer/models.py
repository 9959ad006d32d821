from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class TransactionType(str, Enum):
    EXPENSE = "Expense"
    INCOME = "Income"
    TRANSFER = "Transfer"


class CategorizationMethod(str, Enum):
    MANUAL = "manual"
    PREVIOUS_DATA = "previous-data"
    AI = "ai"
    NONE = "none"


class MatchType(str, Enum):
    EXACT_PHRASE = "exact-phrase"
    WHOLE_WORD = "whole-word"
    STEMMED = "stemmed"
    SUBSTRING = "substring"
    NONE = "none"


class RawTransactionData(BaseModel):
    """Vendor specific fields as delivered by the import source."""
    description: Optional[str] = None
    memo: Optional[str] = None
    category: Optional[str] = None


class Transaction(BaseModel):
    id: Optional[str] = None
    user_id: str
    description: str
    memo: Optional[str] = None
    raw_data: Optional[RawTransactionData] = None
    amount: Decimal
    currency: str = "ILS"
    date: datetime = Field(default_factory=datetime.now)
    type: Optional[TransactionType] = None

    category_id: Optional[str] = None
    sub_category_id: Optional[str] = None
    categorization_method: Optional[CategorizationMethod] = None
    categorization_confidence: Optional[float] = None
    categorization_reasoning: Optional[str] = None

    @property
    def effective_memo(self) -> Optional[str]:
        if self.memo:
            return self.memo
        if self.raw_data and self.raw_data.memo:
            return self.raw_data.memo
        return None


class SubCategory(BaseModel):
    id: str
    parent_category_id: str
    name: str
    keywords: list[str] = Field(default_factory=list)


class Category(BaseModel):
    id: str
    user_id: str
    name: str
    type: TransactionType
    keywords: list[str] = Field(default_factory=list)
    sub_categories: list[SubCategory] = Field(default_factory=list)


class HistoricalCategorization(BaseModel):
    user_id: str
    description: str
    memo: Optional[str] = None
    raw_category: Optional[str] = None
    category_id: str
    sub_category_id: Optional[str] = None
    match_count: int = 1
    last_used: datetime = Field(default_factory=datetime.now)
    confidence: float = 1.0
    language: str = "he"


class MatchResult(BaseModel):
    """
    Result of matching a text against a keyword list.

    ``match_type`` is one of exact-phrase, whole-word, stemmed or none, plus
    ``substring`` for a keyword found inside a longer word. Substring hits only
    happen for keywords whitelisted in the ambiguity table and score 0.55, the
    lowest usable tier, so callers grouping tiers can treat them as the weakest
    form of a phrase hit.
    """
    has_matches: bool = False
    confidence: float = 0.0
    match_type: MatchType = MatchType.NONE
    reasoning: str = ""
    matched_field: Optional[str] = None
    matched_keyword: Optional[str] = None
    matched_text: Optional[str] = None
    source: Optional[str] = None  # "original" or "translated"


class CategorizationOutcome(BaseModel):
    category_id: Optional[str] = None
    sub_category_id: Optional[str] = None
    method: CategorizationMethod = CategorizationMethod.NONE
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    reasoning: str = ""

    @property
    def is_categorized(self) -> bool:
        return self.category_id is not None


class AISuggestion(BaseModel):
    category_id: Optional[str] = None
    sub_category_id: Optional[str] = None
    confidence: Optional[float] = None
    reasoning: Optional[str] = None
