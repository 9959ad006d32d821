from pydantic import BaseModel, Field

from budget_categorizer.models import CategorizationOutcome, HistoricalCategorization, Transaction


class CategorizeRequest(BaseModel):
    transaction: Transaction


class CategorizeResponse(BaseModel):
    outcome: CategorizationOutcome
    transaction: Transaction


class BatchCategorizeRequest(BaseModel):
    transactions: list[Transaction] = Field(default_factory=list)


class BatchCategorizeResponse(BaseModel):
    results: list[CategorizeResponse]
    categorized: int
    total: int


class ManualCategorizationRequest(BaseModel):
    transaction: Transaction
    category_id: str
    sub_category_id: str | None = None


class ManualCategorizationResponse(BaseModel):
    transaction: Transaction
    record: HistoricalCategorization


class KeywordSuggestionRequest(BaseModel):
    description: str = Field(min_length=1)
    user_id: str | None = None
    sub_category_id: str | None = None


class KeywordSuggestionResponse(BaseModel):
    keywords: list[str]
