from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException
from fastapi.concurrency import run_in_threadpool

from budget_categorizer.api.dependencies import get_service
from budget_categorizer.api.schemas import (
    KeywordSuggestionRequest,
    KeywordSuggestionResponse,
    ManualCategorizationRequest,
    ManualCategorizationResponse,
)
from budget_categorizer.domain.errors import InvalidCategorizationError, InvalidTransactionError
from budget_categorizer.manager import CategorizerService

router = APIRouter()


@router.post("/manual-categorizations", response_model=ManualCategorizationResponse)
async def record_manual_categorization(
    req: ManualCategorizationRequest,
    service: Annotated[CategorizerService, Depends(get_service)],
) -> ManualCategorizationResponse:
    """Store a user's decision so later imports of the same payee reuse it."""
    try:
        record = await run_in_threadpool(
            service.record_manual_categorization,
            req.transaction,
            req.category_id,
            req.sub_category_id,
        )
    except (InvalidTransactionError, InvalidCategorizationError) as e:
        raise HTTPException(status_code=422, detail=str(e)) from e
    return ManualCategorizationResponse(transaction=req.transaction, record=record)


@router.post("/keyword-suggestions", response_model=KeywordSuggestionResponse)
async def suggest_keywords(
    req: KeywordSuggestionRequest,
    service: Annotated[CategorizerService, Depends(get_service)],
) -> KeywordSuggestionResponse:
    existing: list[str] = []
    if req.sub_category_id:
        sub_category = service.categories.get_sub_category(req.user_id or "", req.sub_category_id)
        if sub_category is None:
            raise HTTPException(status_code=404, detail=f"Unknown sub-category '{req.sub_category_id}'")
        existing = sub_category.keywords
    keywords = await run_in_threadpool(service.suggest_keywords, req.description, existing)
    return KeywordSuggestionResponse(keywords=keywords)
