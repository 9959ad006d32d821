from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException

from budget_categorizer.api.dependencies import get_category_store, get_pipeline, get_service
from budget_categorizer.api.schemas import (
    BatchCategorizeRequest,
    BatchCategorizeResponse,
    CategorizeRequest,
    CategorizeResponse,
)
from budget_categorizer.domain.errors import InvalidTransactionError
from budget_categorizer.logger import get_logger
from budget_categorizer.manager import CategorizerService
from budget_categorizer.models import Category
from budget_categorizer.services.categorization import CategorizationPipeline
from budget_categorizer.storage.base import CategoryStore

logger = get_logger(__name__)

router = APIRouter()


@router.post("/categorize", response_model=CategorizeResponse)
async def categorize_transaction(
    req: CategorizeRequest,
    pipeline: Annotated[CategorizationPipeline, Depends(get_pipeline)],
) -> CategorizeResponse:
    try:
        outcome = await pipeline.categorize_one(req.transaction)
    except InvalidTransactionError as e:
        raise HTTPException(status_code=422, detail=str(e)) from e
    return CategorizeResponse(outcome=outcome, transaction=req.transaction)


@router.post("/categorize/batch", response_model=BatchCategorizeResponse)
async def categorize_batch(
    req: BatchCategorizeRequest,
    pipeline: Annotated[CategorizationPipeline, Depends(get_pipeline)],
) -> BatchCategorizeResponse:
    try:
        outcomes = await pipeline.categorize_batch(req.transactions)
    except InvalidTransactionError as e:
        raise HTTPException(status_code=422, detail=str(e)) from e

    results = [
        CategorizeResponse(outcome=outcome, transaction=tx)
        for tx, outcome in zip(req.transactions, outcomes)
    ]
    return BatchCategorizeResponse(
        results=results,
        categorized=sum(1 for outcome in outcomes if outcome.is_categorized),
        total=len(outcomes),
    )


@router.get("/categories/{user_id}", response_model=list[Category])
async def get_categories(
    user_id: str,
    categories: Annotated[CategoryStore, Depends(get_category_store)],
) -> list[Category]:
    return categories.get_taxonomy(user_id)


@router.get("/health")
async def health() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/stats")
async def keyword_stats(
    service: Annotated[CategorizerService, Depends(get_service)],
) -> dict[str, int]:
    return service.keywords.matcher.stats()


@router.delete("/stats", status_code=204)
async def reset_keyword_stats(
    service: Annotated[CategorizerService, Depends(get_service)],
) -> None:
    service.keywords.matcher.reset_stats()
