from __future__ import annotations

from dataclasses import dataclass

from budget_categorizer.domain.errors import InvalidTransactionError
from budget_categorizer.models import (
    CategorizationMethod,
    CategorizationOutcome,
    Transaction,
    TransactionType,
)


@dataclass(frozen=True)
class SearchTerm:
    field: str
    text: str


def validate_transaction(transaction: Transaction) -> None:
    if not transaction.description or not transaction.description.strip():
        raise InvalidTransactionError(
            f"Transaction {transaction.id or '<new>'} has no description"
        )
    if not transaction.user_id:
        raise InvalidTransactionError(
            f"Transaction {transaction.id or '<new>'} has no user"
        )


def infer_candidate_types(transaction: Transaction) -> list[TransactionType]:
    if transaction.type is not None:
        return [transaction.type]
    # Transfer is always possible regardless of sign.
    return [TransactionType.TRANSFER, default_type(transaction)]


def default_type(transaction: Transaction) -> TransactionType:
    return TransactionType.EXPENSE if transaction.amount < 0 else TransactionType.INCOME


def is_fully_categorized(
    transaction: Transaction, category_type: TransactionType | None
) -> bool:
    if not transaction.category_id:
        return False
    if category_type != TransactionType.EXPENSE:
        return True
    return bool(transaction.sub_category_id)


def build_search_terms(transaction: Transaction) -> list[SearchTerm]:
    raw = transaction.raw_data
    candidates = [
        ("description", transaction.description),
        ("memo", transaction.effective_memo),
        ("raw_data.description", raw.description if raw else None),
        ("raw_data.memo", raw.memo if raw else None),
        ("raw_data.category", raw.category if raw else None),
    ]
    return [
        SearchTerm(field=field, text=text)
        for field, text in candidates
        if text and text.strip()
    ]


def apply_outcome(transaction: Transaction, outcome: CategorizationOutcome) -> Transaction:
    """Write a categorized outcome onto the transaction; uncategorized is a no-op."""
    if not outcome.is_categorized:
        return transaction
    transaction.category_id = outcome.category_id
    transaction.sub_category_id = outcome.sub_category_id
    transaction.categorization_method = outcome.method
    transaction.categorization_confidence = outcome.confidence
    transaction.categorization_reasoning = outcome.reasoning
    return transaction


def existing_outcome(transaction: Transaction) -> CategorizationOutcome:
    confidence = transaction.categorization_confidence
    return CategorizationOutcome(
        category_id=transaction.category_id,
        sub_category_id=transaction.sub_category_id,
        method=transaction.categorization_method or CategorizationMethod.MANUAL,
        confidence=1.0 if confidence is None else max(0.0, min(confidence, 1.0)),
        reasoning=transaction.categorization_reasoning or "",
    )
