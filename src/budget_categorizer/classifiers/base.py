from abc import ABC, abstractmethod
from dataclasses import dataclass

from budget_categorizer.models import CategorizationOutcome, Transaction, TransactionType


@dataclass(frozen=True)
class CategorizationContext:
    transaction: Transaction
    candidate_types: tuple[TransactionType, ...]


class Classifier(ABC):
    name: str = "classifier"

    @abstractmethod
    def attempt(self, context: CategorizationContext) -> CategorizationOutcome | None:
        """Attempt to categorize the transaction; None hands over to the next stage."""
        pass
