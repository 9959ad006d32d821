import asyncio
from time import perf_counter

from budget_categorizer.domain.transactions import apply_outcome, validate_transaction
from budget_categorizer.logger import get_logger
from budget_categorizer.manager import CategorizerService
from budget_categorizer.models import CategorizationOutcome, Transaction

logger = get_logger(__name__)

DEFAULT_BATCH_CONCURRENCY = 4


class CategorizationPipeline:
    """
    Import-side entry point: runs the cascade off the event loop and applies the
    outcome to the transaction.
    """

    def __init__(
        self,
        service: CategorizerService,
        concurrency: int = DEFAULT_BATCH_CONCURRENCY,
    ) -> None:
        self.service = service
        self.concurrency = max(1, concurrency)

    async def predict(self, transaction: Transaction) -> CategorizationOutcome:
        return await asyncio.to_thread(self.service.categorize, transaction)

    async def categorize_one(self, transaction: Transaction) -> CategorizationOutcome:
        outcome = await self.predict(transaction)
        apply_outcome(transaction, outcome)
        return outcome

    async def categorize_batch(self, transactions: list[Transaction]) -> list[CategorizationOutcome]:
        """
        Categorize independent transactions with bounded parallelism.

        Results keep input order; execution order between transactions is not
        defined. Every transaction is validated before any is categorized, so a
        rejected batch leaves all of them untouched. Store errors propagate.
        """
        if not transactions:
            return []

        for transaction in transactions:
            validate_transaction(transaction)

        semaphore = asyncio.Semaphore(self.concurrency)
        start = perf_counter()

        async def run(transaction: Transaction) -> CategorizationOutcome:
            async with semaphore:
                return await self.categorize_one(transaction)

        outcomes = await asyncio.gather(*(run(tx) for tx in transactions))

        categorized = sum(1 for outcome in outcomes if outcome.is_categorized)
        logger.info(
            "[BATCH] Categorized %s/%s transactions in %.2f s (concurrency: %s)",
            categorized,
            len(transactions),
            perf_counter() - start,
            self.concurrency,
        )
        return list(outcomes)
