from decimal import Decimal

from sklearn.feature_extraction.text import TfidfVectorizer
from sklearn.metrics.pairwise import cosine_similarity

from budget_categorizer.integration.suggestion import SuggestionProvider
from budget_categorizer.logger import get_logger
from budget_categorizer.matching.normalizer import phrase_form
from budget_categorizer.models import AISuggestion, Category, TransactionType

logger = get_logger(__name__)


class TfidfSuggestionProvider(SuggestionProvider):
    """
    Offline suggestion provider.

    Every sub-category (and every Income/Transfer category) becomes a document
    made of its name and keywords; the transaction text is scored against them
    with character n-gram TF-IDF and cosine similarity.
    """

    def __init__(self, min_similarity: float = 0.2):
        self.min_similarity = min_similarity

    @staticmethod
    def _build_documents(
        taxonomy: list[Category],
    ) -> tuple[list[str], list[tuple[Category, str | None, str]]]:
        documents: list[str] = []
        labels: list[tuple[Category, str | None, str]] = []
        for category in taxonomy:
            if category.type == TransactionType.EXPENSE:
                for sub in category.sub_categories:
                    documents.append(phrase_form(" ".join([category.name, sub.name, *sub.keywords])))
                    labels.append((category, sub.id, f'"{category.name}" > "{sub.name}"'))
            else:
                documents.append(phrase_form(" ".join([category.name, *category.keywords])))
                labels.append((category, None, f'"{category.name}"'))
        return documents, labels

    def suggest(
        self,
        description: str,
        amount: Decimal,
        taxonomy: list[Category],
        user_id: str,
        raw_category_hint: str | None = None,
        memo_hint: str | None = None,
    ) -> AISuggestion:
        query = phrase_form(" ".join(filter(None, [description, memo_hint, raw_category_hint])))
        documents, labels = self._build_documents(taxonomy)
        if not query or not documents:
            return AISuggestion()

        vectorizer = TfidfVectorizer(analyzer="char_wb", ngram_range=(3, 5), min_df=1)
        try:
            matrix = vectorizer.fit_transform(documents)
        except ValueError:
            # Empty vocabulary: every document is shorter than the n-gram window.
            return AISuggestion()

        scores = cosine_similarity(vectorizer.transform([query]), matrix)[0]
        best_idx = int(scores.argmax())
        score = float(scores[best_idx])
        if score < self.min_similarity:
            logger.debug(f"[AI] TF-IDF best score {score:.2f} below {self.min_similarity:.2f}")
            return AISuggestion()

        category, sub_category_id, label = labels[best_idx]
        return AISuggestion(
            category_id=category.id,
            sub_category_id=sub_category_id,
            confidence=round(min(score, 1.0), 2),
            reasoning=f"{'strong' if score > 0.5 else 'partial'} text similarity ({score:.2f}) to {label}",
        )
