import os
from dataclasses import dataclass

from budget_categorizer.core import settings


@dataclass(frozen=True)
class AppSettings:
    data_dir: str
    openai_api_key: str | None
    openai_model: str
    openai_base_url: str | None
    ai_timeout: float
    ai_cache_ttl: float
    keyword_threshold: float
    history_fuzzy_threshold: float
    ambiguity_table_path: str | None
    batch_concurrency: int
    translation_enabled: bool

    @property
    def history_path(self) -> str:
        return os.path.join(self.data_dir, "history.json")

    @property
    def categories_path(self) -> str:
        return os.path.join(self.data_dir, "categories.json")


def load_app_settings() -> AppSettings:
    return AppSettings(
        data_dir=os.getenv("DATA_DIR", settings.DATA_DIR),
        openai_api_key=os.getenv("OPENAI_API_KEY") or None,
        openai_model=os.getenv("OPENAI_MODEL") or settings.DEFAULT_OPENAI_MODEL,
        openai_base_url=os.getenv("OPENAI_BASE_URL") or None,
        ai_timeout=settings.get_env_float(
            "AI_TIMEOUT_SECONDS", settings.DEFAULT_AI_TIMEOUT_SECONDS, min_value=0.1
        ),
        ai_cache_ttl=settings.get_env_float(
            "AI_CACHE_TTL", settings.DEFAULT_AI_CACHE_TTL, min_value=0.0
        ),
        keyword_threshold=settings.get_env_float(
            "KEYWORD_CONFIDENCE_THRESHOLD",
            settings.DEFAULT_KEYWORD_CONFIDENCE_THRESHOLD,
            min_value=0.0,
            max_value=1.0,
        ),
        history_fuzzy_threshold=settings.get_env_float(
            "HISTORY_FUZZY_THRESHOLD",
            settings.DEFAULT_HISTORY_FUZZY_THRESHOLD,
            min_value=0.0,
            max_value=100.0,
        ),
        ambiguity_table_path=os.getenv("AMBIGUITY_TABLE_PATH") or None,
        batch_concurrency=settings.get_env_int(
            "BATCH_CONCURRENCY", settings.DEFAULT_BATCH_CONCURRENCY, min_value=1
        ),
        translation_enabled=settings.get_env_bool("TRANSLATION_ENABLED", False),
    )
