from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from budget_categorizer.api.routes import categorize, manual
from budget_categorizer.core import settings
from budget_categorizer.core.configuration import AppSettings, load_app_settings
from budget_categorizer.integration.openai_provider import OpenAISuggestionProvider
from budget_categorizer.integration.suggestion import SuggestionProvider
from budget_categorizer.integration.tfidf import TfidfSuggestionProvider
from budget_categorizer.integration.translation import (
    CachingTranslator,
    IdentityTranslator,
    LLMTranslator,
    Translator,
)
from budget_categorizer.logger import get_logger, setup_logging
from budget_categorizer.manager import CategorizerService
from budget_categorizer.matching.ambiguity import AmbiguityGuard
from budget_categorizer.matching.keywords import KeywordMatcher
from budget_categorizer.services.categorization import CategorizationPipeline
from budget_categorizer.storage.memory import JsonCategoryStore, JsonHistoryStore

logger = get_logger(__name__)


def build_provider(config: AppSettings) -> SuggestionProvider:
    if config.openai_api_key:
        return OpenAISuggestionProvider(
            api_key=config.openai_api_key,
            model=config.openai_model,
            base_url=config.openai_base_url,
            timeout=config.ai_timeout,
            cache_ttl=config.ai_cache_ttl,
        )
    logger.info("OPENAI_API_KEY not set. Falling back to the local TF-IDF suggester.")
    return TfidfSuggestionProvider()


def build_translator(config: AppSettings) -> Translator:
    if not config.translation_enabled:
        return IdentityTranslator()
    if not config.openai_api_key:
        logger.warning("TRANSLATION_ENABLED is set but OPENAI_API_KEY is missing. Translation disabled.")
        return IdentityTranslator()
    return CachingTranslator(LLMTranslator(
        api_key=config.openai_api_key,
        model=config.openai_model,
        base_url=config.openai_base_url,
        timeout=config.ai_timeout,
    ))


def build_matcher(config: AppSettings) -> KeywordMatcher:
    if config.ambiguity_table_path:
        guard = AmbiguityGuard.from_file(config.ambiguity_table_path)
    else:
        guard = AmbiguityGuard.default()
    logger.info(f"Loaded ambiguity table with {len(guard)} entries")
    return KeywordMatcher(guard=guard)


def build_service(config: AppSettings) -> CategorizerService:
    settings.ensure_dirs(config.data_dir)
    return CategorizerService(
        history=JsonHistoryStore(
            data_path=config.history_path,
            fuzzy_threshold=config.history_fuzzy_threshold,
        ),
        categories=JsonCategoryStore(data_path=config.categories_path),
        provider=build_provider(config),
        matcher=build_matcher(config),
        translator=build_translator(config),
        keyword_threshold=config.keyword_threshold,
        ai_timeout=config.ai_timeout,
    )


def create_app() -> FastAPI:
    setup_logging()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        logger.info("Initializing services...")
        settings.log_environment()

        config = load_app_settings()
        service = build_service(config)
        pipeline = CategorizationPipeline(service=service, concurrency=config.batch_concurrency)

        app.state.service = service
        app.state.pipeline = pipeline
        app.state.categories = service.categories

        logger.info("Services initialized.")
        yield
        logger.info("Service shutting down.")
        service.close()

    app = FastAPI(title="Budget Categorizer", lifespan=lifespan)

    app.include_router(categorize.router)
    app.include_router(manual.router)

    return app


app = create_app()
