import logging

from inquiry_engine.core.config import (
    CORPUS_PATH,
    CORPUS_REFRESH_SECONDS,
    EMBED_MODEL,
    EMBEDDINGS_ENABLED,
    GENERATION_API_KEY,
    LINE_REGISTRY_PATH,
    TEST_MODE,
)
from inquiry_engine.core.errors import CorpusUnavailable
from inquiry_engine.services.engine import MatchingEngine
from inquiry_engine.services.providers import (
    FIXTURE_RECORDS,
    ChatCompletionGenerationProvider,
    InMemoryDatasetProvider,
    JsonDatasetProvider,
    SentenceTransformerEmbeddingProvider,
)
from inquiry_engine.services.response_validator import LineRegistry

logger = logging.getLogger(__name__)


def build_engine() -> MatchingEngine:
    """
    Build the process-wide MatchingEngine from configuration.
    Called from the FastAPI lifespan.

    The engine keeps the file-backed dataset provider, so refresh() and
    the scheduled reload re-read CORPUS_PATH. A corpus that fails to load
    is fatal, unless INQUIRY_TEST_MODE is on, in which case the fixture
    records are served instead.
    """
    # ===============================
    # OPTIONAL PROVIDERS
    # ===============================
    embedding_provider = None
    if EMBEDDINGS_ENABLED:
        print(f"[STARTUP] Embeddings enabled ({EMBED_MODEL}), model loads on first use", flush=True)
        embedding_provider = SentenceTransformerEmbeddingProvider(EMBED_MODEL)
    else:
        print("[STARTUP] Embeddings disabled, lexical similarity only", flush=True)

    generation_provider = None
    if GENERATION_API_KEY:
        generation_provider = ChatCompletionGenerationProvider(api_key=GENERATION_API_KEY)
    else:
        print("[WARN] No generation API key, answers come from templates", flush=True)

    registry = LineRegistry.from_json_file(LINE_REGISTRY_PATH) if LINE_REGISTRY_PATH else None

    # ===============================
    # CORPUS
    # ===============================
    def _engine_for(dataset, refresh_interval):
        return MatchingEngine(
            dataset,
            embedding_provider=embedding_provider,
            generation_provider=generation_provider,
            line_registry=registry,
            refresh_interval=refresh_interval,
        )

    print(f"[STARTUP] Loading corpus from {CORPUS_PATH}...", flush=True)
    try:
        engine = _engine_for(JsonDatasetProvider(CORPUS_PATH), CORPUS_REFRESH_SECONDS)
    except CorpusUnavailable as e:
        if not TEST_MODE:
            print(f"[FATAL] Corpus unavailable: {e}", flush=True)
            raise
        print(f"[WARN] Corpus unavailable ({e}); TEST MODE serves fixture records", flush=True)
        engine = _engine_for(InMemoryDatasetProvider(FIXTURE_RECORDS), 0.0)

    print(
        f"[STARTUP] Engine ready with {len(engine.records)} records "
        f"(reload every {CORPUS_REFRESH_SECONDS:g}s)",
        flush=True,
    )
    return engine
