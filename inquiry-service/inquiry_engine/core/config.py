import os
from dataclasses import dataclass

# ===============================
BASE_DIR = os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


# ===============================
# DATASET CONFIG
# ===============================
CORPUS_PATH = os.getenv("INQUIRY_CORPUS_PATH", os.path.join(BASE_DIR, "data", "corpus.json"))
LINE_REGISTRY_PATH = os.getenv("LINE_REGISTRY_PATH", "")

# Fixture records are only served when this flag is on.
# Outside test mode a corpus that fails to load is fatal.
TEST_MODE = _env_bool("INQUIRY_TEST_MODE", False)

# Full corpus reload period in seconds (sheet exports land every few minutes).
# 0 disables scheduled reloads; POST /api/refresh still works.
CORPUS_REFRESH_SECONDS = float(os.getenv("CORPUS_REFRESH_SECONDS", 300))

# ===============================
# EMBEDDING PROVIDER CONFIG
# ===============================
EMBED_MODEL = os.getenv(
    "EMBED_MODEL",
    "sentence-transformers/paraphrase-multilingual-MiniLM-L12-v2"
)
EMBEDDINGS_ENABLED = _env_bool("EMBEDDINGS_ENABLED", False)

# ===============================
# GENERATION PROVIDER CONFIG
# ===============================
GENERATION_API_URL = os.getenv("GENERATION_API_URL", "https://api.openai.com/v1")
GENERATION_API_KEY = os.getenv("GENERATION_API_KEY", os.getenv("OPENAI_API_KEY", ""))
GENERATION_MODEL = os.getenv("GENERATION_MODEL", "gpt-3.5-turbo")
GENERATION_TIMEOUT = float(os.getenv("GENERATION_TIMEOUT", 30))
GENERATION_MAX_TOKENS = int(os.getenv("GENERATION_MAX_TOKENS", 1000))

# ===============================
# RANKING CONFIG (empirical constants, overridable)
# ===============================
LINE_WEIGHT = float(os.getenv("LINE_WEIGHT", 0.4))
LOCATION_WEIGHT = float(os.getenv("LOCATION_WEIGHT", 0.3))
PROBLEM_TYPE_WEIGHT = float(os.getenv("PROBLEM_TYPE_WEIGHT", 0.2))
KEYWORD_WEIGHT = float(os.getenv("KEYWORD_WEIGHT", 0.1))

STRUCTURED_THRESHOLD = float(os.getenv("STRUCTURED_THRESHOLD", 0.15))
EMBEDDING_THRESHOLD = float(os.getenv("EMBEDDING_THRESHOLD", 0.78))
STRONG_MATCH_THRESHOLD = float(os.getenv("STRONG_MATCH_THRESHOLD", 0.85))
LEXICAL_THRESHOLD = float(os.getenv("LEXICAL_THRESHOLD", 0.2))

EMBEDDING_LINE_BOOST = float(os.getenv("EMBEDDING_LINE_BOOST", 0.1))
LEXICAL_LINE_BOOST = float(os.getenv("LEXICAL_LINE_BOOST", 0.3))

# Similarity-boosted mode runs when structured mode yields fewer than this
MIN_STRUCTURED_CANDIDATES = int(os.getenv("MIN_STRUCTURED_CANDIDATES", 3))

# ===============================
# CACHE CONFIG
# ===============================
CACHE_MAX_SIZE = int(os.getenv("CACHE_MAX_SIZE", 100))
CACHE_TTL_SECONDS = float(os.getenv("CACHE_TTL_SECONDS", 3600))

# ===============================
# VALIDATION CONFIG
# ===============================
MIN_RESPONSE_LENGTH = int(os.getenv("MIN_RESPONSE_LENGTH", 100))
MIN_HEBREW_RATIO = float(os.getenv("MIN_HEBREW_RATIO", 0.7))
MIN_RELEVANCE_RATIO = float(os.getenv("MIN_RELEVANCE_RATIO", 0.5))
VALIDATION_PASS_SCORE = int(os.getenv("VALIDATION_PASS_SCORE", 60))

# ===============================
# SESSION CONFIG
# ===============================
MAX_HISTORY_TURNS = int(os.getenv("MAX_HISTORY_TURNS", 5))
# 0 disables idle expiry (sessions live for the process lifetime)
SESSION_IDLE_SECONDS = float(os.getenv("SESSION_IDLE_SECONDS", 0))


@dataclass(frozen=True)
class RankingConfig:
    """Weights and thresholds used by ScoreFusionRanker."""
    line_weight: float = LINE_WEIGHT
    location_weight: float = LOCATION_WEIGHT
    problem_type_weight: float = PROBLEM_TYPE_WEIGHT
    keyword_weight: float = KEYWORD_WEIGHT
    structured_threshold: float = STRUCTURED_THRESHOLD
    embedding_threshold: float = EMBEDDING_THRESHOLD
    strong_match_threshold: float = STRONG_MATCH_THRESHOLD
    lexical_threshold: float = LEXICAL_THRESHOLD
    embedding_line_boost: float = EMBEDDING_LINE_BOOST
    lexical_line_boost: float = LEXICAL_LINE_BOOST
    min_structured_candidates: int = MIN_STRUCTURED_CANDIDATES


@dataclass(frozen=True)
class CacheConfig:
    max_size: int = CACHE_MAX_SIZE
    ttl_seconds: float = CACHE_TTL_SECONDS


@dataclass(frozen=True)
class ValidationConfig:
    min_length: int = MIN_RESPONSE_LENGTH
    min_hebrew_ratio: float = MIN_HEBREW_RATIO
    min_relevance_ratio: float = MIN_RELEVANCE_RATIO
    pass_score: int = VALIDATION_PASS_SCORE
    length_penalty: int = 20
    language_penalty: int = 30
    relevance_penalty: int = 25
    hallucination_penalty: int = 15
    structure_penalty: int = 10
