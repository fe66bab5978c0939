"""
providers.py — External collaborators of the matching engine.

    DatasetProvider     → historical corpus (list of HistoricalRecord)
    EmbeddingProvider   → query vectors; raises ProviderUnavailable
    GenerationProvider  → reply text from (system, user) prompts; raises ProviderError

Concrete implementations:
    InMemoryDatasetProvider              fixed record list (tests, fixtures)
    JsonDatasetProvider                  {"records": [...]} file on disk
    SentenceTransformerEmbeddingProvider local sentence-transformers model,
                                         imported lazily on first use
    ChatCompletionGenerationProvider     OpenAI-compatible /chat/completions over HTTP
"""

import json
import logging
import os
import threading
from abc import ABC, abstractmethod
from typing import Iterable, List, Optional, Sequence

import requests

from inquiry_engine.core.config import (
    EMBED_MODEL,
    GENERATION_API_KEY,
    GENERATION_API_URL,
    GENERATION_MAX_TOKENS,
    GENERATION_MODEL,
    GENERATION_TIMEOUT,
)
from inquiry_engine.core.errors import CorpusUnavailable, ProviderError, ProviderUnavailable
from inquiry_engine.core.models import HistoricalRecord
from inquiry_engine.services.response_cleaner import records_from_rows

logger = logging.getLogger(__name__)


# ===================================================================
# DATASET
# ===================================================================

class DatasetProvider(ABC):

    @abstractmethod
    def list_records(self) -> List[HistoricalRecord]:
        """Return the full corpus. Raises CorpusUnavailable on failure."""
        raise NotImplementedError


class InMemoryDatasetProvider(DatasetProvider):

    def __init__(self, records: Iterable[HistoricalRecord]):
        self._records = list(records)

    def list_records(self) -> List[HistoricalRecord]:
        return list(self._records)


class JsonDatasetProvider(DatasetProvider):
    """
    Reads a corpus file of the form:
        {"records": [{"id": ..., "inquiry_text": ..., "response_text": ...,
                      "embedding": [...], "created_date": ..., "row_number": ...}]}
    A bare JSON list of records is accepted too, and so is a raw sheet
    export, {"rows": [[header, ...], [cell, ...], ...]}, which goes through
    records_from_rows (official replies only, cleaned).
    """

    def __init__(self, path: str):
        self.path = path

    def list_records(self) -> List[HistoricalRecord]:
        if not os.path.exists(self.path):
            raise CorpusUnavailable(f"Corpus file not found at {self.path}")
        try:
            with open(self.path, encoding="utf-8") as f:
                raw = json.load(f)
        except (OSError, ValueError) as e:
            raise CorpusUnavailable(f"Failed to read corpus {self.path}: {e}") from e

        if isinstance(raw, dict) and "rows" in raw:
            rows = raw["rows"]
            if not isinstance(rows, list) or not all(isinstance(r, list) for r in rows):
                raise CorpusUnavailable(f"Corpus {self.path} has a malformed row table")
            records = records_from_rows(rows)
            logger.info(f"[DATASET] Loaded {len(records)} records from sheet rows in {self.path}")
            return records

        items = raw.get("records", []) if isinstance(raw, dict) else raw
        if not isinstance(items, list):
            raise CorpusUnavailable(f"Corpus {self.path} has no record list")

        records = []
        for i, item in enumerate(items):
            if not isinstance(item, dict) or not (item.get("id") or item.get("case_id")):
                logger.warning(f"[DATASET] Skipping malformed record #{i}")
                continue
            records.append(HistoricalRecord.from_dict(item))

        logger.info(f"[DATASET] Loaded {len(records)} records from {self.path}")
        return records


# Served only when INQUIRY_TEST_MODE is on
FIXTURE_RECORDS = (
    HistoricalRecord(
        id="CAS-BEIT-SHEMESH-1",
        inquiry_text=(
            "הוספת קו חדש בית שמש - בית שמש הוספת קו חדש הערות הפונה: אני גרה "
            "ברמת אברהם בבית שמש ועובדת ברמה ג'2 בבית שמש ונאלצת לסע ב2 אוטובוסים לעבודה"
        ),
        response_text=(
            "שלום רב, מסלולי הקווים באזור זה מאזנים בין הצרכים השונים, במטרה לאפשר "
            "שירות תחבורה ציבורית יעיל ומיטבי. אנו בוחנים את הבקשה לקו ישיר. בברכה"
        ),
    ),
    HistoricalRecord(
        id="CAS-LINE-408-1",
        inquiry_text="קו 408 שינוי מסלול בית שמש",
        response_text=(
            "שלום רב, פנייתך בנושא שינוי מסלול קו 408 לבית שמש התקבלה. אנו בוחנים "
            "את הבקשה וננקטו הפעולות הנדרשות. בברכה"
        ),
    ),
    HistoricalRecord(
        id="CAS-FREQUENCY-1",
        inquiry_text="הוספת תדירות בנסיעת קו 426",
        response_text=(
            "שלום רב, פנייתך בנושא הוספת תדירות קו 426 התקבלה. אנו בוחנים את "
            "הבקשה ונעדכן בהמשך. בברכה"
        ),
    ),
)


# ===================================================================
# EMBEDDING
# ===================================================================

class EmbeddingProvider(ABC):

    # False once the backend is known to be unusable
    available: bool = True

    @abstractmethod
    def embed(self, text: str) -> List[float]:
        """Vector for text. Raises ProviderUnavailable when the backend is down."""
        raise NotImplementedError


class SentenceTransformerEmbeddingProvider(EmbeddingProvider):
    """
    Loads the model on first embed() call. A failed load marks the
    provider unavailable for the rest of the process so the ranker stops
    choosing the embedding strategy.
    """

    def __init__(self, model_name: str = EMBED_MODEL):
        self.model_name = model_name
        self._model = None
        self._load_error: Optional[str] = None
        self._lock = threading.Lock()

    @property
    def available(self) -> bool:
        return self._load_error is None

    def _get_model(self):
        if self._load_error is not None:
            raise ProviderUnavailable(f"Embedding model unavailable: {self._load_error}")
        with self._lock:
            if self._model is None:
                try:
                    from sentence_transformers import SentenceTransformer
                    logger.info(f"[EMBEDDING] Loading model {self.model_name}")
                    self._model = SentenceTransformer(self.model_name)
                except Exception as e:
                    self._load_error = str(e)
                    logger.error(f"[EMBEDDING] Failed to load {self.model_name}: {e}")
                    raise ProviderUnavailable(f"Embedding model unavailable: {e}") from e
        return self._model

    def embed(self, text: str) -> List[float]:
        return self.embed_many([text])[0]

    def embed_many(self, texts: Sequence[str]) -> List[List[float]]:
        model = self._get_model()
        try:
            vectors = model.encode(list(texts), normalize_embeddings=True)
        except Exception as e:
            raise ProviderUnavailable(f"Embedding call failed: {e}") from e
        return [[float(v) for v in vec] for vec in vectors]


# ===================================================================
# GENERATION
# ===================================================================

class GenerationProvider(ABC):

    @abstractmethod
    def generate(self, system_prompt: str, user_prompt: str, temperature: float = 0.7) -> str:
        """Reply text. Raises ProviderUnavailable / ProviderError."""
        raise NotImplementedError


class ChatCompletionGenerationProvider(GenerationProvider):
    """
    POSTs to {api_url}/chat/completions with a bearer key.

    No key configured → ProviderUnavailable (engine answers from templates).
    HTTP failure or unusable payload → ProviderError.
    """

    def __init__(
        self,
        api_url: str = GENERATION_API_URL,
        api_key: str = GENERATION_API_KEY,
        model: str = GENERATION_MODEL,
        timeout: float = GENERATION_TIMEOUT,
        max_tokens: int = GENERATION_MAX_TOKENS,
        session: Optional[requests.Session] = None,
    ):
        self.api_url = api_url.rstrip("/")
        self.api_key = api_key
        self.model = model
        self.timeout = timeout
        self.max_tokens = max_tokens
        self.session = session or requests.Session()

    @property
    def available(self) -> bool:
        return bool(self.api_key)

    def generate(self, system_prompt: str, user_prompt: str, temperature: float = 0.7) -> str:
        if not self.api_key:
            raise ProviderUnavailable("Generation API key is not configured")

        payload = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            "temperature": temperature,
            "max_tokens": self.max_tokens,
        }
        headers = {"Authorization": f"Bearer {self.api_key}"}

        try:
            resp = self.session.post(
                f"{self.api_url}/chat/completions",
                json=payload,
                headers=headers,
                timeout=self.timeout,
            )
            resp.raise_for_status()
        except requests.RequestException as e:
            logger.error(f"[GENERATION] Request failed: {e}")
            raise ProviderError(f"Generation request failed: {e}") from e

        try:
            content = resp.json()["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise ProviderError(f"Unexpected generation payload: {e}") from e

        if not content or not content.strip():
            raise ProviderError("Generation returned an empty reply")
        return content.strip()
