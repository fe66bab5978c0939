from fastapi import APIRouter, Header, Request
from fastapi.responses import JSONResponse
from typing import Optional
from inquiry_engine.schemas.recommend import (
    OfficialResponseOut,
    OfficialResponseRequest,
    RecommendRequest,
    RecommendResponse,
)
from inquiry_engine.core.errors import CorpusUnavailable
from inquiry_engine.core.models import RecommendationResult
import asyncio
import logging

logger = logging.getLogger(__name__)

router = APIRouter(
    tags=["Recommend"]
)


def _engine(request: Request):
    return getattr(request.app.state, "engine", None)


def _unavailable(detail: str) -> JSONResponse:
    # 503 so load balancers can tell engine trouble from standard 500 crashes
    return JSONResponse(status_code=503, content={"detail": detail})


def to_response(result: RecommendationResult) -> dict:
    answer = result.answer
    return {
        "inquiry": result.inquiry,
        "exact_match": result.exact_match.to_dict() if result.exact_match else None,
        "related_matches": [c.to_dict() for c in result.related_matches],
        "final_response": answer.text,
        "response_source": answer.source,
        "validation": answer.validation.to_dict() if answer.validation else None,
        "attempts": answer.attempts,
        "debug": result.debug,
    }


@router.post("/recommend", response_model=RecommendResponse)
async def recommend(
    req: RecommendRequest,
    request: Request,
    x_session_id: Optional[str] = Header(None),
):
    """
    Ranks historical inquiries and produces a validated reply.
    The engine call is CPU-bound (scoring) and may block on the
    generation provider, so it runs in a worker thread.
    """
    engine = _engine(request)
    if engine is None:
        return _unavailable("Engine is not loaded")
    try:
        result = await asyncio.to_thread(
            engine.answer,
            req.inquiry_text,
            x_session_id,
            req.max_recommendations,
            req.prompt_variant,
        )
        return to_response(result)
    except Exception as e:
        logger.exception(f"[ERROR] Engine failed processing inquiry: {e}")
        return _unavailable(f"Service unavailable or error: {str(e)}")


@router.get("/cache/stats")
def cache_stats(request: Request):
    engine = _engine(request)
    if engine is None:
        return _unavailable("Engine is not loaded")
    return engine.cache.stats()


@router.post("/cache/clear")
def cache_clear(request: Request):
    engine = _engine(request)
    if engine is None:
        return _unavailable("Engine is not loaded")
    engine.cache.clear()
    return {"status": "cleared"}


@router.get("/sessions")
def sessions(request: Request):
    engine = _engine(request)
    if engine is None:
        return _unavailable("Engine is not loaded")
    return engine.sessions.summary()


@router.get("/analytics")
def analytics(request: Request):
    engine = _engine(request)
    if engine is None:
        return _unavailable("Engine is not loaded")
    return engine.analytics.report()


@router.post("/generate-official-response", response_model=OfficialResponseOut)
async def generate_official_response(req: OfficialResponseRequest, request: Request):
    """Rewrites a historical reply picked by staff as an official answer."""
    engine = _engine(request)
    if engine is None:
        return _unavailable("Engine is not loaded")
    try:
        final = await asyncio.to_thread(
            engine.official_response,
            req.original_inquiry,
            req.selected_response,
            req.case_id,
        )
    except Exception as e:
        logger.exception(f"[ERROR] Official reply failed: {e}")
        return _unavailable(f"Service unavailable or error: {str(e)}")
    return {
        "official_response": final.text,
        "source": final.source,
        "validation": final.validation.to_dict() if final.validation else None,
    }


@router.post("/refresh")
async def refresh(request: Request):
    engine = _engine(request)
    if engine is None:
        return _unavailable("Engine is not loaded")
    try:
        status = await asyncio.to_thread(engine.refresh)
    except CorpusUnavailable as e:
        logger.error(f"[ERROR] Corpus refresh failed: {e}")
        return _unavailable(f"Corpus unavailable: {str(e)}")
    return {"status": "refreshed", **status}


@router.get("/data-sample")
def data_sample(request: Request):
    engine = _engine(request)
    if engine is None:
        return _unavailable("Engine is not loaded")
    return engine.data_sample()
