from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
import os
import time

import inquiry_engine.core.startup as startup
from inquiry_engine.api.recommend import router as recommend_router

print(f"[MAIN] Initializing main.py. PORT={os.environ.get('PORT')}", flush=True)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Corpus load failure propagates here and aborts startup
    print("[LIFESPAN] Building matching engine...", flush=True)
    app.state.engine = startup.build_engine()
    yield
    app.state.engine = None


app = FastAPI(
    title="Transit Inquiry Matching Engine",
    version="1.0.0",
    lifespan=lifespan
)

# ===== MIDDLEWARE =====
@app.middleware("http")
async def log_requests(request, call_next):
    start_time = time.time()
    path = request.url.path
    print(f"📥 [REQUEST] {request.method} {path}", flush=True)
    response = await call_next(request)
    duration = time.time() - start_time
    print(f"📤 [RESPONSE] {request.method} {path} | Status: {response.status_code} | {duration:.3f}s", flush=True)
    return response

# ===== CORS =====
app.add_middleware(
    CORSMiddleware,
    allow_origins=os.getenv("CORS_ORIGINS", "http://localhost:3000,http://127.0.0.1:3000").split(","),
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ===== ROUTER =====
app.include_router(recommend_router, prefix="/api")

# ===== HEALTH CHECK =====
@app.get("/health")
def health():
    """Basic health check for load balancers."""
    return {"status": "ok"}


@app.get("/")
def root():
    engine = getattr(app.state, "engine", None)
    if engine is None:
        return {
            "service": "Transit Inquiry Matching Engine",
            "status": "loading",
            "ready": False,
        }
    return {
        "service": "Transit Inquiry Matching Engine",
        "status": "ready",
        "ready": True,
        "engine": engine.stats(),
    }
