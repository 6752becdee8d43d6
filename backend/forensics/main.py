"""
Remora Order-Flow Forensics API

Features:
- Running Trade Forensics (broker net position, split orders, bandar classification)
- Sentiment & Verdict (HAKA/HAKI dominance, foreign flow, churning)
- Broker Distribution Graph (who sold to whom, forward/inverse queries)
"""
# Load .env file FIRST before any other imports that use settings
from dotenv import load_dotenv
load_dotenv()

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from forensics.api.endpoints import router as forensics_router
from forensics.core.config import settings
from forensics.core.exceptions import ConfigurationError, ParseError

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events"""
    logger.info(f"Starting {settings.PROJECT_NAME} v{settings.VERSION}")
    logger.info(
        f"Thresholds: big lot {settings.FORENSICS_BIG_LOT}, bandar lot {settings.FORENSICS_BANDAR_LOT}, "
        f"split window {settings.FORENSICS_SPLIT_WINDOW_SECONDS}s"
    )
    yield
    logger.info("Shutting down")


app = FastAPI(
    title=settings.PROJECT_NAME,
    description="""
    Forensik order flow saham Indonesia dari data running trade dan broker distribution.

    ## Features
    - **Running Trade**: Net position per broker, split order detection, bandar classification
    - **Verdict**: BULLISH / BEARISH / NEUTRAL / AVOID_CHURN with rationale
    - **Broker Distribution**: Buyer -> seller graph with forward/inverse queries
    """,
    version=settings.VERSION,
    lifespan=lifespan
)


@app.exception_handler(ParseError)
async def parse_error_handler(request: Request, exc: ParseError):
    logger.warning(f"Rejected {request.url.path}: {exc.message}")
    return JSONResponse(
        status_code=422,
        content={
            "error": "Malformed input",
            "detail": exc.message,
            "field": exc.field,
            "index": exc.index,
        }
    )


@app.exception_handler(ConfigurationError)
async def configuration_error_handler(request: Request, exc: ConfigurationError):
    logger.warning(f"Rejected {request.url.path}: {exc.message}")
    return JSONResponse(
        status_code=400,
        content={
            "error": "Invalid configuration",
            "detail": exc.message,
            "parameter": exc.name,
        }
    )


# CORS middleware for frontend access
app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:5173", "http://127.0.0.1:5173", "http://localhost:3000"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(forensics_router, prefix=f"{settings.API_V1_STR}/forensics", tags=["Forensics"])


@app.get("/")
async def root():
    """Health check endpoint"""
    return {
        "status": "healthy",
        "app": settings.PROJECT_NAME,
        "version": settings.VERSION,
    }


@app.get("/api/health")
async def health_check():
    """Health check with the active default thresholds."""
    from datetime import datetime

    return {
        "status": "healthy",
        "timestamp": datetime.now().isoformat(),
        "thresholds": {
            "big_lot": settings.FORENSICS_BIG_LOT,
            "bandar_lot": settings.FORENSICS_BANDAR_LOT,
            "split_window_seconds": settings.FORENSICS_SPLIT_WINDOW_SECONDS,
            "churn_ratio_pct": settings.FORENSICS_CHURN_RATIO_PCT,
        },
    }
