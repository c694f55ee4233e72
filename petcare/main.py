# FILE: petcare/main.py
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from petcare.api.exception_handlers import register_exception_handlers
from petcare.api.router import api_router
from petcare.core.config import settings
from petcare.db.init_db import run as init_db

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger("petcare")

app = FastAPI(
    title=settings.PROJECT_NAME,
    docs_url="/docs",
    redoc_url="/redoc",
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.BACKEND_CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)

app.include_router(api_router, prefix=settings.API_V1_STR)


@app.on_event("startup")
def _startup():
    init_db(seed=settings.SEED_CHART_OF_ACCOUNTS)
    logger.info("%s started", settings.PROJECT_NAME)


# Health
@app.get("/")
def root():
    return {"message": "Petcare POS & Clinic API running", "version": "v1"}
