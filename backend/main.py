"""
FitMetrics — Student Physical Fitness Analytics
FastAPI backend entry point.
"""

import logging
from pathlib import Path

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from core.config import FitnessConfig
from core.provider import DataFrameProvider
from core.service import FitnessService
from routes.fitness import router as fitness_router

# Load environment
load_dotenv()

CONFIG = FitnessConfig.from_env()
logging.basicConfig(
    level=CONFIG.log_level,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

# Bundled demo data, used when FITNESS_DATA_PATH is not set.
SAMPLE_DATA_PATH = Path(__file__).resolve().parent / "sample_data" / "fitness_sample.csv"


def build_provider(config: FitnessConfig) -> DataFrameProvider:
    path = Path(config.data_path) if config.data_path else SAMPLE_DATA_PATH
    if not path.exists():
        logger.warning("Data file %s not found; starting with no student data", path)
        return DataFrameProvider()
    logger.info("Loading student data from %s", path)
    return DataFrameProvider.from_csv(path)


app = FastAPI(
    title="FitMetrics API",
    description=(
        "Student physical fitness analytics — standard-table scoring, "
        "grade statistics and multi-year trends."
    ),
    version="1.0.0",
)

# CORS for the frontend dev servers
app.add_middleware(
    CORSMiddleware,
    allow_origins=list(CONFIG.cors_origins),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.state.fitness_service = FitnessService(build_provider(CONFIG), config=CONFIG)

app.include_router(fitness_router, prefix="/api/fitness", tags=["Fitness"])


@app.get("/api/health")
async def health_check():
    return {
        "status": "ok",
        "school_name": CONFIG.school_name,
    }


@app.get("/api/config")
async def get_config():
    """Return server configuration to the frontend."""
    return {
        "school_name": CONFIG.school_name,
        "page_size": CONFIG.page_size,
        "cache_ttl": CONFIG.cache_ttl,
    }
