import os
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.responses import RedirectResponse

from database import engine, init_models
from badminton.router import router as sessions_router

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format='%(asctime)s - %(levelname)s - %(message)s',
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    await init_models()
    logger.info("Badminton court scheduler started")
    yield
    await engine.dispose()


app = FastAPI(title="Badminton Court Scheduler", lifespan=lifespan)
app.include_router(sessions_router)

# Routes

@app.get("/")
async def index():
    return RedirectResponse("/sessions/", status_code=303)
