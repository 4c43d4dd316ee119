# api/main.py
from dotenv import load_dotenv
import os

env = os.getenv("APP_ENV", "local")
if env == "local":
    load_dotenv(".env.local")
else:
    load_dotenv(".env")

from fastapi import FastAPI
from contextlib import asynccontextmanager
import logging
from database.db import init_db
from fastapi.middleware.cors import CORSMiddleware

from api.routers import agents, cron, health

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger(__name__)
logger.info(f"🔧 Loaded environment: {env}")


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("🚀 Starting SEO agents backend, initializing DB")
    try:
        init_db()
    except Exception as e:
        logger.error(f"❌ Failed to initialize database: {e}", exc_info=True)
        raise
    yield
    logger.info("🛑 Shutting down SEO agents backend")


app = FastAPI(
    title="SEO Agents API",
    version="1.0.0",
    description="Runs the Scholar, Ghostwriter and Conductor agent workflows.",
    lifespan=lifespan
)

origins = []
if env == "local":
    origins = ["http://localhost:3000", "http://localhost:5173"]
else:
    origins_str = os.getenv("ALLOWED_ORIGINS", "")
    origins = [origin.strip() for origin in origins_str.split(",") if origin.strip()]

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.include_router(health.router)
app.include_router(agents.router, prefix="/agents", tags=["Agents"])
app.include_router(cron.router, prefix="/cron", tags=["Scheduled"])


@app.get("/")
async def root():
    return {"message": "SEO Agents Backend Running"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("api.main:app", host=os.getenv("HOST", "0.0.0.0"), port=int(os.getenv("PORT", "8000")))
