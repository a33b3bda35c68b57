import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .config import FRONTEND_URL, validate_config
from .routes.auth_routes import router as auth_router
from .routes.profile_routes import router as profile_router

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Profile compare service starting up...")
    validate_config()
    yield


app = FastAPI(title="Profile Compare Service", version="0.1.0", lifespan=lifespan)

# Session cookies require an explicit origin rather than "*"
app.add_middleware(
    CORSMiddleware,
    allow_origins=[FRONTEND_URL],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(auth_router)
app.include_router(profile_router)


@app.get("/health")
def health():
    return {"status": "ok"}
