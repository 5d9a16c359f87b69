from dotenv import load_dotenv
from fastapi import FastAPI
from starlette.middleware.cors import CORSMiddleware
import os
import logging
import sys

# Configure logging for the entire application at the very beginning
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)]
)
logger = logging.getLogger(__name__)

# Load environment variables from the .env file in the 'backend' directory
dotenv_path = os.path.join(os.path.dirname(os.path.abspath(__file__)), "..", ".env")
load_dotenv(dotenv_path=dotenv_path)

# Import settings and database session management
from podcastgen.core.config import settings
from podcastgen.db.session import engine, Base
import podcastgen.models  # noqa: F401  registers the tables on Base.metadata
from podcastgen.api.v1 import podcast


def create_tables():
    """
    Creates all database tables based on the SQLAlchemy Base metadata.
    """
    Base.metadata.create_all(bind=engine)


app = FastAPI(
    title=settings.PROJECT_NAME,
    openapi_url=f"{settings.API_V1_STR}/openapi.json"
)

# --- Middleware ---
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# --- Event Handlers ---
@app.on_event("startup")
def on_startup():
    """
    Creates the database tables when the application starts.
    """
    logger.debug("Main: Startup event triggered. Creating database tables.")
    create_tables()


# --- API Routers ---
app.include_router(podcast.router, prefix=f"{settings.API_V1_STR}/podcasts", tags=["Podcasts"])
logger.debug(f"Main: Including podcast router with prefix: {settings.API_V1_STR}/podcasts")


# --- Root Endpoint ---
@app.get("/", tags=["Root"])
def read_root():
    """
    A simple root endpoint for health checks.
    """
    return {"message": f"Welcome to the {settings.PROJECT_NAME}"}
