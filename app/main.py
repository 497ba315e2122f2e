from logging import getLogger
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from app.src import schemas
from app.src.constants import API_TITLE, API_VERSION
from app.src.db import sessionMaker
from app.api.controller import app_admin, app_client, app_provider, app_public

logger = getLogger("uvicorn.error")

app = FastAPI(title=API_TITLE, version=API_VERSION)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.mount("/admin", app_admin, "Admin API")
app.mount("/client", app_client, "Client API")
app.mount("/provider", app_provider, "Provider API")
app.mount("/public", app_public, "Public API")


@app.get("/health", tags=["Health Check"], response_model=schemas.HealthStatus)
async def health_check():
    """Report the server version and whether the database answers."""
    database = "OK"
    try:
        with sessionMaker() as session:
            session.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        logger.error(f"Database health check failed: {e}")
        database = "UNAVAILABLE"
    status = "OK" if database == "OK" else "DEGRADED"
    return {"status": status, "version": API_VERSION, "database": database}
