# PixelVault - FastAPI Backend
#
# REST API over VaultService. Entries cross this boundary as ciphertext only;
# encryption and decryption happen in the client (VaultController).

import logging

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .. import __version__
from ..core import EventSeverity, EventType, get_audit_logger, get_settings
from .auth_routes import router as auth_router
from .entry_routes import router as entry_router
from .user_routes import router as user_router

logger = logging.getLogger(__name__)

# FastAPI app
app = FastAPI(
    title="PixelVault API",
    description="Two-secret encrypted vault for credentials, notes and files",
    version=__version__,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Register routers
app.include_router(auth_router)
app.include_router(user_router)
app.include_router(entry_router)


@app.on_event("startup")
async def startup_event():
    settings = get_settings()
    get_audit_logger().log_event(
        event_type=EventType.SYSTEM_START,
        severity=EventSeverity.INFO,
        message="PixelVault API started",
        details={"db_path": str(settings.db_path)},
    )


@app.on_event("shutdown")
async def shutdown_event():
    get_audit_logger().log_event(
        event_type=EventType.SYSTEM_STOP,
        severity=EventSeverity.INFO,
        message="PixelVault API stopped",
    )


@app.get("/api/health")
async def health_check():
    return {"status": "ok", "version": __version__}


def start_api_server(host: str = "127.0.0.1", port: int = 8000):
    """
    Start FastAPI server.

    Args:
        host: Host to bind to (default: localhost only)
        port: Port to listen on
    """
    uvicorn.run(app, host=host, port=port, log_level="info")


if __name__ == "__main__":
    start_api_server()
