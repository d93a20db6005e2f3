from contextlib import asynccontextmanager

from fastapi import FastAPI, WebSocket
from fastapi.middleware.cors import CORSMiddleware
import logging

from src.config import settings
from src.logging_config import setup_logging
from src.database import init_db
from src.auth import router as auth_router
from src.tickets import router as tickets_router
from src.routes import router as routes_router
from src.crowd import router as crowd_router
from src.admin import router as admin_router
from src.realtime import websocket_endpoint

setup_logging(level=settings.LOG_LEVEL, fmt=settings.LOG_FORMAT)
logger = logging.getLogger(__name__)

@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    logger.info("%s started (%s)", settings.PROJECT_NAME, settings.ENVIRONMENT)
    yield

# Create FastAPI app
app = FastAPI(
    lifespan=lifespan,
    title=settings.PROJECT_NAME,
    version="1.0.0",
    description="Mumbai Transit System API",
    docs_url="/docs",
    redoc_url="/redoc"
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(
    auth_router.router,
    prefix=f"{settings.API_V1_STR}/auth",
    tags=["Authentication"]
)

app.include_router(
    tickets_router,
    prefix=f"{settings.API_V1_STR}/tickets",
    tags=["Tickets & Validation"]
)

app.include_router(
    routes_router,
    prefix=f"{settings.API_V1_STR}/routes",
    tags=["Route Information"]
)

app.include_router(
    crowd_router,
    prefix=settings.API_V1_STR,
    tags=["Crowd & Alerts"]
)

app.include_router(
    admin_router.router,
    prefix=f"{settings.API_V1_STR}/admin",
    tags=["Admin Dashboard"]
)

@app.websocket(f"{settings.API_V1_STR}/realtime/ws")
async def realtime_feed(websocket: WebSocket):
    """Row change notifications for tickets, crowd data and alerts"""
    await websocket_endpoint(websocket)

@app.get("/")
def root():
    """Root endpoint"""
    return {
        "message": "Mumbai Transit System API",
        "version": "1.0.0",
        "docs": "/docs"
    }

@app.get("/health")
def health_check():
    """Health check endpoint"""
    return {"status": "healthy"}

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
