import logging
import time
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .core.config import get_settings
from .core.database import init_db, check_db_connection
from .core.rabbitmq import rabbitmq_publisher
from .routers import tasks
from .services.tasks import publish_executor

settings = get_settings()

# Configure logging
logging.basicConfig(level=settings.log_level)
logger = logging.getLogger(__name__)

# Create FastAPI application
app = FastAPI(
    title="Task Service",
    description="Task management service with queued status notifications",
    version=settings.service_version
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(
    tasks.router,
    prefix=settings.api_prefix + "/tasks",
    tags=["tasks"]
)


@app.on_event("startup")
async def startup_event():
    """Initialize application on startup"""
    logger.info("Starting Task Service...")

    if init_db():
        logger.info("Database initialized successfully")
    else:
        logger.error("Database initialization failed")

    if rabbitmq_publisher.connect():
        logger.info("RabbitMQ connection established")
    else:
        logger.warning("RabbitMQ connection failed - status updates will not be queued until it recovers")

    logger.info("Task Service startup completed")


@app.on_event("shutdown")
async def shutdown_event():
    """Cleanup on shutdown"""
    logger.info("Shutting down Task Service...")
    # Let queued status updates go out before the connection closes
    publish_executor.shutdown(wait=True)
    rabbitmq_publisher.close()
    logger.info("Task Service shutdown completed")


@app.get("/")
async def root():
    """Root endpoint"""
    return {
        "service": settings.service_name,
        "version": settings.service_version,
        "status": "running",
        "message": "Task Service is operational"
    }


@app.get("/health")
async def health_check():
    """Health check endpoint"""
    db_healthy = check_db_connection()

    return {
        "service": settings.service_name,
        "version": settings.service_version,
        "status": "healthy" if db_healthy else "unhealthy",
        "database": "connected" if db_healthy else "disconnected",
        "queue": "connected" if rabbitmq_publisher.is_connected() else "disconnected",
        "timestamp": time.time()
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("task_service.main:app", host="0.0.0.0", port=8000, reload=settings.debug)
