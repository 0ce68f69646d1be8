"""
Main entry point for the Price Watch tracking service
"""
import logging
from contextlib import asynccontextmanager
from pathlib import Path
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import uvicorn

from pricewatch.core.config import settings
from pricewatch.core.database import init_db
from pricewatch.api.routes import api_router, set_services
from pricewatch.services.batch_runner import BatchRunner
from pricewatch.services.notification_service import EmailSender, NotificationDispatcher, PushSender
from pricewatch.services.price_fetcher import HttpPriceFetcher
from pricewatch.services.repository import SqlAlchemyRepository
from pricewatch.services.scheduler import PriceTrackingScheduler
from pricewatch.services.user_directory import SqlAlchemyUserDirectory


def configure_logging():
    handlers = [logging.StreamHandler()]
    if settings.LOG_FILE:
        Path(settings.LOG_FILE).parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(settings.LOG_FILE))

    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=handlers
    )


# Configure logging
configure_logging()

logger = logging.getLogger(__name__)

# Global services
scheduler = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager"""
    global scheduler

    logger.info("Starting Price Watch...")

    # Initialize database
    await init_db()

    # Initialize services
    repository = SqlAlchemyRepository()
    fetcher = HttpPriceFetcher()
    push_sender = PushSender()
    dispatcher = NotificationDispatcher(
        SqlAlchemyUserDirectory(),
        email_sender=EmailSender(),
        push_sender=push_sender,
        repository=repository,
    )
    runner = BatchRunner(repository, fetcher, dispatcher)
    scheduler = PriceTrackingScheduler(runner)

    # Inject services into API routes
    set_services(scheduler, runner, repository)

    if settings.TRACKING_AUTOSTART:
        await scheduler.start()

    logger.info("Price Watch started successfully!")

    yield

    # Cleanup
    logger.info("Shutting down Price Watch...")
    await scheduler.stop()
    await fetcher.close()
    await push_sender.close()
    set_services(None, None, None)
    logger.info("Price Watch stopped.")


# Create FastAPI app
app = FastAPI(
    title="Price Watch",
    description="Price tracking and alerting service",
    version="1.0.0",
    lifespan=lifespan
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.get_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include API routes
app.include_router(api_router, prefix="/api/v1")


@app.get("/")
async def root():
    """Root endpoint"""
    return {
        "message": "Price Watch API",
        "version": "1.0.0",
        "status": "running"
    }


@app.get("/health")
async def health_check():
    """Health check endpoint"""
    return {
        "status": "healthy",
        "scheduler": scheduler.is_running() if scheduler else False
    }


def main():
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=8000,
        log_level=settings.LOG_LEVEL.lower()
    )


if __name__ == "__main__":
    main()
