from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from api.callbacks import deliver_callback
from api.routes import router
from core.controller import AutomationController
from core.queue_client import LocalQueueClient
from core.task_queue import task_queue
from config.settings import settings
from utils.exceptions import PageInitializationError
from utils.logger import setup_logger

logger = setup_logger("api_server")

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifecycle manager for the API.
    Optionally runs a controller in-process against the same queue.
    """
    # STARTUP
    logger.info("🚀 Starting browser task relay...")
    app.state.controller = None

    if settings.EMBEDDED_CONTROLLER:
        controller = AutomationController(
            client=LocalQueueClient(task_queue, on_result=deliver_callback)
        )
        try:
            await controller.start()
            app.state.controller = controller
            logger.info("✅ Embedded controller running.")
        except PageInitializationError as e:
            logger.error(f"Embedded controller unavailable: {e}")

    try:
        yield # Application runs here
    finally:
        # SHUTDOWN
        logger.info("🛑 Shutting down browser task relay...")
        if app.state.controller is not None:
            await app.state.controller.stop()
            logger.info("✅ Embedded controller stopped.")

app = FastAPI(
    title="Browser Task Relay",
    description="Task queue and controller for humanized browser automation",
    version="1.0.0",
    lifespan=lifespan
)

# Producers run as browser extensions and dashboards on other origins
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(router, prefix=settings.API_PREFIX)

@app.get("/health")
async def health_check():
    """Health check endpoint that also reports queue and controller state."""
    controller = getattr(app.state, "controller", None)
    return {
        "status": "healthy",
        "queue_stats": task_queue.get_stats(),
        "controller": controller.get_status() if controller else None
    }
