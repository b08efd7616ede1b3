from fastapi import FastAPI
from fastapi.staticfiles import StaticFiles
import uvicorn
from routes import router
from config import OUTPUT_DIR
from logger.backend_logger import backend_logger
from cleanup.cleanup_handler import cleanup_handler
from contextlib import asynccontextmanager


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Handles app startup and shutdown"""
    backend_logger.info("Starpack starting up...")
    backend_logger.info("Ready for star-aligned image stacking")
    yield
    backend_logger.info("Starpack shutting down...")
    cleanup_handler.cleanup_all_temp_dirs()


app = FastAPI(
    title="Starpack",
    description="Star-field alignment and stacking of night sky photographs",
    version="0.1.0",
    lifespan=lifespan
)

# Stacked results, previews and diagnostic images
app.mount("/output", StaticFiles(directory=OUTPUT_DIR), name="output")

app.include_router(router)


@app.get("/health")
async def health():
    return {"status": "ok"}


if __name__ == "__main__":
    try:
        backend_logger.info("Starting Starpack...")
        uvicorn.run(
            "main:app",
            host="0.0.0.0",
            port=5500,
            reload=True,
            log_level="info"
        )
    except KeyboardInterrupt:
        backend_logger.info("Received shutdown signal")
