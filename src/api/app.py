"""FastAPI application exposing the feedback API."""

from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional
import argparse
import logging

import uvicorn
from fastapi import BackgroundTasks, Depends, FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response

from src.api.context import ServiceContext
from src.config.settings import Settings
from src.models.schemas import FeedbackCreate
from src.utils.exceptions import FeedbackNotFoundError
from src.utils.logging_config import configure_logging

logger = logging.getLogger(__name__)


CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type",
}


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Build the service context on startup and release it on shutdown."""
    config = Settings()
    context = ServiceContext.from_settings(config)

    try:
        context.initialize()
        logger.info("Database schemas initialized")
    except Exception as e:
        # Keep serving; requests will surface the store errors individually
        logger.error(f"Failed to initialize schemas: {e}")

    app.state.context = context
    yield

    logger.info("Shutting down application")
    context.close()


app = FastAPI(
    title="Feedback Insights",
    description="Customer feedback aggregation with sentiment, urgency alerts and similarity search",
    lifespan=lifespan,
)


@app.middleware("http")
async def cors(request: Request, call_next):
    if request.method == "OPTIONS":
        return Response(status_code=200, headers=CORS_HEADERS)
    response = await call_next(request)
    response.headers.update(CORS_HEADERS)
    return response


REQUIRED_FIELDS = ("source", "message")


@app.exception_handler(RequestValidationError)
async def validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    logger.info(f"Rejected {request.method} {request.url.path}: {errors}")

    # loc is ("body",) for a missing body, ("body", field, ...) otherwise
    locations = [tuple(error.get("loc", ())) for error in errors]
    if any(len(loc) < 2 or loc[1] in REQUIRED_FIELDS for loc in locations):
        message = "source and message are required"
    else:
        message = "Invalid request body"
    return JSONResponse(status_code=400, content={"error": message})


def get_context(request: Request) -> ServiceContext:
    return request.app.state.context


def error_response(status_code: int, message: str, error: Optional[Exception] = None) -> JSONResponse:
    content = {"error": message}
    if error is not None:
        content["details"] = str(error)
    return JSONResponse(status_code=status_code, content=content)


@app.get("/health", tags=["Health"])
def health_check() -> dict:
    return {"status": "ok"}


@app.post("/api/feedback", status_code=201, tags=["Feedback"])
def create_feedback(
    feedback: FeedbackCreate,
    background_tasks: BackgroundTasks,
    context: ServiceContext = Depends(get_context),
):
    """Store a new piece of feedback; indexing and alerts run after the response."""
    try:
        record = context.ingestion.submit(feedback)
    except Exception as e:
        logger.error(f"Error posting feedback: {e}")
        return error_response(500, "Failed to create feedback", e)

    background_tasks.add_task(context.ingestion.process_submitted, record)
    return {"success": True, "id": record.id, "sentiment": record.sentiment}


@app.get("/api/feedback", tags=["Feedback"])
def list_feedback(context: ServiceContext = Depends(get_context)):
    """All feedback, newest first, with aggregate counts."""
    try:
        records = context.feedback_store.list_all()
        stats = context.feedback_store.stats()
    except Exception as e:
        logger.error(f"Error getting feedback: {e}")
        return error_response(500, "Failed to retrieve feedback", e)

    return {
        "feedback": [record.model_dump(mode="json") for record in records],
        "stats": stats.model_dump(mode="json", by_alias=True),
    }


@app.get("/api/similar-feedback", tags=["Search"])
def similar_feedback(
    feedback_id: Optional[str] = Query(None, alias="id"),
    context: ServiceContext = Depends(get_context),
):
    """Feedback semantically similar to the given record."""
    if not feedback_id:
        return error_response(400, "id parameter is required")

    try:
        numeric_id = int(feedback_id)
    except ValueError:
        return error_response(404, "Feedback not found")

    try:
        result = context.similarity.find_similar(numeric_id)
    except FeedbackNotFoundError:
        return error_response(404, "Feedback not found")
    except Exception as e:
        logger.error(f"Error finding similar feedback for {feedback_id}: {e}")
        return error_response(500, "Failed to find similar feedback", e)

    return result.model_dump(mode="json")


@app.post("/api/backfill-embeddings", tags=["Search"])
def backfill_embeddings(context: ServiceContext = Depends(get_context)):
    """Embed every stored record into the vector index."""
    try:
        result = context.backfill.run()
    except Exception as e:
        logger.error(f"Error in backfill: {e}")
        return error_response(500, "Backfill failed", e)

    return {"success": True, **result.model_dump()}


@app.get("/api/analyze-features", tags=["Feedback"])
def analyze_features(context: ServiceContext = Depends(get_context)):
    """Most praised and most criticised features."""
    try:
        result = context.features.analyze()
    except Exception as e:
        logger.error(f"Error analyzing features: {e}")
        return error_response(500, "Failed to analyze features", e)

    return result.model_dump(mode="json", by_alias=True)


def main():
    """Run the API with uvicorn."""
    parser = argparse.ArgumentParser(description='Run the feedback insights API.')
    parser.add_argument('--host', default='0.0.0.0', help='Interface to bind')
    parser.add_argument('--port', type=int, default=8000, help='Port to listen on')
    args = parser.parse_args()

    configure_logging(Settings().log_level)

    uvicorn.run(app, host=args.host, port=args.port)


if __name__ == "__main__":
    main()
