"""
FastAPI server for wiki semantic search.

Exposes search, single-page embedding, coverage statistics, and the batch
embedding controls used by the admin panel.
"""

import asyncio

from fastapi import FastAPI
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from .config import configure_logging
from .errors import (
    BatchStateError,
    InvalidResponse,
    NotFound,
    ServiceUnavailable,
    StoreUnavailable,
    WikiSearchError,
)
from .indexing import embeddings_stats
from .runtime import get_runtime

app = FastAPI(title="WikiSearch", description="Semantic search for wiki pages")


class SearchRequest(BaseModel):
    """Request model for search queries."""

    query: str
    limit: int = Field(default=10, ge=1, le=100)


class BatchStartRequest(BaseModel):
    """Request model for starting a batch embedding run."""

    force_regenerate: bool = False
    page_ids: list[int] | None = None


def _error_response(exc: WikiSearchError) -> JSONResponse:
    if isinstance(exc, NotFound):
        status_code = 404
    elif isinstance(exc, BatchStateError):
        status_code = 409
    elif isinstance(exc, InvalidResponse):
        status_code = 502
    elif isinstance(exc, (ServiceUnavailable, StoreUnavailable)):
        status_code = 503
    else:
        status_code = 500
    return JSONResponse({"error": str(exc)}, status_code=status_code)


@app.get("/api/status")
async def status():
    """Report embedding configuration and how many chunks are stored."""
    runtime = get_runtime()
    try:
        chunk_count = await asyncio.to_thread(runtime.storage.count_chunks)
    except WikiSearchError as exc:
        return _error_response(exc)
    client = runtime.client
    return {
        "semantic_enabled": client is not None,
        "model": getattr(client, "model", None),
        "dim": getattr(client, "dim", None),
        "chunk_count": chunk_count,
        "batch_status": runtime.batch_job.progress().status,
    }


@app.post("/api/search")
async def search(request: SearchRequest):
    """Search pages by semantic similarity (substring match before indexing)."""
    runtime = get_runtime()
    try:
        hits = await runtime.search_service.search(request.query, limit=request.limit)
    except WikiSearchError as exc:
        return _error_response(exc)
    return {
        "query": request.query,
        "hits": [hit.to_dict() for hit in hits],
    }


@app.post("/api/pages/{page_id}/embeddings")
async def generate_page_embeddings(page_id: int):
    """(Re)generate the embeddings of one page right away."""
    runtime = get_runtime()
    try:
        written = await runtime.embedder.generate_embeddings(page_id)
    except WikiSearchError as exc:
        return _error_response(exc)
    return {"success": True, "page_id": page_id, "chunks_processed": written}


@app.get("/api/embeddings/stats")
async def stats():
    """Return embedding coverage over non-archived pages."""
    runtime = get_runtime()
    try:
        result = await asyncio.to_thread(
            embeddings_stats, runtime.storage, runtime.storage
        )
    except WikiSearchError as exc:
        return _error_response(exc)
    return result.to_dict()


@app.post("/api/embeddings/batch/start")
async def batch_start(request: BatchStartRequest | None = None):
    """Start a batch run in the background and return its first snapshot."""
    request = request or BatchStartRequest()
    runtime = get_runtime()
    try:
        progress = await runtime.batch_job.start(
            force_regenerate=request.force_regenerate,
            page_ids=request.page_ids,
        )
    except WikiSearchError as exc:
        return _error_response(exc)
    return {
        "success": True,
        "message": "Batch processing started",
        "progress": progress.to_dict(),
    }


@app.post("/api/embeddings/batch/stop")
async def batch_stop():
    """Pause the running batch at the next batch boundary."""
    progress = get_runtime().batch_job.stop()
    return {
        "success": True,
        "message": "Batch processing stop requested",
        "progress": progress.to_dict(),
    }


@app.post("/api/embeddings/batch/resume")
async def batch_resume():
    """Resume a paused batch run."""
    runtime = get_runtime()
    try:
        progress = await runtime.batch_job.resume()
    except WikiSearchError as exc:
        return _error_response(exc)
    return {
        "success": True,
        "message": "Batch processing resumed",
        "progress": progress.to_dict(),
    }


@app.get("/api/embeddings/batch/progress")
async def batch_progress():
    """Poll the current batch progress."""
    return get_runtime().batch_job.progress().to_dict()


def run_server(host: str = "127.0.0.1", port: int = 8000):
    """Run the FastAPI server."""
    import uvicorn

    uvicorn.run(app, host=host, port=port)


if __name__ == "__main__":
    configure_logging()
    run_server()
