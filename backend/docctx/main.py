"""FastAPI application."""

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from backend.docctx.api.routes.chat import router as chat_router
from backend.docctx.api.routes.context import router as context_router
from backend.docctx.api.routes.health import router as health_router
from backend.docctx.api.routes.metrics import router as metrics_router
from backend.docctx.errors import ContextCorruptedError, DuplicateRequestError

app = FastAPI(title="Document Context API", version="0.1.0")

# Register routes
app.include_router(health_router, tags=["health"])
app.include_router(metrics_router, tags=["metrics"])
app.include_router(context_router)
app.include_router(chat_router)


@app.exception_handler(DuplicateRequestError)
async def duplicate_request_handler(request: Request, exc: DuplicateRequestError) -> JSONResponse:
    return JSONResponse(
        status_code=409,
        content={
            "error": "Duplicate request",
            "code": "DUPLICATE_REQUEST",
            "message": "This request has already been processed",
            "request_id": exc.request_id,
        },
    )


@app.exception_handler(ContextCorruptedError)
async def context_corrupted_handler(request: Request, exc: ContextCorruptedError) -> JSONResponse:
    return JSONResponse(
        status_code=500,
        content={
            "error": "Document context is incomplete; please re-upload the document",
            "code": "CONTEXT_CORRUPTED",
            "documentId": exc.document_id,
        },
    )


@app.get("/")
async def root() -> dict[str, str]:
    """Root endpoint."""
    return {"message": "Document Context API", "version": "0.1.0"}
