"""
Branch Finance API Application Factory
"""

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .. import __version__
from ..exceptions import (
    ObligationError, ValidationError, InactiveObligationError, NotFoundError,
    PersistenceError, ConcurrencyError
)
from ..logging_config import get_logger
from .obligations import router as obligations_router, branches_router


logger = get_logger("branch_finance.api")

# Most specific first; ConcurrencyError must win over PersistenceError
ERROR_STATUS = [
    (ValidationError, 422),
    (NotFoundError, 404),
    (InactiveObligationError, 409),
    (ConcurrencyError, 409),
    (PersistenceError, 503),
]


def status_for(error: ObligationError) -> int:
    for error_cls, status_code in ERROR_STATUS:
        if isinstance(error, error_cls):
            return status_code
    return 500


async def obligation_error_handler(request: Request, exc: ObligationError) -> JSONResponse:
    status_code = status_for(exc)
    if status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc}")
    return JSONResponse(
        status_code=status_code,
        content={"error": type(exc).__name__, "detail": str(exc)}
    )


def create_app() -> FastAPI:
    """Create and configure the FastAPI application"""
    app = FastAPI(
        title="Branch Finance API",
        description="Loans and payment plans with installment schedules and ledger postings",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc"
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(ObligationError, obligation_error_handler)

    app.include_router(obligations_router, prefix="/obligations", tags=["Obligations"])
    app.include_router(branches_router, prefix="/branches", tags=["Branches"])

    @app.get("/health")
    async def health_check():
        """Health check endpoint"""
        return {
            "status": "healthy",
            "service": "branch_finance_api",
            "version": __version__
        }

    return app


app = create_app()


def run_server(host: str = "0.0.0.0", port: int = 8090, workers: int = 1, debug: bool = False):
    """Run the FastAPI server"""
    uvicorn.run(
        "branch_finance.api:app",
        host=host,
        port=port,
        workers=workers,
        reload=debug,
        log_level="info"
    )
