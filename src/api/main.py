"""FastAPI application entry point."""

import warnings
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from api.models.responses import ErrorCodes, ErrorResponse
from api.routes import health_router, reconcile_router
from api.routes.health import missing_tables
from core.config import API_DEBUG, API_VERSION


@asynccontextmanager
async def lifespan(app: FastAPI):
    absent = missing_tables()
    if absent:
        warnings.warn(f"Request log tables missing ({', '.join(absent)}); run scripts/init_db.py")
    yield


app = FastAPI(
    title="Worklog Reconciliation API",
    description="Turns attendance, meetings and commits into worklog drafts, "
    "compares attendance with booked worklogs and plans the edits that align them",
    version=API_VERSION,
    debug=API_DEBUG,
    lifespan=lifespan,
)

if API_DEBUG:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST"],
        allow_headers=["X-API-Key", "Content-Type"],
    )


def _error_body(error: str, code: str, details: list[str]) -> dict:
    return {"detail": ErrorResponse(error=error, code=code, details=details).model_dump()}


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    """Body schema errors use the same envelope as the handlers' own 422s."""
    details = []
    for err in exc.errors():
        location = ".".join(str(part) for part in err["loc"] if part != "body")
        details.append(f"{location}: {err['msg']}" if location else err["msg"])
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content=_error_body("Request body is invalid", ErrorCodes.INVALID_REQUEST, details),
    )


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception):
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=_error_body("Internal server error", ErrorCodes.INTERNAL_ERROR, []),
    )


app.include_router(health_router)
app.include_router(reconcile_router)


if __name__ == "__main__":
    import uvicorn

    from core.config import API_HOST, API_PORT

    uvicorn.run("api.main:app", host=API_HOST, port=API_PORT, reload=API_DEBUG)
