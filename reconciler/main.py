from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from reconciler.config import settings
from reconciler.errors import ReconcilerError
from reconciler.logging_config import get_logger, setup_logging
from reconciler.routes.batches import router as batches_router
from reconciler.routes.rules import router as rules_router
from reconciler.routes.wizard import router as wizard_router

setup_logging(level=settings.LOG_LEVEL)
logger = get_logger(__name__)

app = FastAPI(title="Produce Reconciler API", version="1.0.0", debug=settings.DEBUG)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(ReconcilerError)
async def reconciler_error_handler(request: Request, exc: ReconcilerError):
    logger.warning("%s %s -> %s: %s", request.method, request.url.path, type(exc).__name__, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


@app.get("/")
def root():
    return {"message": "Produce Reconciler API is running", "version": "1.0.0"}


@app.get("/health")
def health():
    return {"status": "healthy"}


app.include_router(batches_router)
app.include_router(wizard_router)
app.include_router(rules_router)
