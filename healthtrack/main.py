"""
HealthTrack - Main FastAPI Application
"""
from datetime import datetime
import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from healthtrack.api import documents, medications, records, whatsapp
from healthtrack.config import settings
from healthtrack.database import init_db
from healthtrack.utils.exceptions import HealthTrackError, ValidationError

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

app = FastAPI(
    title=f"{settings.PROJECT_NAME} API",
    description="Medical document intake, extraction and medication adherence",
    version=settings.VERSION
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(documents.router, prefix=settings.API_V1_STR, tags=["documents"])
app.include_router(records.router, prefix=settings.API_V1_STR, tags=["records"])
app.include_router(medications.router, prefix=settings.API_V1_STR, tags=["medications"])
app.include_router(whatsapp.router, prefix=settings.API_V1_STR, tags=["whatsapp"])


# ==================== ERROR HANDLERS ====================

@app.exception_handler(HealthTrackError)
async def healthtrack_error_handler(request: Request, exc: HealthTrackError):
    logger.error(f"{request.method} {request.url.path} failed: {exc.error}: {exc.details}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    problems = "; ".join(
        f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}"
        for error in exc.errors()
    )
    return JSONResponse(status_code=400, content=ValidationError(problems).to_dict())


# ==================== SERVICE INFO ====================

@app.get("/")
async def root():
    """API information"""
    return {
        "message": f"{settings.PROJECT_NAME} API",
        "status": "online",
        "version": settings.VERSION,
        "endpoints": {
            "documents": f"{settings.API_V1_STR}/documents/upload",
            "medications": f"{settings.API_V1_STR}/medications/current",
            "reminders": f"{settings.API_V1_STR}/reminders/send",
            "webhook": f"{settings.API_V1_STR}/whatsapp/webhook",
            "health": "/health",
            "docs": "/docs"
        }
    }


@app.get("/health")
async def health_check():
    """Health check for monitoring"""
    return {
        "status": "healthy",
        "timestamp": datetime.utcnow().isoformat()
    }


@app.on_event("startup")
async def startup():
    logger.info(f"{settings.PROJECT_NAME} API starting...")
    init_db()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
