import logging
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from app.core.config import settings
from app.core.errors import AppError
from app.core.logging_config import configure_logging
from app.api.v1.api import api_router
from app.db.session import Base, engine
# Register models on Base.metadata
from app.models import (  # noqa: F401
    attribute,
    attribute_value,
    product,
    product_attribute,
    recommendation,
    shop,
    variant,
    variant_image,
    variant_option,
    webhook,
)

configure_logging()
logger = logging.getLogger(__name__)

app = FastAPI(
    title=settings.PROJECT_NAME,
    description="Unlimited product options and variants for Shopify stores",
    version=settings.VERSION,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.BACKEND_CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    logger.warning("%s %s -> %s: %s", request.method, request.url.path, exc.status_code, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

# Include API router with prefix
app.include_router(api_router, prefix=settings.API_V1_STR)

# Create database tables
Base.metadata.create_all(bind=engine)

@app.get("/")
def root():
    return {"message": f"Welcome to {settings.PROJECT_NAME}"}
