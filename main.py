import logging

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

load_dotenv()  # Load environment variables from .env file

from app.api import admin, functions, routes
from app.core.config import settings
from app.core.exceptions import NotFoundError, global_exception_handler, not_found_handler

# Basic logging
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logging.getLogger("httpx").setLevel(logging.WARNING)

app = FastAPI(title="FixMyBlock API")

app.add_exception_handler(NotFoundError, not_found_handler)
app.add_exception_handler(Exception, global_exception_handler)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins(),
    allow_methods=["*"],
    allow_headers=["authorization", "x-client-info", "apikey", "content-type"],
)

app.include_router(routes.router)
app.include_router(admin.router)
app.include_router(functions.router)


@app.get("/health", tags=["Health"])
async def health_check():
    return {"status": "healthy", "service": app.title}
