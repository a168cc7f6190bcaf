import os
import logging
from contextlib import asynccontextmanager

from dotenv import load_dotenv

load_dotenv()

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse
from pymongo.errors import PyMongoError

import database
from auth import admin_router, home_router, router as auth_router
from books import router as books_router
from errors import register_error_handlers
from logger import setup_logging
from middleware import RateLimiter, RateLimitMiddleware, RequestLoggingMiddleware

setup_logging(
    os.getenv("LOG_LEVEL", "INFO"),
    os.getenv("LOG_FORMAT", "json"),
    os.getenv("LOG_DIR"),
)
logger = logging.getLogger(__name__)

CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]
RATE_LIMIT_MAX = int(os.getenv("RATE_LIMIT_MAX", 100))
RATE_LIMIT_WINDOW_SECONDS = int(os.getenv("RATE_LIMIT_WINDOW_SECONDS", 15 * 60))

logger.info("Server is starting...")


@asynccontextmanager
async def lifespan(app: FastAPI):
    database.check_connection()
    yield
    logger.info("Server shutting down")


app = FastAPI(title="Bookstore API", lifespan=lifespan)

rate_limiter = RateLimiter(RATE_LIMIT_MAX, RATE_LIMIT_WINDOW_SECONDS)

# last added runs first: CORS wraps logging wraps rate limiting, so 429s and
# 500s carry CORS headers and preflights never count against the limit
app.add_middleware(RateLimitMiddleware, limiter=rate_limiter)
app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_error_handlers(app)

app.include_router(books_router)
app.include_router(auth_router)
app.include_router(home_router)
app.include_router(admin_router)


@app.get("/", response_class=PlainTextResponse)
def root():
    logger.info("Home route accessed")
    return "Welcome to the Bookstore API!"


@app.get("/error", response_class=PlainTextResponse)
def simulated_error():
    try:
        raise RuntimeError("Something went wrong!")
    except RuntimeError as e:
        logger.error("Error occurred: %s", e)
        return PlainTextResponse("Server Error", status_code=500)


@app.get("/test")
def test_database():
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_url": "✅ Set" if os.getenv("DATABASE_URL") else "❌ Not Set",
        "database_name": "✅ Set" if os.getenv("DATABASE_NAME") else "❌ Not Set",
        "connection_status": "Not Connected",
        "collections": [],
    }

    db = database.db
    if db is not None:
        response["database"] = "✅ Available"
        response["connection_status"] = "Connected"
        try:
            response["collections"] = db.list_collection_names()[:10]
            response["database"] = "✅ Connected & Working"
        except PyMongoError as e:
            logger.warning(f"Database check failed: {e}")
            response["database"] = f"⚠️  Connected but Error: {str(e)[:50]}"

    return response


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    logger.info(f"Server running on http://localhost:{port}")
    uvicorn.run(app, host="0.0.0.0", port=port)
