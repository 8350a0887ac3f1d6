import logging
import os
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import Depends, FastAPI, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse
from fastapi.staticfiles import StaticFiles

from config import (
    BOOKINGS_COLLECTION,
    CORS_ORIGINS,
    HOST,
    LOG_LEVEL,
    MONGODB_DB_NAME,
    MONGODB_URI,
    PORT,
    PURCHASES_COLLECTION,
    REVIEWS_COLLECTION,
    STATIC_DIR,
)
from database import MongoConnection, get_connection, serialize_document
from schemas import BookingIn, PurchaseIn, ReviewIn
from slots import group_booked_slots

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


# ----------------------------------------------------------------------------
# App Config
# ----------------------------------------------------------------------------
@asynccontextmanager
async def lifespan(app: FastAPI):
    # the database is connected on demand by the first request
    yield
    get_connection().close()


app = FastAPI(
    title="Dynamic Turf API",
    description="Turf booking site backend",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ----------------------------------------------------------------------------
# Helpers
# ----------------------------------------------------------------------------
def error_response(message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": message},
    )


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


async def insert_and_fetch(db, collection: str, document: dict) -> dict:
    """Insert ``document`` and return the stored copy, re-read by its new id."""
    result = await db[collection].insert_one(document)
    try:
        stored = await db[collection].find_one({"_id": result.inserted_id})
    except Exception:
        logger.error("Inserted %s %s but could not read it back", collection, result.inserted_id)
        raise
    if stored is None:
        raise LookupError(f"{collection} {result.inserted_id} missing after insert")
    return serialize_document(stored)


# ----------------------------------------------------------------------------
# Test & Health
# ----------------------------------------------------------------------------
@app.get("/api/test")
async def api_test():
    return {"message": "API is working!"}


@app.get("/api/health")
async def health(connection: MongoConnection = Depends(get_connection)):
    reachable = await connection.ping()
    return {
        "backend": "running",
        "database": "connected" if reachable else "unavailable",
        "connection_status": "Connected" if connection.is_connected else "Not Connected",
        "database_name": MONGODB_DB_NAME,
        "database_url": "set" if MONGODB_URI else "not set",
    }


# ----------------------------------------------------------------------------
# Bookings
# ----------------------------------------------------------------------------
@app.get("/api/bookings")
async def list_bookings(connection: MongoConnection = Depends(get_connection)):
    try:
        db = await connection.get_database()
        bookings = await db[BOOKINGS_COLLECTION].find({}).sort("date", -1).to_list(length=None)
        return [serialize_document(b) for b in bookings]
    except Exception:
        logger.exception("Failed to fetch bookings")
        return error_response("Failed to fetch bookings")


@app.post("/api/bookings", status_code=status.HTTP_201_CREATED)
async def create_booking(payload: BookingIn, connection: MongoConnection = Depends(get_connection)):
    try:
        db = await connection.get_database()
        booking = payload.to_document()
        booking["createdAt"] = utcnow()
        return await insert_and_fetch(db, BOOKINGS_COLLECTION, booking)
    except Exception:
        logger.exception("Failed to create booking")
        return error_response("Failed to create booking")


@app.get("/api/booked-slots")
async def list_booked_slots(connection: MongoConnection = Depends(get_connection)):
    try:
        db = await connection.get_database()
        bookings = await db[BOOKINGS_COLLECTION].find(
            {}, {"groundId": 1, "date": 1, "slot": 1}
        ).to_list(length=None)
        return group_booked_slots(bookings)
    except Exception:
        logger.exception("Failed to fetch booked slots")
        return error_response("Failed to fetch booked slots")


# ----------------------------------------------------------------------------
# Reviews
# ----------------------------------------------------------------------------
@app.get("/api/reviews")
async def list_reviews(connection: MongoConnection = Depends(get_connection)):
    try:
        db = await connection.get_database()
        # timestamp comes from the client, ordering trusts it
        reviews = await db[REVIEWS_COLLECTION].find({}).sort("timestamp", -1).to_list(length=None)
        return [serialize_document(r) for r in reviews]
    except Exception:
        logger.exception("Failed to fetch reviews")
        return error_response("Failed to fetch reviews")


@app.post("/api/reviews", status_code=status.HTTP_201_CREATED)
async def create_review(payload: ReviewIn, connection: MongoConnection = Depends(get_connection)):
    try:
        db = await connection.get_database()
        return await insert_and_fetch(db, REVIEWS_COLLECTION, payload.to_document())
    except Exception:
        logger.exception("Failed to create review")
        return error_response("Failed to create review")


# ----------------------------------------------------------------------------
# Purchases (accessories and refreshments)
# ----------------------------------------------------------------------------
@app.post("/api/purchases", status_code=status.HTTP_201_CREATED)
async def create_purchase(payload: PurchaseIn, connection: MongoConnection = Depends(get_connection)):
    try:
        db = await connection.get_database()
        purchase = payload.to_document()
        purchase["createdAt"] = utcnow()
        return await insert_and_fetch(db, PURCHASES_COLLECTION, purchase)
    except Exception:
        logger.exception("Failed to create purchase")
        return error_response("Failed to create purchase")


# ----------------------------------------------------------------------------
# Front-end
# ----------------------------------------------------------------------------
@app.get("/", include_in_schema=False)
async def index():
    index_path = os.path.join(STATIC_DIR, "index.html")
    if not os.path.isfile(index_path):
        return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"error": "Not found"})
    return FileResponse(index_path)


# must come after the API routes so /api/* never hits the file system
if os.path.isdir(STATIC_DIR):
    app.mount("/", StaticFiles(directory=STATIC_DIR), name="static")


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=HOST, port=PORT)
