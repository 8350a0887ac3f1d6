import os

# ----------------------------------------------------------------------------
# Database
# ----------------------------------------------------------------------------
MONGODB_URI = os.getenv("MONGODB_URI", "mongodb://localhost:27017")
MONGODB_DB_NAME = os.getenv("MONGODB_DB_NAME", "dynamicTurf")
MONGODB_TIMEOUT_MS = int(os.getenv("MONGODB_TIMEOUT_MS", "5000"))

BOOKINGS_COLLECTION = "bookings"
REVIEWS_COLLECTION = "reviews"
PURCHASES_COLLECTION = "purchases"

# ----------------------------------------------------------------------------
# HTTP
# ----------------------------------------------------------------------------
STATIC_DIR = os.getenv(
    "STATIC_DIR", os.path.join(os.path.dirname(os.path.abspath(__file__)), "public")
)
CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]

HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", 8000))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
