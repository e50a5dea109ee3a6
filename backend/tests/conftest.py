import os
import sys
import tempfile

sys.path.insert(0, os.path.dirname(os.path.dirname(__file__)))

# The app builds its lifecycle at import time; keep test runs off the dev database.
os.environ.setdefault("BOOKING_STORE_BACKEND", "memory")
os.environ.setdefault(
    "BOOKINGS_DB_PATH",
    os.path.join(tempfile.mkdtemp(prefix="bookings-tests-"), "bookings.sqlite3"),
)
