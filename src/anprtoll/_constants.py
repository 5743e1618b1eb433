"""Internal constants shared across the library."""

# ------------------------------------------------------------------
# Document store collections
# ------------------------------------------------------------------

TRIPS_COLLECTION = "vehicle_trips"
OWNERS_COLLECTION = "users"
TRANSACTIONS_COLLECTION = "transactions"
ZONES_COLLECTION = "tollZones"
PLATE_INDEX_COLLECTION = "plate_index"

# ------------------------------------------------------------------
# Plate Recognizer
# ------------------------------------------------------------------

RECOGNIZER_URL = "https://api.platerecognizer.com/v1/plate-reader/"
USER_AGENT = "anprtoll/1.0"

DEFAULT_FLAT_RATE = 150.0
