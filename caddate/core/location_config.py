import os

# --------------------------------------------------
# FRESHNESS
# --------------------------------------------------

# How long a stored location stays eligible for nearby results
FRESHNESS_WINDOW_MINUTES = int(os.environ.get("LOCATION_FRESHNESS_WINDOW_MINUTES", "5"))

# --------------------------------------------------
# NEARBY QUERY
# --------------------------------------------------

MIN_RADIUS_METERS = 100
MAX_RADIUS_METERS = 10_000
DEFAULT_RADIUS_METERS = 1_000

MIN_LIMIT = 1
MAX_LIMIT = 100
DEFAULT_LIMIT = 50

# --------------------------------------------------
# WRITE THROTTLE
# --------------------------------------------------

# 0 disables it; the mobile client pushes every 2 seconds
MIN_UPDATE_INTERVAL_SECONDS = float(os.environ.get("LOCATION_MIN_UPDATE_INTERVAL_SECONDS", "0"))

# --------------------------------------------------
# REALTIME
# --------------------------------------------------

DEFAULT_ROOM = "general"

# --------------------------------------------------
# CLIENT TRACKING LOOP
# --------------------------------------------------

TRACKING_INTERVAL_SECONDS = float(os.environ.get("TRACKING_INTERVAL_SECONDS", "2"))
SAMPLE_TIMEOUT_SECONDS = 3.0
INITIAL_FIX_TIMEOUT_SECONDS = 15.0
MAX_SAMPLE_AGE_SECONDS = 2.0
HTTP_TIMEOUT_SECONDS = 30.0

# Nearby radius the client asks for over the socket
CLIENT_NEARBY_RADIUS_METERS = 5_000
CLIENT_NEARBY_LIMIT = 100
