from dotenv import load_dotenv
import os

load_dotenv()

# Proxy that fronts Overpass and the bounded address search
ROUTE_PROXY_BASE_URL = os.getenv("ROUTE_PROXY_BASE_URL", "http://localhost:3000")
PROGRESS_STORE_PATH = os.getenv("PROGRESS_STORE_PATH", ".route_progress.json")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
OVERPASS_PATH = "/api/overpass"
BOUNDS_SEARCH_PATH = "/api/geocode/bounds"
QUERY_TIMEOUT_S = 30  # per request; there is no batch-wide deadline

# ADDRESS RANGE SETTINGS
DEFAULT_STATE = "CA"  # short-form addresses ("1909 W Martha Ln 92706") carry no state
RANGE_STEP = 2        # one side of the street keeps its parity
RANGE_SIDES = ("both", "odd", "even")

# BLOCK DETECTION SETTINGS
BLOCK_SEARCH_RADIUS_M = 100     # streets/buildings within this many meters of the point
BOUNDS_PADDING_DEG = 0.001      # half-size of the per-street bounds box
MINUTES_PER_ADDRESS = 2         # walking estimate
CLOCKWISE_TIE_EPSILON = 0.001   # radians; closer address first inside this window
EARTH_RADIUS_M = 6371e3
CARDINAL_SIDES = ("north", "east", "south", "west")

# BATCH SETTINGS
MAX_BATCH_SIZE = 50          # addresses per batch
MAX_CONCURRENT_TABS = 3      # in-flight items per chunk
RETRY_ATTEMPTS = 2           # attempts per item, owned by the executor
TAB_OPEN_DELAY_S = 2.0       # pause between chunks
RETRY_DELAY_S = 3.0          # pause between executor attempts
CAPTURE_DELAY_S = 5.0        # handed to executors that wait for a page to settle
BATCH_CLEANUP_GRACE_S = 60   # finished batches stay queryable this long
STALE_BATCH_MAX_AGE_S = 3600

# CHECKPOINT SETTINGS
PROGRESS_KEY = "routeplanner_progress"
CHECKPOINT_VERSION = "1.0"
CHECKPOINT_MAX_AGE_S = 24 * 60 * 60


def check_env():
    missing = [k for k, v in globals().items() if k.isupper() and v in (None, "")]
    if missing:
        print("Missing environment variables:", missing)
    else:
        print("All environment variables loaded properly")

if __name__ == "__main__":
    check_env()
