import os

# Database Configuration
# Uses default credentials for local Docker Compose setup
DB_URL = os.getenv("DATABASE_URL", "postgres://user:password@db:5432/stock_ledger_db")

# Application Metadata
PROJECT_NAME = "Store Inventory Ledger"
VERSION = "1.0.0"

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# Outbox Poller Configuration (drives deferred deduction / restoration)
POLLING_INTERVAL = int(os.getenv("POLLING_INTERVAL", 1)) # Poller checks for new events every N seconds
MAX_ATTEMPTS = int(os.getenv("MAX_ATTEMPTS", 5)) # Max retries for an event
BATCH_SIZE = int(os.getenv("BATCH_SIZE", 50)) # How many events to fetch per poll

# Statistics / Health reporting
STATS_TIMEZONE = os.getenv("STATS_TIMEZONE", "UTC") # Day boundaries for date filters and periods
STATS_LOOKBACK_DAYS = int(os.getenv("STATS_LOOKBACK_DAYS", 30)) # Consumption rate window
STATS_SHORT_WINDOW_DAYS = int(os.getenv("STATS_SHORT_WINDOW_DAYS", 7))
CRITICAL_DAYS_THRESHOLD = int(os.getenv("CRITICAL_DAYS_THRESHOLD", 3))

# Ledger pagination
DEFAULT_PAGE_SIZE = int(os.getenv("DEFAULT_PAGE_SIZE", 20))
MAX_PAGE_SIZE = int(os.getenv("MAX_PAGE_SIZE", 100))
