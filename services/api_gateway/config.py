"""Gateway settings read from the environment."""

import os

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
APP_VERSION = os.getenv("APP_VERSION", "0.1.0")
DEFAULT_WORKFLOW_CATEGORY = os.getenv("DEFAULT_WORKFLOW_CATEGORY", "SOS").upper()
FEED_DEFAULT_RATE = float(os.getenv("FEED_DEFAULT_RATE", "2.0"))
