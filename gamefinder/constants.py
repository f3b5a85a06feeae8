from __future__ import annotations

import logging

LOGGER = logging.getLogger("gamefinder.auth")
HTTP_LOGGER = logging.getLogger("gamefinder.http")
APP_VERSION = "0.1.0"

DEVELOPMENT = "development"
PRODUCTION = "production"

DEFAULT_SESSION_SECRET = "your-secret-key-change-in-production"
DEFAULT_PORT = 3001
DEFAULT_HOST = "127.0.0.1"
DEFAULT_CORS_ORIGINS = "http://localhost:3000,http://127.0.0.1:3000"
