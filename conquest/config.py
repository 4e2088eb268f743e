"""
Single place for default game/host configuration.
Change DEFAULT_MAP_ID to switch which map template seeds new games (when no map_id is provided).
"""
import os

# Map id from conquest/data/maps/<id>/ (e.g. "europe"). This is the default for new games.
DEFAULT_MAP_ID = "europe"

# Origins allowed to call the HTTP API from a browser
CORS_ORIGINS = ["http://localhost:5173", "http://localhost:3000", "http://localhost:8081"]

LOG_LEVEL = os.environ.get("CONQUEST_LOG_LEVEL", "INFO")
