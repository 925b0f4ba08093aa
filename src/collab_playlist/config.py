import os
from dotenv import load_dotenv

load_dotenv()

PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

# Spotify configuration
# Missing credentials are reported when a client is built, not at import time.
SPOTIFY_CLIENT_ID = os.getenv("SPOTIFY_CLIENT_ID")
SPOTIFY_REDIRECT_URI = os.getenv("SPOTIFY_REDIRECT_URI", "http://127.0.0.1:8080/callback")
SPOTIFY_SCOPES = os.getenv("SPOTIFY_SCOPES", "playlist-read-collaborative")
SPOTIFY_REQUEST_TIMEOUT_SEC = float(os.getenv("SPOTIFY_REQUEST_TIMEOUT_SEC") or "10")

# Persisted OAuth flow state (FirstVisit / RequestedUserAuthorization / GotToken)
AUTH_STATE_FILE = os.getenv("COLLAB_PLAYLIST_AUTH_FILE") or os.path.join(
    PROJECT_ROOT, "data", "spotify_token.json"
)

# Logging
LOG_LEVEL = os.getenv("COLLAB_PLAYLIST_LOG_LEVEL", "INFO").upper()
