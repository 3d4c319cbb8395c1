"""
Token client configuration. The issuer URL is public; the room password is optional.
"""
import os

# Token server base URL (no trailing slash)
TOKEN_API_BASE = os.environ.get("TOKEN_API_BASE", "http://127.0.0.1:8080").rstrip("/")

# Shared room password, if the issuer is protected with ROOM_PASSWORD. Sent as a header, never in the URL.
ROOM_PASSWORD = os.environ.get("ROOM_PASSWORD") or None

# Renew this many seconds before a credential expires
RENEW_BUFFER_SECONDS = int(os.environ.get("TOKEN_RENEW_BUFFER_SECONDS", "30"))

# HTTP timeout for issuer calls (seconds)
REQUEST_TIMEOUT = float(os.environ.get("TOKEN_REQUEST_TIMEOUT", "10"))
