import os

DATABASE_URL = os.environ.get("DASHBOARD_DATABASE_URL", "dashboard.db")

LOG_LEVEL = os.environ.get("DASHBOARD_LOG_LEVEL", "INFO")

# Comma separated, "*" allows all origins
CORS_ORIGINS = [
    origin.strip()
    for origin in os.environ.get("DASHBOARD_CORS_ORIGINS", "*").split(",")
    if origin.strip()
]

# Max number of chart rows sent in a single WebSocket frame
WS_CHUNK_SIZE = int(os.environ.get("DASHBOARD_WS_CHUNK_SIZE", "50"))
