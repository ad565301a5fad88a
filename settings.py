import os

from dotenv import load_dotenv

load_dotenv()

DEFAULT_SECRET = "dev-secret-change-me"

DATABASE_URL = os.getenv("DATABASE_URL", "mongodb://localhost:27017")
DATABASE_NAME = os.getenv("DATABASE_NAME", "TaskManagementApp")
DATABASE_TIMEOUT_MS = int(os.getenv("DATABASE_TIMEOUT_MS", 5000))

ACCESS_TOKEN_SECRET = os.getenv("ACCESS_TOKEN_SECRET", DEFAULT_SECRET)
PORT = int(os.getenv("PORT", 5000))
PRODUCTION = os.getenv("NODE_ENV", "development") == "production"

CORS_ORIGINS = [
    origin.strip()
    for origin in os.getenv(
        "CORS_ORIGINS",
        "http://localhost:5173,"
        "https://task-management-app-d6f4c.web.app,"
        "https://task-management-app-d6f4c.firebaseapp.com",
    ).split(",")
    if origin.strip()
]

# When on, a session may only mutate the container it was issued for
OWNER_MATCH_REQUIRED = os.getenv("OWNER_MATCH_REQUIRED", "false").lower() in ("1", "true", "yes")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
