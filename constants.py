import os

REDIS_HOST = os.getenv("REDIS_HOST", "localhost")
REDIS_PORT = int(os.getenv("REDIS_PORT", 6379))
REDIS_PASSWORD = os.getenv("REDIS_PASSWORD", None)
REDIS_DB = int(os.getenv("REDIS_DB", 0))

HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", 3000))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FILE = os.getenv("LOG_FILE", None)

CORS_ORIGINS = [origin.strip() for origin in os.getenv("CORS_ORIGINS", "*").split(",")]

ADMIN_USERNAME = os.getenv("ADMIN_USERNAME", "admin")
PUBLIC_ROOM = "public"

USERNAME_TAKEN_MESSAGE = "Username is already taken."
USERNAME_EMPTY_MESSAGE = "Username cannot be empty."
WRONG_PASSWORD_MESSAGE = "Incorrect password."
ROOM_UNAVAILABLE_MESSAGE = "Room no longer exists."
