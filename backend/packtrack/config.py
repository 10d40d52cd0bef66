# backend/packtrack/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/packtrack.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///packtrack.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Packing videos land in <root>/<YYYY-MM-DD>/<order_number>_<epoch_ms>.mp4
    # Unset means <instance_path>/videos; create_app stores the absolute path
    VIDEO_STORAGE_ROOT = os.environ.get("VIDEO_STORAGE_ROOT")

    # Seal photos land in <root>/<YYYY-MM-DD>/<order_number>_<epoch_ms>_<kind>.jpg
    PHOTO_STORAGE_ROOT = os.environ.get("PHOTO_STORAGE_ROOT")

    # Read size used when hashing evidence files
    EVIDENCE_HASH_CHUNK_SIZE = int(os.environ.get("EVIDENCE_HASH_CHUNK_SIZE", str(1024 * 1024)))

    # Attempts for run_with_retry on lock/optimistic-version conflicts
    RETRY_ATTEMPTS = int(os.environ.get("RETRY_ATTEMPTS", "3"))

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
