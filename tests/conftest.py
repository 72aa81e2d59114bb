import os
import sys
from pathlib import Path

ROOT_DIR = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT_DIR))

os.environ.setdefault("LANDINGKIT_INTERNAL_API_TOKEN", "internal_token")
os.environ.setdefault("LANDINGKIT_DB_URL", "sqlite:///./test_landingkit.db")
os.environ.setdefault("GEMINI_API_KEY", "test_gemini_key")
os.environ.setdefault("MEDIA_POLL_INTERVAL_SECONDS", "0")
