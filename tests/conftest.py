"""
Pytest configuration and fixtures
"""
import os
from pathlib import Path
import sys


# Define paths
PROJECT_ROOT = Path(__file__).resolve().parent.parent
BACKEND_SRC = PROJECT_ROOT / "backend" / "src"

# ``backend.src...`` for the terminal client, bare ``api``/``services`` for the HTTP app
for path in (PROJECT_ROOT, BACKEND_SRC):
    if str(path) not in sys.path:
        sys.path.insert(0, str(path))

os.environ.setdefault("SUPABASE_URL", "https://example.supabase.co")
os.environ.setdefault("SUPABASE_KEY", "test-key")
