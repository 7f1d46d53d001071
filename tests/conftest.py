"""
Pytest configuration for fleetledger tests.
Points the app at a throwaway SQLite file before anything imports settings.
"""

import os
import sys
import tempfile
from pathlib import Path

_test_data_dir = tempfile.mkdtemp(prefix="fleetledger_test_")
os.environ.setdefault("DATABASE_URL", f"sqlite:///{_test_data_dir}/test.db")
os.environ.setdefault("LOG_LEVEL", "WARNING")

# main.py lives at the project root
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))
