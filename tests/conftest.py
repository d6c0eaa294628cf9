"""
Root conftest.py - Global configuration for all test layers.

Test Layers:
    - api/        : HTTP contract tests (FastAPI app, mocked dependencies)
    - integration/: Repositories against a live PostgreSQL (skipped when unreachable)
    - component/  : Component tests (mocked dependencies)
    - unit/       : Unit tests (pure functions, no I/O)
"""
import os
import sys

# Set testing environment BEFORE any service imports
os.environ.setdefault("ENV", "testing")
os.environ.setdefault("NATS_ENABLED", "false")

# Add project root to path
PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, PROJECT_ROOT)
