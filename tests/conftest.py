# tests/conftest.py
"""
Global test bootstrap
- Points the app at in-memory SQLite and cheap bcrypt BEFORE app imports
- Keeps logging on stdout only
- Pulls in the fixture modules (db, clock, app, users, mocks)
"""

from __future__ import annotations

import os

# ──────────────────────────────────────────────────────────────────────────────
# 🌱 Test env (set before importing app modules so settings pick it up)
# ──────────────────────────────────────────────────────────────────────────────
os.environ.setdefault("DATABASE_URI", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("OTP_BCRYPT_ROUNDS", "4")
os.environ.setdefault("PASSWORD_BCRYPT_ROUNDS", "4")
os.environ.setdefault("LOG_TO_FILE", "0")
os.environ.setdefault("LOG_LEVEL", "WARNING")
os.environ.setdefault("SMTP_HOST", "")

# ──────────────────────────────────────────────────────────────────────────────
# 📦 Fixtures
# ──────────────────────────────────────────────────────────────────────────────
from tests.fixtures.db import *           # noqa: F401,F403,E402
from tests.fixtures.clock import *        # noqa: F401,F403,E402
from tests.fixtures.mocks.email import *  # noqa: F401,F403,E402
from tests.fixtures.app import *          # noqa: F401,F403,E402
from tests.fixtures.users import *        # noqa: F401,F403,E402
from tests.fixtures.flow import *         # noqa: F401,F403,E402
