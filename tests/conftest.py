"""Shared pytest setup: keep the service on an in-memory database."""

import os

os.environ.setdefault("AWARENESS_IMPACT_DATABASE_URL", "sqlite://")
