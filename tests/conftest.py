"""
Shared test setup: in-memory database, no file logs, no scheduler.

Environment is set before anything imports app.config, since settings are
cached on first use.
"""
import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["LOG_DIR"] = ""
os.environ["ENABLE_SCHEDULER"] = "false"
os.environ["FUNCTIONS_BASE_URL"] = "http://functions.test/functions/v1"
os.environ["IDENTITY_URL"] = "http://identity.test"
os.environ["SMTP_HOST"] = ""
os.environ["SLACK_WEBHOOK_URL"] = ""

import pytest

import app.models  # noqa: F401
from app.models.base import Base, engine


@pytest.fixture(autouse=True)
def fresh_db():
    """Every test starts from empty tables."""
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)
