# tests/conftest.py
import os
import sys

# In-memory database for the whole test session; must be set before
# database.db is imported anywhere.
os.environ["DATABASE_URL"] = "sqlite://"
os.environ.pop("OPENAI_API_KEY", None)

TESTS_DIR = os.path.dirname(os.path.abspath(__file__))
sys.path.insert(0, os.path.abspath(os.path.join(TESTS_DIR, "..")))
sys.path.insert(0, TESTS_DIR)

import pytest

from database.db import Base, engine, init_db

init_db()


@pytest.fixture(autouse=True)
def clean_database():
    yield
    with engine.begin() as conn:
        for table in reversed(Base.metadata.sorted_tables):
            conn.execute(table.delete())
