"""Script to create the inbound tables."""
import sys
import os

# Add parent directory to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from inbound.config import settings
from inbound.database import engine, Base
import inbound.models  # noqa: F401  registers the tables


def create_tables():
    """Create all tables if they do not exist."""
    Base.metadata.create_all(bind=engine)
    print(f"Tables created on {engine.url.render_as_string(hide_password=True)}")
    print(f"Session lease: {settings.SESSION_LEASE_MS} ms")


if __name__ == "__main__":
    create_tables()
