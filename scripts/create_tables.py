#!/usr/bin/env python3
"""
Create the ai_jobs / user_credits / credit_transactions tables.
Uses the same DATABASE_URL or Cloud SQL settings as the worker.
"""
import os
import sys

import dotenv

sys.path.append(os.path.join(os.path.dirname(__file__), ".."))
from apps.api.config import Settings  # noqa: E402
from apps.api.db.base import Base  # noqa: E402
from apps.api.db.session import create_db_engine  # noqa: E402
import apps.api.models.models  # noqa: E402,F401  (registers tables)

dotenv.load_dotenv()


def main():
    settings = Settings.from_env()
    if not settings.database_url and not settings.connection_name:
        sys.exit("DATABASE_URL or CONNECTION_NAME is required")
    engine = create_db_engine(settings)
    Base.metadata.create_all(engine)
    print("tables:", ", ".join(sorted(Base.metadata.tables)))


if __name__ == "__main__":
    main()
