"""
Borra y vuelve a crear todas las tablas. Solo para desarrollo.
"""
import sys

from app.core.config import settings
from app.core.database import engine
from app.models import Base


def recreate_db():
    if settings.env not in {"dev", "test"}:
        print(f"Refusing to recreate database with ENV={settings.env}")
        sys.exit(1)

    print("Dropping existing tables...")
    Base.metadata.drop_all(bind=engine)

    print("Creating tables...")
    Base.metadata.create_all(bind=engine)

    print("Database recreated successfully!")
    print("Run `python create_admin.py` to create the owner user.")


if __name__ == "__main__":
    recreate_db()
