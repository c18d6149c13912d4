#!/usr/bin/env python3
"""
Crea (o actualiza) el usuario dueño del POS.
Uso: docker-compose exec backend python create_admin.py [email] [password]
"""
import sys
import os

sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from app.core.database import SessionLocal, init_db
from app.core.roles import Role
from app.core.security import hash_password
from app.models.user import User


def create_admin(email: str = "admin@cafe.local", password: str = "admin123") -> None:
    init_db()
    db = SessionLocal()
    try:
        user = db.query(User).filter(User.email == email).first()
        if user:
            user.role = Role.owner.value
            user.hashed_password = hash_password(password)
            action = "updated"
        else:
            user = User(email=email, hashed_password=hash_password(password), role=Role.owner.value)
            db.add(user)
            action = "created"
        db.commit()
        db.refresh(user)

        print(f"\n✓ Owner user {action}")
        print(f"\n{'='*50}")
        print(f"Email: {user.email}")
        print(f"Password: {password}")
        print(f"Role: {user.role}")
        print(f"{'='*50}")
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


if __name__ == "__main__":
    create_admin(*sys.argv[1:3])
