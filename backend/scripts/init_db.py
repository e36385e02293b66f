"""
Database initialization script.
Creates the tables and an initial admin user.

Usage (from backend/):
    ADMIN_EMAIL=admin@example.com ADMIN_PASSWORD='S3cure!pass' python scripts/init_db.py
"""
import logging
import os
import sys
sys.path.insert(0, '.')

from app.database import SessionLocal, init_db
from app.errors import DuplicateError, ValidationError
from app.models.user import UserCreate, UserRole
from app.services.auth_service import AuthService

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger("init_db")


def init_database() -> int:
    """Create tables and the first admin account. Returns a process exit code."""
    logger.info("Creating database tables...")
    init_db()

    email = os.environ.get("ADMIN_EMAIL", "admin@example.com")
    password = os.environ.get("ADMIN_PASSWORD")
    if not password:
        logger.info("ADMIN_PASSWORD not set, skipping admin user creation")
        return 0

    db = SessionLocal()
    try:
        admin_data = UserCreate(
            name=os.environ.get("ADMIN_NAME", "System Administrator"),
            email=email,
            password=password,
            phone=os.environ.get("ADMIN_PHONE", "+10000000000"),
            role=UserRole.ADMIN,
        )
        user, _ = AuthService.register(db, admin_data)
        user.is_email_verified = True
        db.commit()
        logger.info(f"Admin user created: {email}")
    except DuplicateError:
        logger.info("Admin user already exists")
    except ValidationError as e:
        logger.error(f"Admin user rejected: {'; '.join(e.errors) or e.message}")
        return 1
    finally:
        db.close()

    logger.info("Database initialization complete")
    return 0


if __name__ == "__main__":
    sys.exit(init_database())
