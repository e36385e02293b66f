"""
API Routers for the MedVault Records API.
"""
from app.routers.auth import router as auth_router
from app.routers.users import router as users_router
from app.routers.patients import router as patients_router
from app.routers.records import router as records_router
from app.routers.uploads import router as uploads_router

__all__ = [
    "auth_router",
    "users_router",
    "patients_router",
    "records_router",
    "uploads_router"
]
