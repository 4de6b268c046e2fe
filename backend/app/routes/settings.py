"""
Settings API routes - runtime configuration for administrators.

Provides endpoints for:
- Reading the admin notification email and where it comes from
- Changing it (an empty value falls back to the environment)
"""

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from app.database import get_db
from app.services.settings import get_admin_email, set_admin_email, stored_admin_email

router = APIRouter()


class AdminEmailUpdate(BaseModel):
    """Schema for changing the admin notification email."""
    email: str = Field(..., description="Recipient of portal alerts; empty to use the default")


def _admin_email_view(db: Session) -> dict:
    return {
        "email": get_admin_email(db),
        "source": "setting" if stored_admin_email(db) else "environment",
    }


@router.get("/api/config/admin-email")
def read_admin_email(db: Session = Depends(get_db)):
    return _admin_email_view(db)


@router.put("/api/config/admin-email")
def update_admin_email(request: AdminEmailUpdate, db: Session = Depends(get_db)):
    """Change the address that receives mail-failure alerts."""
    try:
        set_admin_email(db, request.email)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return _admin_email_view(db)
