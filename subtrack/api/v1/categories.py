"""
Category API endpoints
"""
from datetime import datetime

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from subtrack.api.deps import get_current_user, get_db
from subtrack.application.categories import (
    CreateCategoryUseCase, DeleteCategoryUseCase, UpdateCategoryUseCase, list_categories,
)
from subtrack.infrastructure.db.models import CategoryModel, User


router = APIRouter(prefix="/api/categories", tags=["categories"])


# === Request/Response models ===

class CreateCategoryRequest(BaseModel):
    name: str = Field(min_length=1)
    color: str | None = None


class UpdateCategoryRequest(BaseModel):
    name: str | None = Field(default=None, min_length=1)
    color: str | None = None


class CategoryResponse(BaseModel):
    id: int
    name: str
    color: str | None
    is_default: bool
    created_at: datetime
    subscription_count: int | None = None


def _category_response(c: CategoryModel, count: int | None = None) -> CategoryResponse:
    return CategoryResponse(
        id=c.id,
        name=c.name,
        color=c.color,
        is_default=c.is_default,
        created_at=c.created_at,
        subscription_count=count,
    )


# === Endpoints ===

@router.get("")
def get_categories(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    """Categories with their subscription counts"""
    items = list_categories(db, user.email)
    return {"items": [_category_response(c, n) for c, n in items]}


@router.post("")
def create_category(
    req: CreateCategoryRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    category = CreateCategoryUseCase(db).execute(user.email, req.name, req.color)
    return {"item": _category_response(category)}


@router.put("/{category_id}")
def update_category(
    category_id: int,
    req: UpdateCategoryRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    category = UpdateCategoryUseCase(db).execute(category_id, user.email, name=req.name, color=req.color)
    return {"item": _category_response(category)}


@router.delete("/{category_id}")
def delete_category(
    category_id: int,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Delete a category; its subscriptions move to the default category"""
    DeleteCategoryUseCase(db).execute(category_id, user.email)
    return {"ok": True}
