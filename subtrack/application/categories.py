"""
Category use cases: owner-scoped labels for subscriptions.

Each owner has exactly one default category ("Default"), created lazily.
The default category can be neither renamed nor deleted; deleting any other
category moves its subscriptions to the default one first.
"""
from sqlalchemy import func
from sqlalchemy.orm import Session

from subtrack.domain.subscription import DEFAULT_CATEGORY_NAME
from subtrack.errors import ConflictError, NotFoundError, ValidationError
from subtrack.infrastructure.db.models import CategoryModel, SubscriptionModel


def ensure_default_category(db: Session, owner_email: str) -> CategoryModel:
    """Return the owner's default category, creating it on first use."""
    existing = db.query(CategoryModel).filter(
        CategoryModel.owner_email == owner_email,
        CategoryModel.is_default == True,  # noqa: E712
    ).first()
    if existing:
        return existing

    category = CategoryModel(
        owner_email=owner_email,
        name=DEFAULT_CATEGORY_NAME,
        is_default=True,
    )
    db.add(category)
    db.flush()
    return category


def get_category(db: Session, category_id: int, owner_email: str) -> CategoryModel:
    category = db.query(CategoryModel).filter(
        CategoryModel.id == category_id,
        CategoryModel.owner_email == owner_email,
    ).first()
    if not category:
        raise NotFoundError("Category not found")
    return category


def list_categories(db: Session, owner_email: str) -> list[tuple[CategoryModel, int]]:
    """Categories ordered by name, each with its number of subscriptions."""
    ensure_default_category(db, owner_email)
    db.commit()

    counts = dict(
        db.query(SubscriptionModel.category_id, func.count(SubscriptionModel.id))
        .filter(
            SubscriptionModel.owner_email == owner_email,
            SubscriptionModel.category_id.isnot(None),
        )
        .group_by(SubscriptionModel.category_id)
        .all()
    )
    categories = (
        db.query(CategoryModel)
        .filter(CategoryModel.owner_email == owner_email)
        .order_by(CategoryModel.name)
        .all()
    )
    return [(c, counts.get(c.id, 0)) for c in categories]


class CreateCategoryUseCase:
    def __init__(self, db: Session):
        self.db = db

    def execute(self, owner_email: str, name: str, color: str | None = None) -> CategoryModel:
        name = (name or "").strip()
        if not name:
            raise ValidationError("Category name must not be empty")

        category = CategoryModel(
            owner_email=owner_email,
            name=name,
            color=color,
            is_default=False,
        )
        self.db.add(category)
        self.db.flush()
        self.db.commit()
        return category


class UpdateCategoryUseCase:
    def __init__(self, db: Session):
        self.db = db

    def execute(
        self,
        category_id: int,
        owner_email: str,
        name: str | None = None,
        color: str | None = None,
    ) -> CategoryModel:
        category = get_category(self.db, category_id, owner_email)

        if name is not None:
            name = name.strip()
            if not name:
                raise ValidationError("Category name must not be empty")
            if category.is_default and name != category.name:
                raise ConflictError("Default category cannot be renamed")
            category.name = name
        if color is not None:
            category.color = color

        self.db.commit()
        return category


class DeleteCategoryUseCase:
    def __init__(self, db: Session):
        self.db = db

    def execute(self, category_id: int, owner_email: str) -> None:
        category = get_category(self.db, category_id, owner_email)
        if category.is_default:
            raise ConflictError("Default category cannot be deleted")

        fallback = ensure_default_category(self.db, owner_email)
        self.db.query(SubscriptionModel).filter(
            SubscriptionModel.owner_email == owner_email,
            SubscriptionModel.category_id == category.id,
        ).update({SubscriptionModel.category_id: fallback.id}, synchronize_session=False)

        self.db.delete(category)
        self.db.commit()
