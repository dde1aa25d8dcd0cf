import uuid
from datetime import datetime
from typing import List

from sqlmodel import Session, select

from ..models.category import Category, DEFAULT_CATEGORIES


def create_default_categories(session: Session, user_id: uuid.UUID) -> List[Category]:
    """Add the stock categories the user does not have yet (matched by name).

    The caller commits.
    """
    existing = set(session.exec(select(Category.name).where(Category.user_id == user_id)).all())
    now = datetime.utcnow()
    created = []
    for order, (name, icon, color, type_) in enumerate(DEFAULT_CATEGORIES):
        if name in existing:
            continue
        category = Category(
            user_id=user_id,
            name=name,
            icon=icon,
            color=color,
            type=type_,
            is_default=True,
            sort_order=order,
            created_at=now,
            updated_at=now,
        )
        session.add(category)
        created.append(category)
    return created
