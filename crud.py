import logging
from datetime import timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

import models
import schemas
from errors import DuplicateRecipeError, RecipeNotFoundError, ValidationError
from ratings import RATING_LABELS
from validators import extract_domain

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = ("url", "title", "memo", "rating", "image_url")


def get_recipe(db: Session, recipe_id: str) -> Optional[models.Recipe]:
    return db.get(models.Recipe, recipe_id)


def get_recipe_by_url(db: Session, url: str) -> Optional[models.Recipe]:
    return db.execute(
        select(models.Recipe).where(models.Recipe.url == url)
    ).scalar_one_or_none()


def list_recipes(db: Session) -> List[models.Recipe]:
    stmt = select(models.Recipe).order_by(
        models.Recipe.date_added.desc(), models.Recipe.created_at.desc()
    )
    return list(db.execute(stmt).scalars())


def _commit(db: Session) -> None:
    """Commit, turning a url unique-constraint hit into DuplicateRecipeError."""
    try:
        db.commit()
    except IntegrityError as e:
        db.rollback()
        logger.info("Rejected duplicate recipe url: %s", e.orig)
        raise DuplicateRecipeError() from e
    except SQLAlchemyError:
        db.rollback()
        raise


def _check_rating(rating: str) -> str:
    if rating not in RATING_LABELS:
        raise ValidationError(f"Invalid rating. Must be one of: {', '.join(RATING_LABELS)}")
    return rating


def create_recipe(db: Session, data: Dict[str, Any]) -> models.Recipe:
    """Insert a new recipe. The unique index on url decides concurrent races."""
    url = data["url"]
    if get_recipe_by_url(db, url) is not None:
        raise DuplicateRecipeError()

    now = models.utcnow()
    recipe = models.Recipe(
        id=models.new_id(),
        url=url,
        title=data.get("title"),
        domain=extract_domain(url),
        memo=data.get("memo"),
        rating=_check_rating(data.get("rating") or RATING_LABELS[0]),
        image_url=data.get("image_url"),
        date_added=now,
        created_at=now,
        updated_at=now,
    )
    db.add(recipe)
    _commit(db)
    db.refresh(recipe)
    return recipe


def update_recipe(db: Session, recipe_id: str, fields: Dict[str, Any]) -> models.Recipe:
    recipe = get_recipe(db, recipe_id)
    if recipe is None:
        raise RecipeNotFoundError()

    changes = {k: v for k, v in fields.items() if k in UPDATABLE_FIELDS}

    if "url" in changes:
        url = changes["url"]
        if not url:
            raise ValidationError("Recipe URL cannot be empty")
        other = db.execute(
            select(models.Recipe.id).where(
                models.Recipe.url == url, models.Recipe.id != recipe_id
            )
        ).first()
        if other is not None:
            raise DuplicateRecipeError()
        changes["domain"] = extract_domain(url)

    if "rating" in changes:
        changes["rating"] = _check_rating(changes["rating"] or RATING_LABELS[0])

    for key, value in changes.items():
        setattr(recipe, key, value)

    now = models.utcnow()
    if recipe.updated_at is not None and now <= recipe.updated_at:
        now = recipe.updated_at + timedelta(microseconds=1)
    recipe.updated_at = now

    _commit(db)
    db.refresh(recipe)
    return recipe


def delete_recipe(db: Session, recipe_id: str) -> schemas.Recipe:
    """Delete permanently and return a snapshot of what was removed."""
    recipe = get_recipe(db, recipe_id)
    if recipe is None:
        raise RecipeNotFoundError()
    snapshot = schemas.Recipe.model_validate(recipe)
    db.delete(recipe)
    try:
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        raise
    return snapshot
