"""Recipe workflows: save with metadata enrichment, update, list, preview."""

import logging
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

import crud
import models
import schemas
from errors import DuplicateRecipeError, FetchError, ValidationError
from metadata import MetadataFetcher, PageMetadata
from ratings import label_to_value, resolve_rating
from validators import (
    extract_domain,
    is_valid_url,
    normalize_text,
    validate_image_url,
    validate_memo,
    validate_title,
    validate_url,
)

logger = logging.getLogger(__name__)

SORT_KEYS = ("date-desc", "date-asc", "title", "rating-desc", "rating-asc")

# プレビュー取得に失敗したときの定番レシピサイト名
KNOWN_RECIPE_SITES = (
    ("cookpad.com", "Cookpad"),
    ("kurashiru.com", "Kurashiru"),
    ("delishkitchen.tv", "DELISH KITCHEN"),
    ("recipe.rakuten.co.jp", "Rakuten"),
    ("kyounoryouri.jp", "Kyou no Ryouri"),
)


def _display_title(r: models.Recipe) -> str:
    return r.title or r.domain or "Recipe"


def _site_name(domain: str) -> Optional[str]:
    for fragment, name in KNOWN_RECIPE_SITES:
        if fragment in domain:
            return name
    return None


def generic_preview(url: str) -> Optional[schemas.PreviewInfo]:
    """Domain-derived stand-in used when a page cannot be fetched."""
    domain = extract_domain(url)
    if not domain:
        return None
    name = _site_name(domain)
    site = name or (domain[4:] if domain.startswith("www.") else domain)
    return schemas.PreviewInfo(
        title=f"{site} recipe",
        description=f"Recipe from {name or domain}. The exact title is shown after saving.",
        image=None,
        domain=domain,
        is_existing=False,
    )


class RecipeService:
    def __init__(self, db: Session, fetcher: MetadataFetcher, strict_ratings: bool = False):
        self.db = db
        self.fetcher = fetcher
        self.strict_ratings = strict_ratings

    # =========================
    # Metadata
    # =========================
    def extract_metadata(self, url: Optional[str]) -> PageMetadata:
        if not url:
            raise ValidationError("URL parameter is required")
        if not is_valid_url(url):
            raise ValidationError("Invalid URL format")
        return self.fetcher.fetch(url.strip())

    def _try_fetch(self, url: str) -> Optional[PageMetadata]:
        try:
            return self.fetcher.fetch(url)
        except FetchError as e:
            logger.warning("Continuing without metadata for %s: %s", url, e.message)
            return None
        except Exception:
            logger.exception("Unexpected error while reading metadata for %s", url)
            return None

    def extract_preview_metadata(self, url: Optional[str]) -> Optional[schemas.PreviewInfo]:
        if not is_valid_url(url):
            return None
        url = url.strip()

        try:
            existing = crud.get_recipe_by_url(self.db, url)
        except SQLAlchemyError:
            logger.warning("Could not check for an existing recipe at %s", url, exc_info=True)
            existing = None
        if existing is not None:
            if existing.memo:
                description = f"Memo: {existing.memo}"
            else:
                description = f"Saved recipe (rating: {existing.rating})"
            return schemas.PreviewInfo(
                title=_display_title(existing),
                description=description,
                image=existing.image_url,
                domain=existing.domain,
                is_existing=True,
            )

        meta = self._try_fetch(url)
        if meta is not None and (meta.title or meta.description or meta.image):
            return schemas.PreviewInfo(
                title=meta.title,
                description=meta.description,
                image=meta.image,
                domain=meta.domain,
                is_existing=False,
            )
        return generic_preview(url)

    # =========================
    # Write paths
    # =========================
    def save_recipe(
        self,
        url: Optional[str],
        title: Optional[str] = None,
        memo: Optional[str] = None,
        rating=None,
        image_url: Optional[str] = None,
    ) -> models.Recipe:
        url = validate_url(normalize_text(url))
        title = validate_title(normalize_text(title))
        memo = validate_memo(normalize_text(memo))
        image_url = validate_image_url(normalize_text(image_url))
        label = resolve_rating(rating, strict=self.strict_ratings)

        # 保存済みなら取得しに行かない (挿入時の一意制約は同時保存用)
        if crud.get_recipe_by_url(self.db, url) is not None:
            raise DuplicateRecipeError()

        meta = self._try_fetch(url)
        if meta is not None:
            title = title or meta.title
            image_url = image_url or meta.image

        return crud.create_recipe(
            self.db,
            {
                "url": url,
                "title": title,
                "memo": memo,
                "rating": label,
                "image_url": image_url,
            },
        )

    def update_recipe(self, recipe_id: str, update: schemas.RecipeUpdate) -> models.Recipe:
        fields = update.provided()
        if not fields:
            raise ValidationError("At least one field must be provided for update")

        changes = {}
        if "url" in fields:
            changes["url"] = validate_url(normalize_text(fields["url"]))
        if "title" in fields:
            changes["title"] = validate_title(normalize_text(fields["title"]))
        if "memo" in fields:
            changes["memo"] = validate_memo(normalize_text(fields["memo"]))
        if "rating" in fields:
            changes["rating"] = resolve_rating(fields["rating"], strict=self.strict_ratings)
        if "image_url" in fields:
            changes["image_url"] = validate_image_url(normalize_text(fields["image_url"]))

        return crud.update_recipe(self.db, recipe_id, changes)

    def delete_recipe(self, recipe_id: str) -> schemas.Recipe:
        return crud.delete_recipe(self.db, recipe_id)

    # =========================
    # Read path
    # =========================
    def list_recipes(self, q: Optional[str] = None, sort: Optional[str] = None) -> List[models.Recipe]:
        sort = sort or "date-desc"
        if sort not in SORT_KEYS:
            raise ValidationError(f"Invalid sort. Must be one of: {', '.join(SORT_KEYS)}")

        recipes = crud.list_recipes(self.db)

        term = (q or "").strip().lower()
        if term:
            recipes = [
                r for r in recipes
                if any(
                    term in (s or "").lower()
                    for s in (_display_title(r), r.domain, r.memo, r.rating)
                )
            ]

        if sort == "date-asc":
            recipes.reverse()
        elif sort == "title":
            recipes.sort(key=lambda r: _display_title(r).lower())
        elif sort == "rating-desc":
            recipes.sort(key=lambda r: label_to_value(r.rating), reverse=True)
        elif sort == "rating-asc":
            recipes.sort(key=lambda r: label_to_value(r.rating))
        return recipes

