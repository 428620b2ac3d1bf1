import pytest

import crud
import schemas
from errors import (
    DuplicateRecipeError,
    FetchTimeoutError,
    HostUnresolvableError,
    ValidationError,
)
from metadata import PageMetadata
from services import RecipeService


@pytest.fixture
def service(db, fetcher):
    return RecipeService(db, fetcher)


def test_save_survives_fetch_timeout_and_keeps_callers_title(service, fetcher):
    fetcher.error = FetchTimeoutError()
    r = service.save_recipe("https://example.com/r1", title="My Title")
    assert r.title == "My Title"
    assert fetcher.calls == ["https://example.com/r1"]


def test_save_with_blank_inputs(service, fetcher):
    fetcher.error = HostUnresolvableError()
    r = service.save_recipe("https://example.com/r1", "", "", None)
    out = schemas.Recipe.model_validate(r)
    assert out.rating == "undecided"
    assert out.rating_value == 1
    assert out.domain == "example.com"
    assert out.title is None
    assert out.memo is None
    assert out.display_title == "example.com"


def test_fetched_metadata_fills_title_and_image(service, fetcher):
    fetcher.result = PageMetadata(
        title="Fetched", description="d", image="https://cdn.example.com/i.jpg", domain="example.com"
    )
    r = service.save_recipe("https://example.com/r1")
    assert r.title == "Fetched"
    assert r.image_url == "https://cdn.example.com/i.jpg"


def test_caller_fields_win_over_fetched(service, fetcher):
    fetcher.result = PageMetadata(title="Fetched", image="https://cdn.example.com/i.jpg")
    r = service.save_recipe(
        "https://example.com/r1", title="Mine", image_url="https://img.example.com/mine.png"
    )
    assert r.title == "Mine"
    assert r.image_url == "https://img.example.com/mine.png"


def test_unexpected_parser_failure_does_not_block_save(service, fetcher):
    fetcher.error = RuntimeError("parser blew up")
    assert service.save_recipe("https://example.com/r1", title="Still").title == "Still"


def test_invalid_url_fails_before_fetching(service, fetcher):
    with pytest.raises(ValidationError):
        service.save_recipe("notaurl")
    assert fetcher.calls == []


def test_save_rating_resolution(service):
    assert service.save_recipe("https://example.com/a", rating=5).rating == "would repeat"
    assert service.save_recipe("https://example.com/b", rating="okay").rating == "okay"
    assert service.save_recipe("https://example.com/c", rating="bogus").rating == "undecided"


def test_save_duplicate(service):
    service.save_recipe("https://example.com/r1")
    with pytest.raises(DuplicateRecipeError) as info:
        service.save_recipe("https://example.com/r1")
    assert info.value.kind == "conflict"


def test_update_rating_goes_through_value_table(service):
    r = service.save_recipe("https://example.com/r1")
    assert service.update_recipe(r.id, schemas.RecipeUpdate(rating=4)).rating == "satisfied"
    assert service.update_recipe(r.id, schemas.RecipeUpdate(rating=9)).rating == "undecided"


def test_update_rating_strict_policy_rejects(db, fetcher):
    strict = RecipeService(db, fetcher, strict_ratings=True)
    r = strict.save_recipe("https://example.com/r1")
    with pytest.raises(ValidationError):
        strict.update_recipe(r.id, schemas.RecipeUpdate(rating=9))
    assert crud.get_recipe(db, r.id).rating == "undecided"


def test_update_requires_a_field(service):
    r = service.save_recipe("https://example.com/r1")
    with pytest.raises(ValidationError):
        service.update_recipe(r.id, schemas.RecipeUpdate())


def test_update_memo_blank_clears_it(service):
    r = service.save_recipe("https://example.com/r1", memo="note")
    assert service.update_recipe(r.id, schemas.RecipeUpdate(memo="   ")).memo is None


def test_update_rejects_invalid_url(service):
    r = service.save_recipe("https://example.com/r1")
    with pytest.raises(ValidationError):
        service.update_recipe(r.id, schemas.RecipeUpdate(url="ftp://example.com"))


def test_preview_of_existing_recipe(service, fetcher):
    service.save_recipe("https://example.com/r1", title="Saved", memo="with rice")
    fetcher.calls.clear()
    info = service.extract_preview_metadata("https://example.com/r1")
    assert info.is_existing is True
    assert info.title == "Saved"
    assert info.description == "Memo: with rice"
    assert fetcher.calls == []


def test_preview_of_existing_recipe_without_memo(service):
    service.save_recipe("https://example.com/r1", rating=4)
    info = service.extract_preview_metadata("https://example.com/r1")
    assert info.description == "Saved recipe (rating: satisfied)"


def test_preview_uses_live_fetch(service, fetcher):
    fetcher.result = PageMetadata(title="Live", description="fresh", domain="example.com")
    info = service.extract_preview_metadata("https://example.com/new")
    assert info.is_existing is False
    assert info.title == "Live"


def test_preview_falls_back_to_domain(service, fetcher):
    fetcher.error = FetchTimeoutError()
    info = service.extract_preview_metadata("https://www.example.org/recipe/1")
    assert info.title == "example.org recipe"
    assert info.description.startswith("Recipe from www.example.org.")
    assert info.domain == "www.example.org"
    assert info.is_existing is False


@pytest.mark.parametrize(
    "url, title",
    [
        ("https://cookpad.com/recipe/1", "Cookpad recipe"),
        ("https://www.kurashiru.com/recipes/abc", "Kurashiru recipe"),
        ("https://delishkitchen.tv/recipes/1", "DELISH KITCHEN recipe"),
        ("https://recipe.rakuten.co.jp/recipe/1/", "Rakuten recipe"),
        ("https://www.kyounoryouri.jp/recipe/1.html", "Kyou no Ryouri recipe"),
    ],
)
def test_preview_fallback_names_known_sites(service, fetcher, url, title):
    fetcher.error = FetchTimeoutError()
    info = service.extract_preview_metadata(url)
    assert info.title == title
    assert info.image is None


def test_preview_of_unusable_url_is_none(service):
    assert service.extract_preview_metadata("") is None
    assert service.extract_preview_metadata("ftp://example.com") is None


def test_extract_metadata_validates_and_propagates(service, fetcher):
    with pytest.raises(ValidationError, match="URL parameter is required"):
        service.extract_metadata(None)
    with pytest.raises(ValidationError, match="Invalid URL format"):
        service.extract_metadata("invalid-url")
    fetcher.error = FetchTimeoutError()
    with pytest.raises(FetchTimeoutError):
        service.extract_metadata("https://example.com")


def test_list_search_and_sort(service):
    service.save_recipe("https://a.example/1", title="Banana Bread", rating=2)
    service.save_recipe("https://b.example/2", title="Apple Pie", rating=5)
    service.save_recipe("https://c.example/3", title="Cherry Tart", memo="banana on top", rating=3)

    assert [r.title for r in service.list_recipes(q="banana")] == ["Cherry Tart", "Banana Bread"]
    assert [r.title for r in service.list_recipes(sort="title")] == ["Apple Pie", "Banana Bread", "Cherry Tart"]
    assert [r.title for r in service.list_recipes(sort="rating-desc")][0] == "Apple Pie"
    assert [r.title for r in service.list_recipes(sort="rating-asc")][0] == "Banana Bread"
    with pytest.raises(ValidationError):
        service.list_recipes(sort="random")


def test_duplicate_save_does_not_fetch(service, fetcher):
    service.save_recipe("https://example.com/r1")
    fetcher.calls.clear()
    with pytest.raises(DuplicateRecipeError):
        service.save_recipe("https://example.com/r1", title="again")
    assert fetcher.calls == []


def test_image_url_length_is_limited(service, fetcher):
    with pytest.raises(ValidationError, match="too long"):
        service.save_recipe("https://example.com/r1", image_url="https://cdn.example.com/" + "i" * 3000)
    assert fetcher.calls == []

    r = service.save_recipe("https://example.com/r2")
    with pytest.raises(ValidationError):
        service.update_recipe(
            r.id, schemas.RecipeUpdate(image_url="https://cdn.example.com/" + "i" * 3000)
        )
