"""
Tests for the FastAPI application: routing, status codes and error payloads
"""

import sqlite3

import pytest
from conftest import ALICE, BOB, CAROL

from recipeshare.models.requests import GrantCreate, RecipeCreate, RecipeUpdate


class TestApplicationBootstrap:
    """Test basic application startup and configuration"""

    def test_health_endpoint(self, test_client_with_app):
        client, _ = test_client_with_app
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_root_endpoint(self, test_client_with_app):
        client, _ = test_client_with_app
        response = client.get("/")
        assert response.status_code == 200
        assert "Recipe Share API" in response.json()["message"]

    def test_cors_headers(self, test_client_with_app):
        client, _ = test_client_with_app
        response = client.get("/health")
        assert response.headers["Access-Control-Allow-Origin"] == "*"

    def test_unauthenticated_request_rejected(self, test_client_with_app):
        client, _ = test_client_with_app
        response = client.get("/shared")
        assert response.status_code == 401
        assert response.json()["error"] == "HTTP Error"


class TestModelsAndValidation:
    """Test Pydantic request models"""

    def test_recipe_create_model(self):
        recipe = RecipeCreate(title="Dal", description="Lentils")
        assert recipe.is_favorite is False

    def test_recipe_update_model_tracks_set_fields(self):
        update = RecipeUpdate(title="Better Dal")
        assert update.model_dump(exclude_unset=True) == {"title": "Better Dal"}

    def test_grant_create_defaults_to_private(self):
        grant = GrantCreate(email="bob@example.com")
        assert grant.is_public is False


class TestRecipeRoutes:
    def test_create_and_get_recipe(self, login):
        client = login(ALICE)

        created = client.post("/recipes", json={"title": "Dal", "description": "Lentils"})
        assert created.status_code == 201
        recipe = created.json()
        assert recipe["owner_id"] == ALICE.id

        fetched = client.get(f"/recipes/{recipe['id']}")
        assert fetched.status_code == 200
        assert fetched.json()["recipe"]["title"] == "Dal"
        assert fetched.json()["is_owner"] is True

    def test_create_recipe_validation_error(self, login):
        client = login(ALICE)

        response = client.post("/recipes", json={"title": ""})

        assert response.status_code == 422
        assert response.json()["error"] == "Validation Error"

    def test_private_recipe_is_not_found_for_others(self, login, make_recipe):
        recipe = make_recipe()
        client = login(BOB)

        assert client.get(f"/recipes/{recipe.id}").status_code == 404
        access = client.get(f"/recipes/{recipe.id}/access")
        assert access.status_code == 200
        assert access.json() == {"recipe_id": recipe.id, "can_view": False}

    def test_update_by_non_owner_forbidden(self, login, make_recipe):
        recipe = make_recipe()
        client = login(BOB)

        response = client.put(f"/recipes/{recipe.id}", json={"title": "Mine now"})

        assert response.status_code == 403

    def test_update_recipe(self, login, make_recipe):
        recipe = make_recipe()
        client = login(ALICE)

        response = client.put(f"/recipes/{recipe.id}", json={"title": "Waffles"})

        assert response.status_code == 200
        assert response.json()["title"] == "Waffles"

    def test_update_recipe_null_clears_field(self, login, make_recipe):
        recipe = make_recipe(description="Fluffy", instructions="Whisk")
        client = login(ALICE)

        response = client.put(f"/recipes/{recipe.id}", json={"description": None})

        assert response.status_code == 200
        assert response.json()["description"] is None
        assert response.json()["instructions"] == "Whisk"
        assert response.json()["title"] == recipe.title

    def test_update_recipe_null_title_rejected(self, login, make_recipe):
        recipe = make_recipe()
        client = login(ALICE)

        response = client.put(f"/recipes/{recipe.id}", json={"title": None})

        assert response.status_code == 400

    def test_delete_recipe(self, login, make_recipe):
        recipe = make_recipe()
        client = login(ALICE)

        assert client.delete(f"/recipes/{recipe.id}").status_code == 200
        assert client.delete(f"/recipes/{recipe.id}").status_code == 404

    def test_list_my_recipes_favorites_first(self, login, make_recipe):
        first = make_recipe(title="First")
        second = make_recipe(title="Second")
        make_recipe(owner=BOB, title="Bob's")
        client = login(ALICE)

        assert client.put(f"/recipes/{first.id}/favorite", json={"is_favorite": True}).status_code == 200
        response = client.get("/recipes")

        assert response.status_code == 200
        body = response.json()
        assert [row["id"] for row in body["rows"]] == [first.id, second.id]
        assert body["total_count"] == 2

    def test_recipe_tags(self, login, make_recipe):
        recipe = make_recipe()
        client = login(ALICE)

        added = client.post(f"/recipes/{recipe.id}/tags", json={"name": "Vegan"})
        assert added.status_code == 201
        tag_id = added.json()["id"]

        assert client.delete(f"/recipes/{recipe.id}/tags/{tag_id}").status_code == 200
        assert client.delete(f"/recipes/{recipe.id}/tags/{tag_id}").status_code == 404


class TestSharingRoutes:
    def test_share_with_email_then_public(self, login, make_recipe):
        recipe = make_recipe(title="Lasagne")

        client = login(ALICE)
        shared = client.post(f"/recipes/{recipe.id}/grants", json={"email": "Bob@Example.com"})
        assert shared.status_code == 201
        assert shared.json()["grantee_email"] == BOB.email

        client = login(BOB)
        bob_rows = client.get("/shared").json()["rows"]
        assert [row["recipe_id"] for row in bob_rows] == [recipe.id]
        assert bob_rows[0]["shared_with_me"] is True

        client = login(CAROL)
        assert client.get("/shared").json()["rows"] == []

        client = login(ALICE)
        assert client.post(f"/recipes/{recipe.id}/grants", json={"is_public": True}).status_code == 201

        client = login(CAROL)
        carol_rows = client.get("/shared").json()["rows"]
        assert [row["recipe_id"] for row in carol_rows] == [recipe.id]
        assert carol_rows[0]["is_public"] is True

    def test_duplicate_grant_conflict(self, login, make_recipe):
        recipe = make_recipe()
        client = login(ALICE)

        client.post(f"/recipes/{recipe.id}/grants", json={"email": BOB.email})
        response = client.post(f"/recipes/{recipe.id}/grants", json={"email": BOB.email})

        assert response.status_code == 409

    def test_grant_needs_exactly_one_target(self, login, make_recipe):
        recipe = make_recipe()
        client = login(ALICE)

        neither = client.post(f"/recipes/{recipe.id}/grants", json={})
        both = client.post(
            f"/recipes/{recipe.id}/grants", json={"email": BOB.email, "is_public": True}
        )

        assert neither.status_code == 400
        assert both.status_code == 400

    def test_non_owner_cannot_share(self, login, make_recipe):
        recipe = make_recipe()
        client = login(BOB)

        response = client.post(f"/recipes/{recipe.id}/grants", json={"is_public": True})

        assert response.status_code == 403

    def test_share_missing_recipe(self, login):
        client = login(ALICE)

        response = client.post("/recipes/999/grants", json={"is_public": True})

        assert response.status_code == 404

    def test_list_and_revoke_grants(self, login, make_recipe):
        recipe = make_recipe()
        client = login(ALICE)
        grant_id = client.post(
            f"/recipes/{recipe.id}/grants", json={"email": BOB.email}
        ).json()["id"]

        listed = client.get(f"/recipes/{recipe.id}/grants")
        assert [grant["id"] for grant in listed.json()] == [grant_id]

        client = login(BOB)
        assert client.get(f"/recipes/{recipe.id}/grants").status_code == 403
        assert client.delete(f"/grants/{grant_id}").status_code == 403

        client = login(ALICE)
        assert client.delete(f"/grants/{grant_id}").status_code == 200
        assert client.delete(f"/grants/{grant_id}").status_code == 404

        client = login(BOB)
        assert client.get("/shared").json()["rows"] == []

    def test_unshare_by_email_and_make_private(self, login, make_recipe):
        recipe = make_recipe()
        client = login(ALICE)
        client.post(f"/recipes/{recipe.id}/grants", json={"email": BOB.email})
        client.post(f"/recipes/{recipe.id}/grants", json={"is_public": True})

        by_email = client.delete(f"/recipes/{recipe.id}/grants", params={"email": BOB.email})
        private = client.delete(f"/recipes/{recipe.id}/grants", params={"public": "true"})

        assert by_email.status_code == 200
        assert private.status_code == 200
        assert client.get(f"/recipes/{recipe.id}/grants").json() == []

    def test_unshare_requires_email_or_public(self, login, make_recipe):
        recipe = make_recipe()
        client = login(ALICE)

        assert client.delete(f"/recipes/{recipe.id}/grants").status_code == 400


class TestSharedListingRoutes:
    def test_tag_filter_and_search(self, login, make_recipe):
        soup = make_recipe(title="Tomato Soup")
        bread = make_recipe(title="Bread")
        client = login(ALICE)
        tag_id = client.post(f"/recipes/{soup.id}/tags", json={"name": "winter"}).json()["id"]
        for recipe_id in (soup.id, bread.id):
            client.post(f"/recipes/{recipe_id}/grants", json={"is_public": True})

        client = login(BOB)
        by_tag = client.get("/shared", params={"tags": str(tag_id)}).json()
        by_search = client.get("/shared", params={"q": "tomato"}).json()

        assert [row["recipe_id"] for row in by_tag["rows"]] == [soup.id]
        assert by_tag["rows"][0]["tag_names"] == ["winter"]
        assert [row["recipe_id"] for row in by_search["rows"]] == [soup.id]

    def test_bad_tag_list_rejected(self, login):
        client = login(BOB)

        response = client.get("/shared", params={"tags": "1,abc"})

        assert response.status_code == 400

    @pytest.mark.parametrize("params", [{"limit": 0}, {"limit": 500}, {"offset": -1}])
    def test_bad_page_rejected(self, login, params):
        client = login(BOB)

        assert client.get("/shared", params=params).status_code == 400

    def test_pagination_flags(self, login, make_recipe):
        client = login(ALICE)
        for i in range(3):
            recipe = make_recipe(title=f"Recipe {i}")
            client.post(f"/recipes/{recipe.id}/grants", json={"is_public": True})

        client = login(BOB)
        body = client.get("/shared", params={"limit": 2}).json()

        assert len(body["rows"]) == 2
        assert body["has_more"] is True
        assert body["total_count"] == 3


class TestTagRoutes:
    def test_create_list_and_search(self, login):
        client = login(ALICE)

        first = client.post("/tags", json={"name": "Vegan"})
        again = client.post("/tags", json={"name": "vegan"})

        assert first.status_code == 201
        assert again.json()["id"] == first.json()["id"]
        assert [tag["name"] for tag in client.get("/tags").json()] == ["Vegan"]
        assert [tag["name"] for tag in client.get("/tags/search", params={"q": "VEG"}).json()] == ["Vegan"]

    def test_delete_requires_admin(self, login):
        client = login(ALICE)
        tag_id = client.post("/tags", json={"name": "Vegan"}).json()["id"]

        assert client.delete(f"/tags/{tag_id}").status_code == 403

        client = login(ALICE, groups=["admin"])
        assert client.delete(f"/tags/{tag_id}").status_code == 200
        assert client.delete(f"/tags/{tag_id}").status_code == 404


class TestProfileRoutes:
    def test_profile_round_trip(self, login):
        client = login(ALICE, email_verified=True)

        assert client.get("/profiles/me").status_code == 404

        saved = client.put("/profiles/me", json={"full_name": "Alice Baker"})
        assert saved.status_code == 200
        assert saved.json()["email"] == ALICE.email
        assert saved.json()["is_verified"] is True

        assert client.get("/profiles/me").json()["full_name"] == "Alice Baker"

    def test_author_name_shows_in_shared_listing(self, login, make_recipe):
        recipe = make_recipe()
        client = login(ALICE)
        client.post(f"/recipes/{recipe.id}/grants", json={"is_public": True})
        client.put("/profiles/me", json={"full_name": "Alice Baker"})

        client = login(BOB)
        assert client.get("/shared").json()["rows"][0]["author_name"] == "Alice Baker"


class TestAdminRoutes:
    def test_cache_status_requires_admin(self, login):
        client = login(ALICE)

        assert client.get("/admin/cache/status").status_code == 403

    def test_cache_status(self, login):
        client = login(ALICE, groups=["admin"])

        response = client.get("/admin/cache/status")

        assert response.status_code == 200
        body = response.json()
        assert body["state"] == "idle"
        assert body["version"] >= 1
        assert body["stale"] is False

    def test_manual_refresh(self, login):
        client = login(ALICE, groups=["admin"])
        before = client.get("/admin/cache/status").json()["version"]

        response = client.post("/admin/cache/refresh")

        assert response.status_code == 200
        assert response.json()["version"] == before + 1
        assert response.json()["last_mode"] == "concurrent"

    def test_failed_refresh_returns_503(self, login, app_services, monkeypatch):
        def failing_load():
            raise sqlite3.OperationalError("disk I/O error")

        monkeypatch.setattr(app_services.db, "load_source_state", failing_load)
        client = login(ALICE, groups=["admin"])

        response = client.post("/admin/cache/refresh")

        assert response.status_code == 503
        assert "disk I/O error" in response.json()["detail"]
