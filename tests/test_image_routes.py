"""API tests for image serving, detail, remix, delete and user galleries."""

import pytest

from animegen.services.exceptions import StorageError
from tests.helpers import PNG_BYTES, auth, make_image


class TestServe:
    @pytest.mark.asyncio
    async def test_serves_blob_with_cache_headers(self, test_client, uow_factory, blob_store, user):
        image = await make_image(uow_factory, blob_store, user)

        response = await test_client.get(f"/v1/serve/{image.storage_key}")

        assert response.status_code == 200
        assert response.content == PNG_BYTES
        assert response.headers["content-type"] == "image/png"
        assert response.headers["cache-control"] == "public, max-age=31536000"
        assert response.headers["etag"] == blob_store.objects[image.storage_key].etag

    @pytest.mark.asyncio
    async def test_missing_blob_returns_404(self, test_client):
        response = await test_client.get("/v1/serve/images/2025/01/missing.png")

        assert response.status_code == 404
        assert response.json() == {"error": "Image not found"}


class TestImageDetail:
    @pytest.mark.asyncio
    async def test_detail_includes_tags_owner_and_like_state(
        self, test_client, uow_factory, blob_store, user, other_user
    ):
        image = await make_image(uow_factory, blob_store, user)
        await test_client.post("/v1/like", json={"imageId": image.id}, headers=auth(other_user))

        response = await test_client.get(f"/v1/images/{image.id}", headers=auth(other_user))

        assert response.status_code == 200
        detail = response.json()["image"]
        assert detail["id"] == image.id
        assert detail["tags"] == ["anime", "mage"]
        assert detail["isLiked"] is True
        assert detail["likeCount"] == 1
        assert detail["user"]["handle"] == "sakura"
        assert detail["user"]["isAnonymous"] is False
        assert detail["url"] == f"http://test/v1/serve/{image.storage_key}"

    @pytest.mark.asyncio
    async def test_anonymous_viewer_is_not_liked(self, test_client, uow_factory, blob_store, user):
        image = await make_image(uow_factory, blob_store, user)

        response = await test_client.get(f"/v1/images/{image.id}")

        assert response.json()["image"]["isLiked"] is False

    @pytest.mark.asyncio
    async def test_private_image_visible_to_owner_only(
        self, test_client, uow_factory, blob_store, user, other_user
    ):
        image = await make_image(uow_factory, blob_store, user, is_private=True)

        owner_view = await test_client.get(f"/v1/images/{image.id}", headers=auth(user))
        other_view = await test_client.get(f"/v1/images/{image.id}", headers=auth(other_user))
        anonymous_view = await test_client.get(f"/v1/images/{image.id}")

        assert owner_view.status_code == 200
        assert other_view.status_code == 404
        assert anonymous_view.status_code == 404

    @pytest.mark.asyncio
    async def test_unknown_image_returns_404(self, test_client):
        response = await test_client.get("/v1/images/nope")

        assert response.status_code == 404


class TestRemix:
    @pytest.mark.asyncio
    async def test_remix_creates_image_with_parent(
        self, test_client, uow_factory, blob_store, user, other_user
    ):
        parent = await make_image(uow_factory, blob_store, other_user)

        response = await test_client.post(
            "/v1/images/remix",
            json={"prompt": "same mage, at night", "parentImageId": parent.id},
            headers=auth(user),
        )

        assert response.status_code == 200
        body = response.json()
        assert body["parentImageId"] == parent.id
        assert body["message"].startswith("Remix generation started")
        assert "X-RateLimit-Remaining" in response.headers

        job = (await test_client.get(f"/v1/generate/status/{body['jobId']}")).json()
        detail = (await test_client.get(f"/v1/images/{job['image']['id']}")).json()["image"]
        assert detail["parentId"] == parent.id
        assert detail["user"]["id"] == user.id

    @pytest.mark.asyncio
    async def test_remix_requires_identity(self, test_client, uow_factory, blob_store, user):
        parent = await make_image(uow_factory, blob_store, user)

        response = await test_client.post(
            "/v1/images/remix", json={"prompt": "again", "parentImageId": parent.id}
        )

        assert response.status_code == 401
        assert response.json() == {"error": "Authentication required"}

    @pytest.mark.asyncio
    async def test_remix_of_missing_parent_returns_404(self, test_client, user):
        response = await test_client.post(
            "/v1/images/remix",
            json={"prompt": "again", "parentImageId": "missing"},
            headers=auth(user),
        )

        assert response.status_code == 404
        assert response.json() == {"error": "Parent image not found"}

    @pytest.mark.asyncio
    async def test_remix_of_private_parent_returns_403(
        self, test_client, uow_factory, blob_store, user, other_user
    ):
        parent = await make_image(uow_factory, blob_store, other_user, is_private=True)

        response = await test_client.post(
            "/v1/images/remix",
            json={"prompt": "again", "parentImageId": parent.id},
            headers=auth(user),
        )

        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_remix_validates_generation_parameters(
        self, test_client, uow_factory, blob_store, user
    ):
        parent = await make_image(uow_factory, blob_store, user)

        response = await test_client.post(
            "/v1/images/remix",
            json={"prompt": "again", "parentImageId": parent.id, "steps": 100},
            headers=auth(user),
        )

        assert response.status_code == 400


class TestDelete:
    @pytest.mark.asyncio
    async def test_owner_deletes_image_row_blob_and_count(
        self, test_client, uow_factory, blob_store, user
    ):
        image = await make_image(uow_factory, blob_store, user)

        response = await test_client.delete(f"/v1/images/{image.id}", headers=auth(user))

        assert response.status_code == 200
        assert response.json() == {"success": True}
        assert image.storage_key not in blob_store.objects

        async with await uow_factory() as uow:
            assert await uow.images.get_by_id(image.id) is None
            owner = await uow.users.get_by_id(user.id)
        assert owner.image_count == 0

        gallery = (await test_client.get(f"/v1/user/{user.id}", headers=auth(user))).json()
        assert gallery["images"] == []

    @pytest.mark.asyncio
    async def test_delete_removes_likes_and_comments(
        self, test_client, uow_factory, blob_store, user, other_user
    ):
        image = await make_image(uow_factory, blob_store, user)
        await test_client.post("/v1/like", json={"imageId": image.id}, headers=auth(other_user))
        await test_client.post(
            "/v1/comment", json={"imageId": image.id, "content": "nice"}, headers=auth(other_user)
        )

        response = await test_client.delete(f"/v1/images/{image.id}", headers=auth(user))

        assert response.status_code == 200
        comments = await test_client.get(f"/v1/comments/{image.id}")
        assert comments.status_code == 404

    @pytest.mark.asyncio
    async def test_blob_delete_failure_still_deletes_row(
        self, test_client, uow_factory, blob_store, user
    ):
        image = await make_image(uow_factory, blob_store, user)
        blob_store.delete_error = StorageError("bucket unavailable")

        response = await test_client.delete(f"/v1/images/{image.id}", headers=auth(user))

        assert response.status_code == 200
        async with await uow_factory() as uow:
            assert await uow.images.get_by_id(image.id) is None

    @pytest.mark.asyncio
    async def test_delete_requires_identity(self, test_client, uow_factory, blob_store, user):
        image = await make_image(uow_factory, blob_store, user)

        response = await test_client.delete(f"/v1/images/{image.id}")

        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_non_owner_cannot_delete(
        self, test_client, uow_factory, blob_store, user, other_user
    ):
        image = await make_image(uow_factory, blob_store, user)

        response = await test_client.delete(f"/v1/images/{image.id}", headers=auth(other_user))

        assert response.status_code == 403
        assert response.json() == {"error": "Not authorized"}
        assert image.storage_key in blob_store.objects

    @pytest.mark.asyncio
    async def test_delete_unknown_image_returns_404(self, test_client, user):
        response = await test_client.delete("/v1/images/nope", headers=auth(user))

        assert response.status_code == 404


class TestUserGallery:
    @pytest.mark.asyncio
    async def test_private_images_only_listed_for_owner(
        self, test_client, uow_factory, blob_store, user, other_user
    ):
        await make_image(uow_factory, blob_store, user, prompt="public one")
        await make_image(uow_factory, blob_store, user, is_private=True, prompt="secret")

        own = (await test_client.get(f"/v1/user/{user.id}", headers=auth(user))).json()
        other = (await test_client.get(f"/v1/user/{user.id}", headers=auth(other_user))).json()

        assert {image["prompt"] for image in own["images"]} == {"public one", "secret"}
        assert [image["prompt"] for image in other["images"]] == ["public one"]

    @pytest.mark.asyncio
    async def test_pagination(self, test_client, uow_factory, blob_store, user):
        for i in range(3):
            await make_image(uow_factory, blob_store, user, prompt=f"image {i}")

        first = (await test_client.get(f"/v1/user/{user.id}?page=1&limit=2")).json()
        second = (await test_client.get(f"/v1/user/{user.id}?page=2&limit=2")).json()

        assert len(first["images"]) == 2
        assert first["pagination"] == {"page": 1, "limit": 2, "hasNext": True}
        assert len(second["images"]) == 1
        assert second["pagination"]["hasNext"] is False

    @pytest.mark.asyncio
    async def test_limit_is_capped(self, test_client, user):
        response = await test_client.get(f"/v1/user/{user.id}?limit=500")

        assert response.json()["pagination"]["limit"] == 50
