import unittest

from fastapi.testclient import TestClient

from stories_backend.app import create_app
from stories_backend.cache import InMemoryCacheClient
from stories_backend.config import get_settings
from stories_backend.db import InMemoryDbClient
from stories_backend.dependencies import get_cache_client, get_db_client, get_storage_client
from stories_backend.storage import InMemoryStorageClient
from stories_backend.tests.helpers import make_settings, png_bytes

ADMIN = {"X-User-Id": "admin-1", "X-User-Role": "Admin"}
READER = {"X-User-Id": "reader-1", "X-User-Role": "User"}


class StoriesApiTests(unittest.TestCase):
    def setUp(self):
        self.db = InMemoryDbClient()
        self.cache = InMemoryCacheClient()
        self.storage = InMemoryStorageClient()
        app = create_app()
        app.dependency_overrides[get_settings] = lambda: make_settings()
        app.dependency_overrides[get_db_client] = lambda: self.db
        app.dependency_overrides[get_cache_client] = lambda: self.cache
        app.dependency_overrides[get_storage_client] = lambda: self.storage
        self.client = TestClient(app)

    def _create_category(self, name="Prophets"):
        response = self.client.post(
            "/api/admin/categories",
            data={"name": name},
            files={"image": ("cover.png", png_bytes(), "image/png")},
            headers=ADMIN,
        )
        self.assertEqual(response.status_code, 201, response.text)
        return response.json()

    def _create_story(self, category_id, title="Adam", description="First"):
        response = self.client.post(
            "/api/admin/stories",
            data={"title": title, "description": description, "category_id": category_id},
            files={"file": ("thumb.png", png_bytes((20, 20, 200)), "image/png")},
            headers=ADMIN,
        )
        self.assertEqual(response.status_code, 201, response.text)
        return response.json()

    def test_admin_routes_require_identity_and_role(self):
        response = self.client.post("/api/admin/categories", data={"name": "x"})
        self.assertEqual(response.status_code, 401)
        response = self.client.post(
            "/api/admin/categories", data={"name": "x"}, headers=READER
        )
        self.assertEqual(response.status_code, 403)

    def test_category_lifecycle(self):
        category = self._create_category()
        self.assertTrue(category["image_url"].endswith(".png"))

        listed = self.client.get("/api/categories").json()
        self.assertEqual([c["id"] for c in listed], [category["id"]])

        duplicate = self.client.post(
            "/api/admin/categories", data={"name": "Prophets"}, headers=ADMIN
        )
        self.assertEqual(duplicate.status_code, 409)

        renamed = self.client.put(
            f"/api/admin/categories/{category['id']}", data={"name": "Messengers"}, headers=ADMIN
        )
        self.assertEqual(renamed.json()["name"], "Messengers")
        self.assertEqual(renamed.json()["image_url"], category["image_url"])

        deleted = self.client.delete(f"/api/admin/categories/{category['id']}", headers=ADMIN)
        self.assertEqual(deleted.status_code, 200)
        self.assertEqual(self.client.get(f"/api/categories/{category['id']}").status_code, 404)

    def test_story_lifecycle(self):
        category = self._create_category()
        story = self._create_story(category["id"])
        self.assertEqual(story["status"], "Draft")
        self.assertEqual(story["category_id"], category["id"])

        slide = self.client.post(
            f"/api/admin/stories/{story['id']}/slides",
            data={"content": "In the beginning", "sequence": "1"},
            files={"file": ("s.png", png_bytes(), "image/png")},
            headers=ADMIN,
        )
        self.assertEqual(slide.status_code, 201, slide.text)

        fetched = self.client.get(f"/api/stories/{story['id']}").json()
        self.assertEqual(fetched["slide_count"], 1)
        self.assertEqual(fetched["slides"][0]["content"], "In the beginning")

        page = self.client.get("/api/stories", params={"page": 1, "limit": 5, "sort": "title asc"})
        self.assertEqual([s["id"] for s in page.json()], [story["id"]])

        published = self.client.put(
            f"/api/admin/stories/{story['id']}", data={"status": "Published"}, headers=ADMIN
        )
        self.assertEqual(published.json()["status"], "Published")

        found = self.client.get("/api/search/stories", params={"q": "adam"}).json()
        self.assertEqual([s["id"] for s in found], [story["id"]])

        self.assertEqual(
            self.client.delete(f"/api/admin/stories/{story['id']}", headers=ADMIN).status_code, 200
        )
        self.assertEqual(self.client.get(f"/api/stories/{story['id']}").status_code, 404)
        # Only the category image is left.
        self.assertEqual(len(self.storage.stored_objects), 1)

    def test_error_mapping(self):
        category = self._create_category()
        self._create_story(category["id"])

        duplicate = self.client.post(
            "/api/admin/stories",
            data={"title": "Adam", "description": "First", "category_id": category["id"]},
            headers=ADMIN,
        )
        self.assertEqual(duplicate.status_code, 409)

        unknown_category = self.client.post(
            "/api/admin/stories",
            data={"title": "Nuh", "description": "Ark", "category_id": "missing"},
            headers=ADMIN,
        )
        self.assertEqual(unknown_category.status_code, 404)

        bad_sort = self.client.get("/api/stories", params={"sort": "password desc"})
        self.assertEqual(bad_sort.status_code, 400)
        self.assertIn("invalid sort", bad_sort.json()["detail"])

        self.assertEqual(self.client.get("/api/search/categories").status_code, 400)

    def test_chapter_routes(self):
        category = self._create_category()
        story = self._create_story(category["id"])

        chapter = self.client.post(
            "/api/admin/chapters", json={"story_id": story["id"]}, headers=ADMIN
        )
        self.assertEqual(chapter.status_code, 201, chapter.text)
        chapter_id = chapter.json()["id"]

        missing_image = self.client.post(
            f"/api/admin/chapters/{chapter_id}/slides",
            data={"content": "c", "sequence": "1"},
            headers=ADMIN,
        )
        self.assertEqual(missing_image.status_code, 422)

        slide = self.client.post(
            f"/api/admin/chapters/{chapter_id}/slides",
            data={"content": "c", "sequence": "1"},
            files={"image": ("s.png", png_bytes(), "image/png")},
            headers=ADMIN,
        )
        self.assertEqual(slide.status_code, 201, slide.text)

        fetched = self.client.get(f"/api/chapters/{chapter_id}").json()
        self.assertEqual(fetched["story_id"], story["id"])
        self.assertEqual(len(fetched["slides"]), 1)

        self.assertEqual(
            self.client.delete(f"/api/admin/chapters/{chapter_id}", headers=ADMIN).status_code, 200
        )
        self.assertEqual(self.client.get(f"/api/chapters/{chapter_id}").status_code, 404)

    def test_preferences(self):
        first = self._create_category("Prophets")
        second = self._create_category("Companions")

        self.assertEqual(self.client.get("/api/preferences").status_code, 401)

        saved = self.client.post(
            "/api/preferences",
            json={"story_categories": [first["id"], "missing"], "hadist_categories": [second["id"]]},
            headers=READER,
        )
        self.assertEqual(saved.status_code, 200, saved.text)
        self.assertEqual([c["id"] for c in saved.json()["story_categories"]], [first["id"]])

        loaded = self.client.get("/api/preferences", headers=READER).json()
        self.assertEqual([c["id"] for c in loaded["hadist_categories"]], [second["id"]])
        self.assertEqual(loaded["dakwah_categories"], [])

        too_many = self.client.post(
            "/api/preferences",
            json={"dakwah_categories": [first["id"]] * 6},
            headers=READER,
        )
        self.assertEqual(too_many.status_code, 400)


if __name__ == "__main__":
    unittest.main()
