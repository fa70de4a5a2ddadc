import unittest
from unittest.mock import patch

from stories_backend.cache import CATEGORY_LIST_KEY
from stories_backend.errors import BadInputError, ConflictError, InternalError, NotFoundError
from stories_backend.records import DEFAULT_COLOR
from stories_backend.tests.helpers import make_harness, png_asset


class CategoryUseCaseTests(unittest.TestCase):
    def setUp(self):
        self.h = make_harness()

    def test_create_with_image(self):
        category = self.h.categories.create(self.h.ctx, "Prophets", png_asset((10, 200, 10)))
        self.assertTrue(self.h.storage.exists(category.image_url))
        self.assertIn(f"categories/{category.uuid}.png", category.image_url)
        self.assertNotEqual(category.dominant_color, DEFAULT_COLOR)
        stored = self.h.categories.get(self.h.ctx, category.uuid)
        self.assertEqual(stored.image_url, category.image_url)

    def test_create_requires_unique_name(self):
        self.h.categories.create(self.h.ctx, "Prophets")
        with self.assertRaises(ConflictError):
            self.h.categories.create(self.h.ctx, "Prophets", png_asset())
        self.assertEqual(self.h.storage.upload_calls, 0)
        with self.assertRaises(BadInputError):
            self.h.categories.create(self.h.ctx, "  ")

    def test_failed_image_write_removes_row_and_blob(self):
        with patch.object(self.h.db, "update_category", side_effect=RuntimeError("db down")):
            with self.assertRaises(InternalError):
                self.h.categories.create(self.h.ctx, "Prophets", png_asset())
        self.assertEqual(self.h.storage.stored_objects, {})
        self.assertIsNone(self.h.db.get_category_by_name("Prophets"))

    def test_failed_upload_removes_row(self):
        with patch.object(self.h.storage, "upload", side_effect=RuntimeError("timeout")):
            with self.assertRaises(InternalError):
                self.h.categories.create(self.h.ctx, "Prophets", png_asset())
        self.assertEqual(self.h.db.categories, {})

    def test_get_all_is_cached_and_invalidated(self):
        self.h.categories.create(self.h.ctx, "Prophets")
        with patch.object(self.h.db, "list_categories", wraps=self.h.db.list_categories) as spy:
            self.h.categories.get_all(self.h.ctx)
            names = [c.name for c in self.h.categories.get_all(self.h.ctx)]
            self.assertEqual(spy.call_count, 1)
            self.assertEqual(names, ["Prophets"])
            self.assertIn(CATEGORY_LIST_KEY, self.h.cache.items)

            self.h.categories.create(self.h.ctx, "Companions")
            self.assertNotIn(CATEGORY_LIST_KEY, self.h.cache.items)
            self.assertEqual(len(self.h.categories.get_all(self.h.ctx)), 2)
            self.assertEqual(spy.call_count, 2)

    def test_rename_to_existing_name_conflicts(self):
        first = self.h.categories.create(self.h.ctx, "Prophets")
        self.h.categories.create(self.h.ctx, "Companions")
        with self.assertRaises(ConflictError):
            self.h.categories.update(self.h.ctx, first.uuid, name="Companions")
        self.assertEqual(self.h.categories.get(self.h.ctx, first.uuid).name, "Prophets")

    def test_rename_and_replace_image(self):
        category = self.h.categories.create(self.h.ctx, "Prophets", png_asset())
        updated = self.h.categories.update(
            self.h.ctx, category.uuid, name="Messengers", image=png_asset((0, 0, 255), "b.jpeg")
        )
        self.assertEqual(updated.name, "Messengers")
        self.assertNotEqual(updated.image_url, category.image_url)
        self.assertTrue(self.h.storage.exists(updated.image_url))
        self.assertFalse(self.h.storage.exists(category.image_url))

    def test_update_missing_category(self):
        with self.assertRaises(NotFoundError):
            self.h.categories.update(self.h.ctx, "missing", name="x")

    def test_delete_cascades_to_stories_and_slides(self):
        category = self.h.categories.create(self.h.ctx, "Prophets", png_asset())
        story = self.h.stories.create(
            self.h.ctx, "Adam", "First", category.uuid, "u", png_asset()
        )
        slide = self.h.stories.add_slide(self.h.ctx, story.uuid, "c", 1, png_asset())
        self.h.stories.get_all(self.h.ctx)

        self.h.categories.delete(self.h.ctx, category.uuid)

        with self.assertRaises(NotFoundError):
            self.h.categories.get(self.h.ctx, category.uuid)
        with self.assertRaises(NotFoundError):
            self.h.stories.get(self.h.ctx, story.uuid)
        self.assertIsNone(self.h.db.get_slide_by_uuid(slide.uuid))
        self.assertEqual(self.h.storage.stored_objects, {})
        self.assertEqual(self.h.cache.items, {})

    def test_delete_missing_category(self):
        with self.assertRaises(NotFoundError):
            self.h.categories.delete(self.h.ctx, "missing")

    def test_update_refreshes_cached_story_pages(self):
        category = self.h.categories.create(self.h.ctx, "Prophets")
        self.h.stories.create(self.h.ctx, "Adam", "First", category.uuid, "u")
        page = self.h.stories.get_all(self.h.ctx, 1, 10, "created_at desc")
        self.assertEqual(page[0].category.name, "Prophets")

        updated = self.h.categories.update(
            self.h.ctx, category.uuid, name="Messengers", image=png_asset((0, 0, 255))
        )

        page = self.h.stories.get_all(self.h.ctx, 1, 10, "created_at desc")
        self.assertEqual(page[0].category.name, "Messengers")
        self.assertEqual(page[0].category.image_url, updated.image_url)
        self.assertEqual(page[0].category.dominant_color, updated.dominant_color)

    def test_search(self):
        self.h.categories.create(self.h.ctx, "Prophets")
        self.h.categories.create(self.h.ctx, "Companions")
        found = self.h.categories.search(self.h.ctx, "PROPH")
        self.assertEqual([c.name for c in found], ["Prophets"])
        with self.assertRaises(BadInputError):
            self.h.categories.search(self.h.ctx, "")


if __name__ == "__main__":
    unittest.main()
