import unittest
from unittest.mock import patch

from stories_backend.errors import BadInputError
from stories_backend.records import ChoiceGroup
from stories_backend.tests.helpers import make_harness


class PreferenceUseCaseTests(unittest.TestCase):
    def setUp(self):
        self.h = make_harness()
        self.refs = [
            self.h.categories.create(self.h.ctx, f"Category {i}").uuid for i in range(7)
        ]

    def test_save_and_get(self):
        saved = self.h.preferences.save(
            self.h.ctx, "user-1", self.refs[:2], [self.refs[2]], []
        )
        self.assertEqual([c.uuid for c in saved[ChoiceGroup.STORY]], self.refs[:2])
        loaded = self.h.preferences.get(self.h.ctx, "user-1")
        self.assertEqual([c.uuid for c in loaded[ChoiceGroup.DAKWAH]], [self.refs[2]])
        self.assertEqual(loaded[ChoiceGroup.HADIST], [])

    def test_too_many_in_one_group_touches_nothing(self):
        self.h.preferences.save(self.h.ctx, "user-1", [self.refs[0]])
        with patch.object(
            self.h.db, "replace_user_choices", wraps=self.h.db.replace_user_choices
        ) as spy:
            with self.assertRaises(BadInputError):
                self.h.preferences.save(self.h.ctx, "user-1", [], [], self.refs[:6])
        spy.assert_not_called()
        loaded = self.h.preferences.get(self.h.ctx, "user-1")
        self.assertEqual([c.uuid for c in loaded[ChoiceGroup.STORY]], [self.refs[0]])

    def test_five_per_group_is_allowed(self):
        saved = self.h.preferences.save(
            self.h.ctx, "user-1", self.refs[:5], self.refs[:5], self.refs[:5]
        )
        self.assertTrue(all(len(categories) == 5 for categories in saved.values()))

    def test_unknown_refs_are_skipped(self):
        saved = self.h.preferences.save(
            self.h.ctx, "user-1", [self.refs[0], "missing", self.refs[0]]
        )
        self.assertEqual([c.uuid for c in saved[ChoiceGroup.STORY]], [self.refs[0]])

    def test_save_replaces_previous_choices(self):
        self.h.preferences.save(self.h.ctx, "user-1", self.refs[:3], [self.refs[3]])
        self.h.preferences.save(self.h.ctx, "user-1", [self.refs[4]])
        loaded = self.h.preferences.get(self.h.ctx, "user-1")
        self.assertEqual([c.uuid for c in loaded[ChoiceGroup.STORY]], [self.refs[4]])
        self.assertEqual(loaded[ChoiceGroup.DAKWAH], [])

    def test_users_are_isolated(self):
        self.h.preferences.save(self.h.ctx, "user-1", [self.refs[0]])
        self.h.preferences.save(self.h.ctx, "user-2", [self.refs[1]])
        loaded = self.h.preferences.get(self.h.ctx, "user-1")
        self.assertEqual([c.uuid for c in loaded[ChoiceGroup.STORY]], [self.refs[0]])

    def test_deleted_category_disappears_from_choices(self):
        self.h.preferences.save(self.h.ctx, "user-1", self.refs[:2])
        self.h.categories.delete(self.h.ctx, self.refs[0])
        loaded = self.h.preferences.get(self.h.ctx, "user-1")
        self.assertEqual([c.uuid for c in loaded[ChoiceGroup.STORY]], [self.refs[1]])


if __name__ == "__main__":
    unittest.main()
