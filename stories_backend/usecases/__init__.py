from stories_backend.usecases.category import CategoryUseCase
from stories_backend.usecases.chapter import ChapterUseCase
from stories_backend.usecases.preference import PreferenceUseCase
from stories_backend.usecases.story import StoryUseCase

__all__ = ["CategoryUseCase", "ChapterUseCase", "PreferenceUseCase", "StoryUseCase"]
