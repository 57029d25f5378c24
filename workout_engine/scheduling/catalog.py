"""Read-only exercise catalog lookup.

The catalog itself (names, categories, instructions) is owned elsewhere; the
engine only needs an exercise's category when a template entry lacks one.
"""

from collections.abc import Iterable
from typing import Protocol

from pydantic import BaseModel


class ExerciseMetadata(BaseModel):
    exercise_id: str
    name: str
    category_id: str | None = None
    is_active: bool = True


class ExerciseCatalog(Protocol):
    def get_exercise(self, exercise_id: str) -> ExerciseMetadata | None: ...


class StaticExerciseCatalog:
    """In-memory catalog keyed by exercise id."""

    def __init__(self, exercises: Iterable[ExerciseMetadata] = ()):
        self._exercises = {exercise.exercise_id: exercise for exercise in exercises}

    def get_exercise(self, exercise_id: str) -> ExerciseMetadata | None:
        return self._exercises.get(exercise_id)

    def register(self, exercise: ExerciseMetadata) -> None:
        self._exercises[exercise.exercise_id] = exercise
