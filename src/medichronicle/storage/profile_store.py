"""
Patient profile storage - Protocol and implementations.

The profile is persisted independently of the document store, so clearing
the dossier keeps the patient registered.

Following the gold standard pattern:
1. Protocol defines the interface
2. FileProfileStore for production (persistent JSON)
3. InMemoryProfileStore for testing (fast, no I/O)
4. Factory function for convenience
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Protocol, runtime_checkable

from pydantic import ValidationError

from medichronicle.core.errors import RepositoryError
from medichronicle.schemas.records import PatientProfile

logger = logging.getLogger(__name__)


@runtime_checkable
class ProfileStore(Protocol):
    """Protocol for profile storage implementations."""

    def load(self) -> PatientProfile | None:
        """Load the profile, returns None if none was saved."""
        ...

    def save(self, profile: PatientProfile) -> None:
        """Replace the stored profile."""
        ...

    def clear(self) -> None:
        """Forget the stored profile."""
        ...


class FileProfileStore:
    """Production profile store using a JSON file."""

    def __init__(self, file_path: Path | str):
        self._path = Path(file_path)

    @property
    def path(self) -> Path:
        """Get the profile file path."""
        return self._path

    def load(self) -> PatientProfile | None:
        """Load profile from JSON file. A corrupt file is treated as absent."""
        if not self._path.exists():
            return None

        try:
            with open(self._path, encoding="utf-8") as f:
                return PatientProfile.model_validate(json.load(f))
        except (OSError, json.JSONDecodeError, ValidationError) as e:
            logger.warning(f"Could not load patient profile: {e}")
            return None

    def save(self, profile: PatientProfile) -> None:
        """Save profile to JSON file."""
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with open(self._path, "w", encoding="utf-8") as f:
                json.dump(profile.model_dump(), f, indent=2)
        except OSError as e:
            raise RepositoryError(f"Could not save patient profile: {e}") from e

    def clear(self) -> None:
        self._path.unlink(missing_ok=True)


class InMemoryProfileStore:
    """Test profile store - no file I/O."""

    def __init__(self, initial_profile: PatientProfile | None = None):
        self._profile = initial_profile

    def load(self) -> PatientProfile | None:
        return self._profile

    def save(self, profile: PatientProfile) -> None:
        self._profile = profile

    def clear(self) -> None:
        self._profile = None


def get_profile_store(
    use_file: bool = True,
    file_path: Path | str | None = None,
    initial_profile: PatientProfile | None = None,
) -> ProfileStore:
    """
    Factory function for profile stores.

    Example:
        # Production
        store = get_profile_store()

        # Testing
        store = get_profile_store(use_file=False, initial_profile=PatientProfile(...))
    """
    if not use_file:
        return InMemoryProfileStore(initial_profile)

    if file_path is None:
        from medichronicle.config import get_config

        file_path = get_config().profile_path
    return FileProfileStore(file_path)
