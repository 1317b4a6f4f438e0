"""Data access layer: one repository per aggregate, created via RepositoryFactory."""

from .base_repository import BaseRepository
from .factory import RepositoryFactory

__all__ = ["BaseRepository", "RepositoryFactory"]
