"""Persistence layer -- box repository contract with in-memory and SQLite stores."""

from savings.storage.database import SavingsDatabase
from savings.storage.repository import BoxRepository, InMemoryBoxRepository
from savings.storage.sqlite_repository import SqliteBoxRepository

__all__ = ["BoxRepository", "InMemoryBoxRepository", "SavingsDatabase", "SqliteBoxRepository"]
