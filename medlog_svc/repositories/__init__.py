"""
Repository layer for database access.

This module contains all database access operations, encapsulating SQL and data persistence logic.
"""
from repositories.base import Database
from repositories.record_repository import RecordRepository
from repositories.medication_repository import MedicationRepository
from repositories.preferences_repository import PreferencesRepository

__all__ = [
    "Database",
    "RecordRepository",
    "MedicationRepository",
    "PreferencesRepository",
]
