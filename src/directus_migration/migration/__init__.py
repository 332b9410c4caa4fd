"""
Migration module for Directus Bridge.

This module provides the extractors, loaders and coordinators that move a
Directus project between an instance and a template directory.
"""

# Coordinators
from directus_migration.migration.coordinator import ApplyCoordinator, ExtractCoordinator

# Extractors and loaders
from directus_migration.migration.exporter import create_exporter
from directus_migration.migration.importer import create_importer

__all__ = [
    # Coordinators
    "ExtractCoordinator",
    "ApplyCoordinator",
    # Factories
    "create_exporter",
    "create_importer",
]
