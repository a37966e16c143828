"""Sakila vertical configuration.

Loads RentalConfig from the patterns module with SAKILA_* environment
overrides applied once at import.
"""

from patterns.domain_config import RentalConfig

config = RentalConfig.from_env()
