"""Specialist lookup (nearby care providers)."""

from mediscan.lookup.specialist import SpecialistLookup

__all__ = ["SpecialistLookup"]
