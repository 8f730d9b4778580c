"""
Encounter Module

Encounter-level context consumed by the submission coordinator.
"""

from consultation_pad.encounter.context import EncounterContext, EncounterContextStore

__all__ = [
    "EncounterContext",
    "EncounterContextStore",
]
