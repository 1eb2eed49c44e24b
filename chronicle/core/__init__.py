"""
Core Narrative Layer

RESPONSIBILITY: Milestone placement and relationship summaries
ALLOWED INPUTS: Narrative events
OUTPUTS: Narrative events with first_for flags on the earliest
         qualifying event per pair

WHAT THIS LAYER MUST NOT DO:
============================
- Read or write state events
- Persist anything
- Judge whether a tagged event "really" happened
"""

from .milestones import (
    DerivedRelationship,
    Milestone,
    derive_relationship,
    milestones_for_event,
    milestones_for_pair,
    recompute_first_for,
    stale_milestones,
    status_from_milestones,
)

__all__ = [
    'DerivedRelationship',
    'Milestone',
    'derive_relationship',
    'milestones_for_event',
    'milestones_for_pair',
    'recompute_first_for',
    'stale_milestones',
    'status_from_milestones',
]
