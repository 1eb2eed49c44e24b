"""
Chronicle: Event-Sourced Narrative State Store

This package keeps the state of a branching roleplay narrative as an
append-only log of events and derives "what is true at message N" by
folding that log. Each layer communicates only through the immutable
types in contracts/.

LAYER STRUCTURE:
================

1. CONTRACTS (contracts/)
   - Responsibility: Immutable event, projection and error types
   - MUST NOT: Hold behaviour beyond trivial derived properties

2. NORMALIZATION LAYER (normalization/)
   - Responsibility: Gate candidate events before append (dedup, leap capping)
   - Allowed inputs: Candidate state events plus the live projection
   - Outputs: The candidates that would actually change state
   - MUST NOT: Append, persist or reorder events

3. TEMPORAL LAYER (temporal/)
   - Responsibility: Event log, swipe resolution, projection fold,
     snapshot cache, replay verification
   - Allowed inputs: Events from the normalization layer
   - Outputs: ProjectedState at any (message, swipe)
   - MUST NOT: Interpret narrative events

4. CORE LAYER (core/)
   - Responsibility: Milestone recomputation and relationship summaries
   - Allowed inputs: Narrative events
   - Outputs: Narrative events with relocated first_for flags
   - MUST NOT: Touch state events or projections

5. STORAGE LAYER (storage/, domain/)
   - Responsibility: One JSON document per narrative
   - MUST NOT: Repair or reinterpret history on load

6. READ SURFACES (api/, forensic.py)
   - Responsibility: Read-only HTTP view and forensic CLI
   - MUST NOT: Write to the store

CONSTRAINTS ENFORCED:
=====================
- Immutability-first: all contract types are frozen dataclasses
- Soft deletes only: events are flagged, never removed
- Deterministic: identical log + initial projection -> identical state
- Explicit errors: verification results are Error values, not exceptions
"""

from .engine import NarrativeStore, StoreConfig

__all__ = [
    'NarrativeStore',
    'StoreConfig',
]
