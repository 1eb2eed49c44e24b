"""
Read Surfaces

Read-only HTTP view over one narrative store. Nothing here writes.
"""
