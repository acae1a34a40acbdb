"""
Kernel Layer

Persistent state owned by the engine: concepts, workflows, cached
prerequisite verdicts and the append-only activity log.
"""
