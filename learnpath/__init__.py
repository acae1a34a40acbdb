"""
Learning Path Engine

Concept graph construction, prerequisite validation and study scheduling.
"""

__version__ = "1.0.0"
