"""Concept catalog with duplicate-gated creation."""

from learnpath.engines.catalog.concept_catalog import ConceptCatalog
from learnpath.engines.catalog.duplicate_detector import DuplicateDetector, DuplicateMatch

__all__ = ["ConceptCatalog", "DuplicateDetector", "DuplicateMatch"]
