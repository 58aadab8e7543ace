"""
Agentic Memory Services

Core / Recall / Archival memory tiers, maturity progression and the
consolidation batch that moves salient recall into archival memory.
"""

from .memory_store import MemoryStore
from .maturity_tracker import MaturityTracker, level_for_count
from .consolidation_engine import ConsolidationEngine, relationship_for_count

__all__ = [
    'MemoryStore',
    'MaturityTracker',
    'level_for_count',
    'ConsolidationEngine',
    'relationship_for_count',
]
