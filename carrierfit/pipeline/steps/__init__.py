"""
Pipeline steps for carrier matching.
Each step is a self-contained module that performs a specific task.
"""

from .chunker import ChunkerStep
from .query_generator import QueryGeneratorStep
from .retriever import RetrieverStep
from .evidence_aggregator import EvidenceAggregatorStep
from .ranker import RankerStep

__all__ = [
    "ChunkerStep",
    "QueryGeneratorStep",
    "RetrieverStep",
    "EvidenceAggregatorStep",
    "RankerStep",
]
