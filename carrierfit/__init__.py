"""
Carrier Fit Matching

Matches a structured client underwriting profile against carrier
underwriting guideline documents using:
- Fireworks AI embeddings for semantic retrieval
- MongoDB Atlas (or an in-process index) for vector search
- A relational store for documents and chunks
"""

__version__ = "1.0.0"
