"""
EMR Query Ranking - Query Understanding and Retrieval Ranking for Clinical Records

Turns free-text clinical questions about a single patient into structured
queries and ranks already-retrieved evidence chunks against them.

Features:
- Rule-based intent classification with confidence and ambiguity detection
- Medication, condition, symptom, date and person extraction
- Temporal phrase resolution to explicit date ranges
- Medical synonym expansion
- BM25 + time decay + artifact type scoring with diversity re-ranking
"""

__version__ = "0.1.0"
__author__ = "EMR Query Ranking Team"
