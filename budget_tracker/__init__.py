"""
Budget Tracker - Source Package

Project budget and expense tracking for a services business.

DESIGN PRINCIPLES:
1. Employees submit → Reviewers decide once → Ledger records
2. Fail early, fail visibly (typed errors, never silent success)
3. Identity is passed explicitly, never looked up ambiently
4. Every analytics query recomputes from the ledger
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Budget Tracker Team"
