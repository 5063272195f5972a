"""
FinanceFlow - Source Package

A personal daily budget ledger: a monthly credit, a daily spending
target, a savings pool, and one record per day of spending, tasks and
notes.

DESIGN PRINCIPLES:
1. The summary and a day's record change together or not at all
2. Fail early, fail visibly
3. No silent corrections
4. Every change must be auditable
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "FinanceFlow Team"
