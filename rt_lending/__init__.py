"""
RT Lending

Record keeping for a small community lending and cash-flow program:
loan approval lifecycle, flat-interest formulas, and a cash ledger that
stays in step with loan events.
"""

__version__ = "1.0.0"
