"""
cryptofolio - cost-basis and P&L accounting for a personal crypto and P2P portfolio.
"""

__version__ = "0.1.0"
