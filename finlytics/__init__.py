"""
finlytics: predictive analytics over personal-finance transaction history.
"""

__version__ = "1.0.0"
