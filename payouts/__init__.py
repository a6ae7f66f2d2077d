"""
SNX payout tool: periodic payout computation and Safe batch submission.
"""

__version__ = "0.1.0"
