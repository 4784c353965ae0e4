"""
MATKA - Result declaration and payout settlement service.
"""

__version__ = "1.0.0"
