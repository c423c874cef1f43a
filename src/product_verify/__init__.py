"""
Product verification service.

Checks free-text product details against a corpus of regulatory alert
records (recalls, counterfeit and expiry notices) and returns a
conservative safe/unsafe decision.
"""

__all__ = [
    "config",
    "logging",
    "paths",
]
