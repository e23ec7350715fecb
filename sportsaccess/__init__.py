"""
sportsaccess - Book sports-facility sessions and issue reader access tokens.
"""

__version__ = "0.1.0"
