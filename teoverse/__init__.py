"""
TeoVerse - Federation Service

Passport identities, asset tokenization, a mock federation currency and
exchange, federation linking, and a public AI ambassador, served as an
async JSON API.
"""

__version__ = "1.0.0"
