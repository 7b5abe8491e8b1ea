"""
EHS Identity - enforcement offender and legislation identity resolution

Decides whether a scraped offender or legislation reference is an entity that
is already known, detects accidental duplicates and merges erroneously split
offenders.
"""

__version__ = "0.1.0"
