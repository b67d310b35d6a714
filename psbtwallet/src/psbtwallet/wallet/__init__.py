"""
Key derivation and script construction.
"""
