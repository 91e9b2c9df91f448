"""
opsdeck.security

Encryption at rest for saved connection profiles.
"""
