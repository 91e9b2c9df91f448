"""
opsdeck.db.repositories

Repositories: one class per aggregate, no commits (the service layer owns transactions).
"""
