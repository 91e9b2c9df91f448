"""
opsdeck.services

Service layer: owns transactions and background job lifecycles.
"""
