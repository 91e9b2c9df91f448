"""
opsdeck.oracle

Oracle comparison domain logic (no I/O).

Responsibilities:
- DDL normalisation and patch generation.
- Owner-to-connection auto-mapping.
- Sorted stream merge and comparison conclusions.
- Row-level data comparison.
"""

# Package marker; import from submodules.
