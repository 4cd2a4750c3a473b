"""
External system integrations (metadata sources).

New external metadata clients should live under this namespace so they remain
decoupled from pipeline scripts (`scripts/`).
"""
