"""
Operations that change state: domain joins and log archival.
"""
