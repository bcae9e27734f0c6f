"""
Utility functions and helpers.

Modules:
- files: Directory and text file helpers
- hashing: SHA256 digests for archive manifests
- logging: Logging configuration
- output: Table, JSON and CSV rendering of records
- progress: rich progress bars for multi-computer loops
- redact: Credential redaction for logged scripts
"""
