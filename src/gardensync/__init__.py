"""
gardensync: local-first storage, remote mirroring and portable backups for a
personal garden tracker.

Key components:
- storage/: serialized local key/value store and the offline operation queue
- photos/: filename-addressed photo storage across storage backends
- archive/: ZIP / JSON backup archive codec with optional encryption
- remote/: remote document store adapters and the timeout/retry mirror client
- backup/: manifest validation, config normalization, merge policies and the
  export/import orchestrator
- config/: YAML + environment configuration
"""

__version__ = "0.1.0"
