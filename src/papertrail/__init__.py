"""
Papertrail - per-user document vault.

Usage:
    from papertrail.vault import create_vault, Identity, UploadRequest

    vault = create_vault()
    vault.submit_upload(identity, UploadRequest(...))
"""

__version__ = "0.1.0"
