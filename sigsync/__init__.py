"""Workspace Signature Sync package.

To run a synchronization programmatically:
    from sigsync.config import load_settings
    from sigsync.core.service import build_service

    service = build_service(load_settings())
    result = service.sync(dry_run=True)

To use the pipeline with your own collaborators:
    from sigsync.core.pipeline import SignatureSyncPipeline
"""

__version__ = "1.0.0"
