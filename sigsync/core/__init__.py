"""Core Business Logic Module

This module provides the signature synchronization logic, independent of
the CLI.

Module Structure:
    - google/            : Google Workspace API collaborators
    - identity_filter.py : Inclusion/exclusion rules for directory users
    - templates.py       : Template store, render context, placeholder rendering
    - change_detector.py : Normalized comparison of stored vs. rendered signatures
    - pipeline.py        : Batched, retrying signature writer
    - service.py         : Run orchestration (fetch → filter → render → apply)
    - diagnostics.py     : Setup checks
    - reporting.py       : Progress reporting interface

Usage Pattern:
    Import explicitly when needed:
        from sigsync.core.pipeline import SignatureSyncPipeline
        from sigsync.core.identity_filter import filter_identities
        from sigsync.core.service import build_service
"""
