"""Core shared logic for indicators, signal synthesis, and models.

This package contains pure business logic with no I/O dependencies
(no database, venue or network access). Storage, the venue client and
the orchestration services live in signal_app/.
"""
