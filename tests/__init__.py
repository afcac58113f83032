"""
Test suite for spanform.

This package contains tests for all spanform components:
- Unit tests for the schema model, codecs and differ
- Unit tests for the metadata store and descriptor fetching
- Unit tests for the table reconciler and CLI against mocked Spanner
"""
