"""Integration tests: CLI subprocess runs and end-to-end dispatcher flows."""
