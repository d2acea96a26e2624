"""Packaged default configuration (`default.yaml`)."""
