"""Command line interface for debstow."""
