"""Concrete collaborators for the execution engine on macOS."""
