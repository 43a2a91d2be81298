"""Command workflows (create, destroy)."""
