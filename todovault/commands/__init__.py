"""CLI command implementations (rendering with rich)."""
