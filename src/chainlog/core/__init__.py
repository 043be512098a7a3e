"""Core configuration, diagnostics logging and exception hierarchy."""
