"""Core building blocks: configuration, status API, exceptions."""
