"""Small helpers shared across ngrokctl."""
