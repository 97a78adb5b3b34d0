"""Request, history, and event schemas."""
