"""Real-time chat message distribution service."""
