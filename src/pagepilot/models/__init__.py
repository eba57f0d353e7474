"""Data models shared across PagePilot components."""
