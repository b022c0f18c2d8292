"""WebSocket clients for live ticker data."""
