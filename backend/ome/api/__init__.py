"""
HTTP and WebSocket API layer.
"""
