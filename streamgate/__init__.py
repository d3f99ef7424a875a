"""
streamgate - media resolution, playlist crawling and ranged byte relay.

Resolves playable stream URLs through impersonated player clients, walks
paginated listings, and relays CDN bytes in retrying ranged chunks.
"""

__version__ = "1.0.0"
