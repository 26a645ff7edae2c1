"""Building blocks for a mesh VPN coordination server: MagicDNS, tags, DERP maps, STUN, storage and output helpers."""

__version__ = "0.1.0"