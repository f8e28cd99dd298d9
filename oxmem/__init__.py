"""OmniXtend (TileLink over Ethernet) memory node: frame codecs, peer table, memory and server."""

__version__ = "0.1.0"