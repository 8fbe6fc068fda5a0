"""An in-memory key-value server with strings, sorted sets, expiry and a client."""

__version__ = "0.1.0"
__all__ = ["avl", "hashtable", "heap", "zset", "protocol", "store", "server", "client"]