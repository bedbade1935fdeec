"""Signal engine application layer: storage, venue client and services."""
