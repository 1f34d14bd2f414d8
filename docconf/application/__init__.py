"""Application layer: ports the cache layer depends on."""
