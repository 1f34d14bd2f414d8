"""Infrastructure: cache layer, document backends and backend factory."""
