"""flami: an origin server for pages, component scripts, static assets and JSON API pages."""

__version__ = "0.1.0"
