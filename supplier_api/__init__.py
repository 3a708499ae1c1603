"""HTTP serving surface, API client and CLI for the procurement dashboard."""
