"""Core (UI-agnostic) procurement dashboard logic.

This package contains:
- column mapping and cell coercion (XLSX rows -> typed purchase orders)
- row inclusion policies
- aggregate metrics and year-over-year comparison (JSON-serializable payloads)
- the persisted cache artifact and the cache manager that serves it
"""
