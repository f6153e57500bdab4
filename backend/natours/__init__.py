"""
Natours Backend — Application Package Initializer
==================================================

What: Marks the `natours` directory as a Python package.
Who:  Imported by uvicorn (natours.main:app), pytest and the pipeline modules.

Architecture Note:
    Every request crosses the same front door before any handler group runs:

    ┌─────────────────────────────────────┐
    │   Starlette middleware (headers,    │  ← security headers, request ID, access log
    │   request ID, access logging)       │
    ├─────────────────────────────────────┤
    │   Request pipeline (pipeline/)      │  ← limiter → body → sanitize → normalize → route
    ├─────────────────────────────────────┤
    │   Handler groups (routes/)          │  ← pluggable resource handlers
    ├─────────────────────────────────────┤
    │   Error classifier                  │  ← the only place that shapes error responses
    └─────────────────────────────────────┘
"""

__version__ = "1.0.0"
