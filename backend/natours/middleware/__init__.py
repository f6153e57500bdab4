# Middleware package init
"""
Natours Backend — Middleware Package
======================================

What:  Starlette middleware wrapping the request pipeline endpoint.

Middleware Chain (outermost first):
    Request → [Security Headers] → [Request ID] → [Logging] → pipeline endpoint

    Rate limiting, body limits, sanitization and normalization are NOT
    middleware; they are pipeline stages (see natours.pipeline), so their
    faults reach the ErrorClassifier like any handler fault.
"""
