# Routes package init
"""
Natours Backend — Handler Groups
==================================

What:  Handler groups the router dispatches into.
How:   A handler group is any callable `group(request, remainder)`; it
       returns a HandlerResult (or plain data) or raises a NatoursError.

Inventory:
    - health.py:  /health    (liveness probe, not rate limited)

Resource groups (tours, users, reviews, bookings) and the view group are
supplied by their own packages through create_app(handler_groups=...).
"""
