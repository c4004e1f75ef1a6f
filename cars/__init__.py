"""cars/ -- Car listing domain, persistence and image storage for CarListings.

Layer rule: cars/ imports only stdlib + third-party libraries.
It does NOT import from api/ or auth/. core/ is referenced for typing only.
"""
