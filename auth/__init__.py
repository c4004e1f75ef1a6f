"""auth/ -- Authentication package for CarListings.

Layer rule: auth/ imports only stdlib + third-party libraries.
It does NOT import from api/, cars/, or core/.
api/ imports from auth/, not the other way around.
"""
