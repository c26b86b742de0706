"""auth/ -- Credential and session core for dashgate.

Layer rule: auth/ imports only stdlib + third-party libraries.
It does NOT import from api/ or core/ -- stores receive their paths and
tuning values as constructor arguments. api/ and main.py import from auth/,
not the other way around. auth/dependencies.py is the one FastAPI-aware module.
"""
