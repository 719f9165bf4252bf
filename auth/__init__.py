"""auth/ -- Identity, authentication and authorization package for credvault.

Layer rule: auth/ imports only stdlib, third-party libraries and core/.
It does NOT import from api/ or vault/ at runtime. Services that need the
OU/division hierarchy (registration, assignment) receive a VaultStore from the
caller and reference it for type checking only.
api/ imports from auth/, not the other way around.
"""
