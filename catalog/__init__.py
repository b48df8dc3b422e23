"""
Catalog backend package.

A FastAPI service exposing CRUD and search over one record collection,
with user records linked to an external identity provider.
"""
