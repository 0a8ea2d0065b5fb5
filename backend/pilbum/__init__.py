"""
Pilbum Backend — Application Package
======================================

What: Self-hosted photo album API: public gallery, uploads with EXIF
      extraction and Live Photo pairing, multi-user administration and
      local / S3 / Azure object storage.

Layout:

    routes/      HTTP surface; session cookie checks live in dependencies.py
    services/    photos, users, settings, system tools, update checker
    services/storage/   one adapter per storage provider
    models/      SQLAlchemy tables (photos, users, settings)
    schemas/     Pydantic request/response bodies, camelCase on the wire
    middleware/  rate limiting, request ids, access log
"""

__version__ = "1.0.0"
