"""
Pilbum Backend — Services Layer
=================================

What:  Business logic between routes (HTTP) and the database/storage.

Service Inventory:
    - auth_service:      login, password change, session cookie (PyJWT)
    - photo_service:     gallery listing, edits, deletion, upload, disk recovery
    - user_service:      admin account management
    - settings_service:  site settings with defaults
    - system_service:    database setup, system status report
    - version_service:   GitHub release check
    - exif_service:      EXIF → photo columns (Pillow)
    - image_service:     full/thumbnail/blur renditions (Pillow, pillow-heif)
    - passwords:         scrypt hashing
    - storage/:          local, S3-compatible and Azure Blob adapters
"""
