"""
Pilbum Backend — API Routes Package
=====================================

Route Inventory:
    - photos.py:   /api/photos, /api/photos/{id}, /api/photos/batch-delete, /api/upload
    - auth.py:     /api/auth/login, /logout, /me, /change-password
    - users.py:    /api/admin/users[/{id}]                          (admin)
    - admin.py:    /api/admin/db, /recover-photos, /system, /settings
    - site.py:     /api/settings, /api/config/storage, /api/version  (public)
    - uploads.py:  /uploads/{path}                                   (local storage only)
    - health.py:   /health

Routes stay thin: parse the request, call a service, shape the response.
"""
