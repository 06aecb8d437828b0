"""
onsweb — Community Organization Web Backend
=============================================
Accounts (password and social login), editorial content and events, event
registration, and a media library backed by S3-compatible object storage
fronted by an image CDN.

Package layout::

    onsweb/
    ├── config.py          # YAML → typed Python config
    ├── constants.py       # Media policy, CDN presets, rate-limit policies
    ├── errors.py          # AppError taxonomy (status + code)
    ├── text.py            # Slugs, HTML / text / filename sanitizers
    ├── database/
    │   ├── engine.py      # SQLAlchemy engine + async helper
    │   ├── models.py      # All ORM models
    │   └── seed.py        # Bootstrap admin seeder
    ├── services/
    │   ├── token_service.py     # JWT access/refresh pairs
    │   ├── identity_bridge.py   # WorkOS OAuth (authorize URL, code exchange)
    │   ├── auth_service.py      # Login, registration, OAuth callback, refresh
    │   ├── content_service.py   # Content CRUD, slugs, publishing
    │   ├── event_service.py     # Event CRUD + registration
    │   ├── media_service.py     # Upload, galleries, search, tags, stats
    │   ├── media_metadata.py    # Structured metadata + legacy blob parsing
    │   ├── storage.py           # boto3 object storage client
    │   ├── image_cdn.py         # ImageKit URL building
    │   └── image_processing.py  # Pillow resize / thumbnail
    └── api/
        ├── main.py        # FastAPI app
        ├── deps.py        # Dependency providers + role gates
        ├── responses.py   # Envelope + exception handlers
        ├── rate_limit.py  # DB-backed sliding-window limiter
        ├── schemas.py     # Request bodies
        └── routes/        # auth, content, events, media
"""

__version__ = "0.1.0"
