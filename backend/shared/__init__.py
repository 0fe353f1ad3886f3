"""
Shared module for common utilities used by the payments API and CLI.

STRUCTURE:
- shared.security: Notification basic auth, redirect signatures
  - auth.py: HTTP basic credentials check for provider notifications
  - request_signing.py: merchantSig HMAC verification

- shared.infrastructure: Database and Redis
  - db.py: SQLAlchemy sessions, safe_commit()
  - correlation.py: Request correlation IDs
  - redis/: Connection pool for the redis order mutex backend

- shared.config: Configuration
  - settings.py: Environment config (Pydantic)
  - logging.py: Structured logging
  - constants.py: Payment states, event codes, ingress replies

- shared.utils: Utilities
  - exceptions.py: HTTP exceptions with auto-logging
  - schemas.py: Shared Pydantic schemas

IMPORT EXAMPLES:
    from shared.infrastructure.db import get_db, safe_commit
    from shared.config.settings import settings
    from shared.config.constants import PaymentState, EventCode
    from shared.utils.exceptions import NotFoundError, ConflictError
"""
