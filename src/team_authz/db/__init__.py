"""
team_authz.db

Identity store package (SQLAlchemy async).

Responsibilities:
- Provide ORM models, engine/session setup, and repositories.
"""

# Package marker.


# --- Module Notes -----------------------------------------------------------
# Services receive an AsyncSession explicitly; nothing here holds process-wide state
# beyond the engine created by the app factory.
