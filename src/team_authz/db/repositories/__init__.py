"""
team_authz.db.repositories

Repository package.

Responsibilities:
- Group data-access repositories for the identity store.
"""

# Package marker; repositories are imported directly from submodules.


# --- Module Notes -----------------------------------------------------------
# Repositories flush but never commit; the service or router owning the unit of work commits.
