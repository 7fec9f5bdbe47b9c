"""
team_authz.services

Access reconciliation and permission evaluation services.

Responsibilities:
- Group mapping resolution, membership primitives and team synchronization.
- Permission evaluation and the authorization decision point.
"""

# Package marker.


# --- Module Notes -----------------------------------------------------------
# Services take the AsyncSession explicitly and keep no state between calls.
