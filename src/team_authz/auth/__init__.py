"""
team_authz.auth

Authentication/authorization boundary package.

Responsibilities:
- JWT helpers and validation.
- FastAPI dependencies that resolve callers to principals and enforce permissions.
"""

# Package marker.
