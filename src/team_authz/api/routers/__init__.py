"""
team_authz.api.routers

HTTP routers: health, dev token minting, caller self-inspection and administration.
"""

# Package marker.
