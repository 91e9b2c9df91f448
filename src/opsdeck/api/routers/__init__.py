"""
opsdeck.api.routers

One router module per dashboard backend (`/api/oracle`, `/api/oc`, `/api/s3`, `/api/gitea`).
"""
