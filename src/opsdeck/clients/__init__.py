"""
opsdeck.clients

Clients for the external systems the service fronts.

Responsibilities:
- Oracle (python-oracledb), OpenShift (`oc` CLI), S3 (boto3), Git hosts (httpx).
- A polling client for this service's own job-status endpoints.
"""

# Package marker; import from submodules.
