"""
opsdeck.openshift

Cluster diagnostics built on `oc` output (JSON documents and CLI tables).
"""
