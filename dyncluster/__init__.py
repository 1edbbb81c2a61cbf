"""
Dynamic test-cluster daemon package.

Modules:
- versions: server version parsing and artifact naming
- state: node/cluster view models and cluster metadata
- meta_store: persistence of cluster owner and expiry
- runtime: container runtime adapters (Docker, Kubernetes)
- dns: registration of node host names with the DNS service
- nodes: allocation and termination of single nodes
- clusters: reconciliation and multi-node lifecycle operations
- api: REST API surface for cluster management
"""

__version__ = "0.3.0"
