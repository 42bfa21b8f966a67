"""Kubernetes API helpers.

Grouped by area:
- `clients`: one ApiClient (plus typed APIs) per connection
- `cluster`: reachability probe
- `namespaces`: namespace listing and lookup
- `workloads`: deployments, scaling and rolling restarts
- `pods`: label selectors, pod listing/deletion and readiness
"""

__all__ = [
	"clients",
	"cluster",
	"namespaces",
	"pods",
	"workloads",
]
