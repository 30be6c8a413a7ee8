"""idplane - identity and access control plane for multi-tenant applications."""

__version__ = "0.1.0"
