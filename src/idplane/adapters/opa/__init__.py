"""Open Policy Agent adapter."""

from idplane.adapters.opa.client import OpaPolicyEngine

__all__ = ["OpaPolicyEngine"]
