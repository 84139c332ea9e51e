"""Parsed representation of ManagedResourceQuota objects."""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .config import CRD_GROUP, CRD_KIND, CRD_VERSION


@dataclass
class ManagedResourceQuota:
    """Parsed ManagedResourceQuota custom resource."""
    name: str
    namespace: str
    uid: str = ""
    api_version: str = f"{CRD_GROUP}/{CRD_VERSION}"
    kind: str = CRD_KIND
    generation: int = 0
    hard: Dict[str, str] = field(default_factory=dict)
    scopes: List[str] = field(default_factory=list)
    scope_selector: Optional[Dict[str, Any]] = None
    status: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_crd(cls, crd_object: Dict[str, Any]) -> "ManagedResourceQuota":
        """Create a ManagedResourceQuota from a custom objects API response."""
        metadata = crd_object.get("metadata") or {}
        spec = crd_object.get("spec") or {}
        template = spec.get("template") or {}

        return cls(
            name=metadata.get("name", ""),
            namespace=metadata.get("namespace", "default"),
            uid=metadata.get("uid", ""),
            api_version=crd_object.get("apiVersion", f"{CRD_GROUP}/{CRD_VERSION}"),
            kind=crd_object.get("kind", CRD_KIND),
            generation=metadata.get("generation", 0),
            hard={str(k): str(v) for k, v in (template.get("hard") or {}).items()},
            scopes=list(template.get("scopes") or []),
            scope_selector=template.get("scopeSelector"),
            status=dict(crd_object.get("status") or {}),
        )

    @property
    def key(self) -> str:
        return f"{self.namespace}/{self.name}"
