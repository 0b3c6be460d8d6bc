"""Host -> profile lookup loaded from ``domains.yaml``.

Example::

    domains:
      trip.example: alice
      andes.example.org: bob

Hosts are compared case-insensitively, without port and without a single
leading ``www.``.
"""
from __future__ import annotations

from pathlib import Path
from typing import Dict, Mapping, Optional

import yaml

from tripredirect.errors import ConfigurationError


def normalize_host(host: str) -> str:
    """Canonical cache/lookup key for a request host.

    ``Example.com:8080``, ``www.example.com`` and ``example.com`` all map to
    ``example.com``. Only one ``www.`` is removed, and only when something
    follows it.
    """
    host = (host or "").strip().lower()
    if host.startswith("["):
        # bracketed IPv6 literal
        host = host.split("]", 1)[0] + "]"
    elif host.count(":") == 1:
        host = host.split(":", 1)[0]
    host = host.rstrip(".")
    if len(host) > 4 and host.startswith("www."):
        host = host[4:]
    return host


class DomainTable:
    def __init__(self, domains: Mapping[str, str]):
        self._domains: Dict[str, str] = {
            normalize_host(str(host)): str(profile) for host, profile in domains.items()
        }

    def __len__(self) -> int:
        return len(self._domains)

    def lookup(self, host: str) -> Optional[str]:
        return self._domains.get(normalize_host(host))

    @classmethod
    def from_yaml(cls, path: str | Path) -> "DomainTable":
        path = Path(path)
        try:
            with path.open("r", encoding="utf-8") as handle:
                data = yaml.safe_load(handle) or {}
        except OSError as exc:
            raise ConfigurationError(f"Cannot read {path}: {exc}") from exc
        except yaml.YAMLError as exc:
            raise ConfigurationError(f"Cannot parse {path}: {exc}") from exc

        if not isinstance(data, dict):
            raise ConfigurationError(f"{path} must contain a mapping at the top level")
        domains = data.get("domains") or {}
        if not isinstance(domains, dict):
            raise ConfigurationError(f"'domains' in {path} must be a host -> profile mapping")
        return cls(domains)
