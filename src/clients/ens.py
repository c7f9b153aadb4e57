from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Iterable

import requests

logger = logging.getLogger(__name__)

SUBDOMAINS_QUERY = """
query GetSubdomains($name: String!) {
  domains(where: { name: $name }) {
    name
    labelName
    resolvedAddress { id }
    subdomains(first: 100) {
      name
      labelName
      resolvedAddress { id }
    }
  }
}
"""


class EnsSubgraphError(RuntimeError):
    def __init__(self, message: str, *, status_code: int | None = None, payload: Any | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.payload = payload


@dataclass(frozen=True)
class ResolvedName:
    name: str
    label: str
    address: str | None


def _resolved_address(node: dict[str, Any]) -> str | None:
    resolved = node.get("resolvedAddress")
    if not isinstance(resolved, dict) or not resolved.get("id"):
        return None
    return str(resolved["id"])


class EnsResolver:
    """Resolve a root ENS name and its subdomains through the ENS subgraph."""

    def __init__(
        self,
        *,
        subgraph_url: str,
        timeout: float = 10.0,
        session: requests.Session | None = None,
    ) -> None:
        if not subgraph_url:
            msg = "subgraph_url must be provided"
            raise ValueError(msg)
        self.subgraph_url = subgraph_url
        self.timeout = timeout
        self._session = session or requests.Session()

    def resolve_subdomains(self, root_name: str) -> list[ResolvedName]:
        root_name = root_name.strip().lower()
        logger.info("Resolving ENS name %s via %s", root_name, self.subgraph_url)
        data = self._query(SUBDOMAINS_QUERY, {"name": root_name})

        results: list[ResolvedName] = []
        for domain in data.get("domains") or []:
            name = domain.get("name")
            address = _resolved_address(domain)
            if name and address:
                results.append(ResolvedName(name=name, label=domain.get("labelName") or name, address=address))

            # Subdomains without an address are kept so callers can show them as unresolved.
            for subdomain in domain.get("subdomains") or []:
                sub_name = subdomain.get("name")
                if not sub_name:
                    continue
                results.append(
                    ResolvedName(
                        name=sub_name,
                        label=subdomain.get("labelName") or sub_name,
                        address=_resolved_address(subdomain),
                    )
                )
        return results

    def _query(self, query: str, variables: dict[str, Any]) -> dict[str, Any]:
        try:
            response = self._session.post(
                self.subgraph_url, json={"query": query, "variables": variables}, timeout=self.timeout
            )
            response.raise_for_status()
        except requests.RequestException as exc:
            status_code = getattr(getattr(exc, "response", None), "status_code", None)
            raise EnsSubgraphError("ENS subgraph request failed", status_code=status_code) from exc

        try:
            payload = response.json()
        except ValueError as exc:
            raise EnsSubgraphError("ENS subgraph returned invalid JSON", payload=response.text) from exc

        if not isinstance(payload, dict):
            raise EnsSubgraphError("ENS subgraph returned unexpected payload type", payload=payload)

        errors = payload.get("errors")
        if errors:
            first = errors[0] if isinstance(errors, list) else errors
            message = first.get("message") if isinstance(first, dict) else str(first)
            raise EnsSubgraphError(f"ENS subgraph error: {message}", payload=payload)

        data = payload.get("data")
        if not isinstance(data, dict):
            raise EnsSubgraphError("No data returned from ENS subgraph", payload=payload)
        return data


def owned_addresses(names: Iterable[ResolvedName]) -> list[str]:
    """Addresses of resolved names, lower-cased and de-duplicated; unresolved names are skipped."""
    seen: dict[str, None] = {}
    for resolved in names:
        if resolved.address:
            seen.setdefault(resolved.address.lower(), None)
    return list(seen)


__all__ = ["EnsResolver", "EnsSubgraphError", "ResolvedName", "owned_addresses"]
