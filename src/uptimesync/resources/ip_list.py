"""
Monitoring IPs lookup.

Reads ``/ips-by-cluster.json`` (``{"<cluster>": ["<ip>", ...], ...}``) and
exposes:
  * ``ips``: the IPs of the clusters named in ``filter_clusters``
    (all clusters when the filter is empty),
  * ``all_clusters``: every cluster in the response, filtered or not.
"""

from __future__ import annotations

import logging
from typing import Dict, List

from ..core.client import UptimeClient
from ..core.resource import BaseDataSource, ResourceError
from ..core.resource_data import ResourceData
from ..core.schema import LIST, STRING, Field, Schema

log = logging.getLogger("usync.ip_list")

IPS_PATH = "/ips-by-cluster.json"
DATA_ID = "betterstack_ip_list"

IP_LIST_SCHEMA = Schema([
    Field(
        "filter_clusters", LIST, optional=True, elem=STRING,
        description="Only return IPs of these clusters. Empty means all clusters.",
    ),
    Field("ips", LIST, computed=True, elem=STRING, description="IPs of the selected clusters."),
    Field("all_clusters", LIST, computed=True, elem=STRING, description="Every cluster name in the response."),
])


def flatten_ips(ip_data: Dict[str, List[str]], filter_clusters: List[str]) -> tuple[List[str], List[str]]:
    """Return ``(ips, all_clusters)`` for ``ip_data`` and a cluster filter."""
    wanted = set(filter_clusters or [])
    ips: List[str] = []
    all_clusters: List[str] = []
    for cluster, cluster_ips in ip_data.items():
        if not wanted or cluster in wanted:
            ips.extend(cluster_ips or [])
        all_clusters.append(cluster)
    return ips, all_clusters


class IpListDataSource(BaseDataSource):
    type_name = "ip_list"
    description = "Monitoring IPs lookup."
    schema = IP_LIST_SCHEMA

    def read(self, data: ResourceData, client: UptimeClient) -> None:
        res = client.get(IPS_PATH)
        if res.status != 200:
            raise res.error()

        ip_data = res.json()
        if not isinstance(ip_data, dict):
            raise ResourceError(f"GET {res.url}: expected a JSON object of cluster -> IP list")
        bad = sorted(c for c, v in ip_data.items() if v is not None and not isinstance(v, list))
        if bad:
            raise ResourceError(f"GET {res.url}: IPs of cluster(s) {', '.join(bad)} are not a list")

        requested = data.get("filter_clusters") or []
        ips, all_clusters = flatten_ips(ip_data, requested)
        unknown = sorted(set(requested) - set(all_clusters))
        if unknown:
            log.warning("Requested clusters not present in response: %s", ", ".join(unknown))

        data.set_id(DATA_ID)
        data.set("ips", ips)
        data.set("all_clusters", all_clusters)
