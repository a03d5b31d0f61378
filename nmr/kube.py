from __future__ import annotations

import os
from typing import Any

from kubernetes import client, config
from kubernetes.client.rest import ApiException
from kubernetes.config.config_exception import ConfigException
from urllib3.exceptions import HTTPError

from .db import log_event
from .membership import Snapshot, dedup, parse_annotation


class SourceUnavailable(Exception):
    """The node list could not be read from the control plane."""


class PartialRead(Exception):
    """One node carried an annotation that could not be parsed."""

    def __init__(self, node: str, value: str, reason: str):
        super().__init__(f"node {node}: bad annotation value {value!r} ({reason})")
        self.node = node
        self.value = value


def load_core_api(kubeconfig: str | None) -> client.CoreV1Api:
    """Build a CoreV1Api from a kubeconfig file, or from the in-cluster service account."""
    if kubeconfig and os.path.exists(kubeconfig):
        return client.CoreV1Api(config.new_client_from_config(config_file=kubeconfig))
    cfg = client.Configuration()
    config.load_incluster_config(client_configuration=cfg)
    return client.CoreV1Api(client.ApiClient(cfg))


class KubeMemberSource:
    """Reads traffic-eligible node addresses from a node annotation."""

    def __init__(
        self,
        annotation_key: str,
        kubeconfig: str | None = None,
        timeout_s: float = 10,
        api: Any = None,
    ):
        self.annotation_key = annotation_key
        self.kubeconfig = kubeconfig
        self.timeout_s = timeout_s
        self._api = api
        self.partial_reads: list[PartialRead] = []

    def _core_api(self) -> Any:
        if self._api is None:
            try:
                self._api = load_core_api(self.kubeconfig)
            except (ConfigException, OSError) as e:
                raise SourceUnavailable(f"cannot load cluster credentials: {e}") from e
        return self._api

    def fetch(self) -> Snapshot:
        api = self._core_api()
        log_event("DEBUG", "Querying kubernetes for node list", component="source")
        try:
            nodes = api.list_node(_request_timeout=self.timeout_s)
        except ApiException as e:
            raise SourceUnavailable(f"listing nodes failed: HTTP {e.status} {e.reason}") from e
        except (HTTPError, OSError) as e:
            raise SourceUnavailable(f"listing nodes failed: {type(e).__name__}: {e}") from e

        items = nodes.items or []
        self.partial_reads = []
        found: list[str] = []
        for node in items:
            try:
                addr = self._node_address(node)
            except PartialRead as e:
                self.partial_reads.append(e)
                log_event("WARN", f"Skipping node: {e}", component="source")
                continue
            if addr is None:
                continue
            log_event("DEBUG", f"Found node {node.metadata.name}: {addr}", component="source")
            found.append(addr)

        snapshot = dedup(found)
        if len(snapshot) != len(found):
            log_event("WARN", f"Dropped {len(found) - len(snapshot)} duplicate node address(es)", component="source")
        log_event(
            "DEBUG",
            f"There are {len(items)} nodes in the cluster, of which {len(snapshot)} are available",
            component="source",
        )
        return snapshot

    def _node_address(self, node: Any) -> str | None:
        meta = node.metadata
        annotations = (meta.annotations if meta else None) or {}
        value = annotations.get(self.annotation_key)
        if value is None:
            return None
        try:
            return parse_annotation(value)
        except ValueError as e:
            raise PartialRead(meta.name, value, str(e)) from e
