"""Rollout Trigger.

Issues rolling restarts against Kubernetes workloads through the API server,
the same way ``kubectl rollout restart`` does: the pod template gets a fresh
``kubectl.kubernetes.io/restartedAt`` annotation, and the controller replaces
the pods. Completion means the API server accepted the patch; the trigger
does not wait for the rollout to converge.

Resources are restarted in configured order. A failing resource does not stop
the others: every resource is attempted and the failures are reported
together in PartialRolloutError. ClusterUnreachableError is reserved for a
control plane that cannot be contacted at all.

Example:
    >>> trigger = KubernetesRolloutTrigger(timeout=30)
    >>> outcomes = await trigger.restart(project.deployment)
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Any, Protocol

import structlog
from kubernetes import client
from kubernetes import config as k8s_config
from kubernetes.client import ApiException
from urllib3.exceptions import HTTPError as TransportError

from build_hook.errors import ClusterUnreachableError, PartialRolloutError
from build_hook.schemas.project import DeploymentSpec, split_resource
from build_hook.schemas.run import Outcome, ResourceOutcome

if TYPE_CHECKING:
    from kubernetes.client import AppsV1Api

logger = structlog.get_logger(__name__)

RESTARTED_AT_ANNOTATION = "kubectl.kubernetes.io/restartedAt"

PATCH_METHODS = {
    "deployment": "patch_namespaced_deployment",
    "statefulset": "patch_namespaced_stateful_set",
    "daemonset": "patch_namespaced_daemon_set",
}
"""AppsV1Api patch method per canonical resource kind."""


class RolloutTrigger(Protocol):
    """Interface the orchestrator uses to restart workloads."""

    async def restart(self, deployment: DeploymentSpec) -> list[ResourceOutcome]: ...


def restart_patch(restarted_at: str) -> dict[str, Any]:
    """Patch body that triggers a rolling restart."""
    return {
        "spec": {
            "template": {
                "metadata": {
                    "annotations": {RESTARTED_AT_ANNOTATION: restarted_at},
                }
            }
        }
    }


def load_apps_api(kubeconfig: Path | None = None, context: str | None = None) -> AppsV1Api:
    """Load cluster credentials and return an AppsV1Api client.

    Uses the in-cluster service account when available, otherwise the
    kubeconfig file (``kubeconfig`` or the default location).

    Raises:
        ClusterUnreachableError: If no usable configuration is found.
    """
    try:
        if kubeconfig:
            k8s_config.load_kube_config(config_file=str(kubeconfig), context=context)
        else:
            try:
                k8s_config.load_incluster_config()
            except k8s_config.ConfigException:
                k8s_config.load_kube_config(context=context)
    except (k8s_config.ConfigException, OSError) as e:
        raise ClusterUnreachableError(f"no usable cluster configuration: {e}") from e
    return client.AppsV1Api()


class KubernetesRolloutTrigger:
    """Restart Deployments, StatefulSets and DaemonSets.

    Args:
        timeout: Seconds allowed for each resource's patch call.
        kubeconfig: Optional kubeconfig path (in-cluster config otherwise).
        context: Optional kubeconfig context.
        api: Preconfigured AppsV1Api, mainly for tests.
    """

    def __init__(
        self,
        timeout: float = 30.0,
        kubeconfig: Path | None = None,
        context: str | None = None,
        api: AppsV1Api | None = None,
    ) -> None:
        self._timeout = timeout
        self._kubeconfig = kubeconfig
        self._context = context
        self._api = api

    def _apps_api(self) -> AppsV1Api:
        if self._api is None:
            self._api = load_apps_api(self._kubeconfig, self._context)
        return self._api

    async def _restart_one(
        self, api: AppsV1Api, resource: str, namespace: str, body: dict[str, Any]
    ) -> tuple[Outcome, bool]:
        """Restart one resource.

        Returns:
            The resource outcome and whether the failure was a connectivity one.
        """
        kind, name = split_resource(resource)
        patch = getattr(api, PATCH_METHODS[kind])
        try:
            await asyncio.wait_for(
                asyncio.to_thread(
                    patch,
                    name=name,
                    namespace=namespace,
                    body=body,
                    _request_timeout=self._timeout,
                ),
                timeout=self._timeout,
            )
        except ApiException as e:
            reason = {403: "forbidden", 404: "not_found"}.get(e.status or 0, "api_error")
            detail = f"{e.status} {e.reason}".strip()
            return Outcome.failed(reason, detail), False
        except asyncio.TimeoutError:
            return Outcome.failed("unreachable", f"timed out after {self._timeout:g}s"), True
        except (TransportError, OSError) as e:
            return Outcome.failed("unreachable", f"{type(e).__name__}: {e}"), True
        return Outcome.success(), False

    async def restart(self, deployment: DeploymentSpec) -> list[ResourceOutcome]:
        """Restart every resource of a deployment, in order.

        Args:
            deployment: Namespace and resources.

        Returns:
            One outcome per resource, all successful. Empty for an empty
            resource list.

        Raises:
            ClusterUnreachableError: Credentials missing, or no resource could
                reach the API server; carries every resource's outcome.
            PartialRolloutError: At least one resource failed; carries every
                resource's outcome.
        """
        if not deployment.resources:
            logger.info("rollout_noop", namespace=deployment.namespace)
            return []

        try:
            api = self._apps_api()
        except ClusterUnreachableError as e:
            unreached = [
                ResourceOutcome(resource=r, outcome=Outcome.failed("unreachable", e.detail))
                for r in deployment.resources
            ]
            raise ClusterUnreachableError(e.detail, unreached) from e
        body = restart_patch(datetime.now(timezone.utc).isoformat())
        outcomes: list[ResourceOutcome] = []
        unreachable = 0

        for resource in deployment.resources:
            log = logger.bind(resource=resource, namespace=deployment.namespace)
            log.info("resource_restarting")
            outcome, connectivity = await self._restart_one(
                api, resource, deployment.namespace, body
            )
            if outcome.ok:
                log.info("resource_restarted")
            else:
                if connectivity:
                    unreachable += 1
                log.warning("resource_restart_failed", reason=outcome.reason, detail=outcome.detail)
            outcomes.append(ResourceOutcome(resource=resource, outcome=outcome))

        if unreachable == len(outcomes):
            raise ClusterUnreachableError(outcomes[-1].outcome.detail or "", outcomes)

        failed = [o.resource for o in outcomes if not o.outcome.ok]
        if failed:
            raise PartialRolloutError(failed, outcomes)
        return outcomes


__all__ = [
    "RESTARTED_AT_ANNOTATION",
    "KubernetesRolloutTrigger",
    "RolloutTrigger",
    "load_apps_api",
    "restart_patch",
]
