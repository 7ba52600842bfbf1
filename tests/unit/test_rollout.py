"""Unit tests for the Kubernetes Rollout Trigger.

AppsV1Api is replaced by a MagicMock; no cluster is contacted.
"""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest
from kubernetes.client import ApiException
from kubernetes.config import ConfigException
from urllib3.exceptions import MaxRetryError

from build_hook.errors import ClusterUnreachableError, PartialRolloutError
from build_hook.rollout import (
    RESTARTED_AT_ANNOTATION,
    KubernetesRolloutTrigger,
    load_apps_api,
    restart_patch,
)
from build_hook.schemas.project import DeploymentSpec


@pytest.fixture
def api() -> MagicMock:
    return MagicMock()


def _deployment(*resources: str) -> DeploymentSpec:
    return DeploymentSpec(namespace="web", resources=resources)


class TestRestartPatch:
    def test_patch_sets_restarted_at_annotation(self) -> None:
        body = restart_patch("2026-01-30T10:00:00+00:00")
        annotations = body["spec"]["template"]["metadata"]["annotations"]
        assert annotations == {RESTARTED_AT_ANNOTATION: "2026-01-30T10:00:00+00:00"}


class TestRestart:
    """Tests for restart()."""

    @pytest.mark.asyncio
    async def test_restarts_each_kind(self, api: MagicMock) -> None:
        trigger = KubernetesRolloutTrigger(api=api)

        outcomes = await trigger.restart(_deployment("deployment/web", "sts/db", "ds/agent"))

        assert [o.resource for o in outcomes] == ["deployment/web", "sts/db", "ds/agent"]
        assert all(o.outcome.ok for o in outcomes)
        api.patch_namespaced_deployment.assert_called_once()
        kwargs = api.patch_namespaced_deployment.call_args.kwargs
        assert kwargs["name"] == "web"
        assert kwargs["namespace"] == "web"
        assert kwargs["_request_timeout"] == 30.0
        assert RESTARTED_AT_ANNOTATION in kwargs["body"]["spec"]["template"]["metadata"][
            "annotations"
        ]
        api.patch_namespaced_stateful_set.assert_called_once()
        api.patch_namespaced_daemon_set.assert_called_once()

    @pytest.mark.asyncio
    async def test_empty_resources_is_noop(self, api: MagicMock) -> None:
        trigger = KubernetesRolloutTrigger(api=api)

        assert await trigger.restart(_deployment()) == []
        assert api.mock_calls == []

    @pytest.mark.asyncio
    async def test_every_resource_attempted_after_failure(self, api: MagicMock) -> None:
        """A missing first resource does not stop the second."""
        api.patch_namespaced_deployment.side_effect = [
            ApiException(status=404, reason="Not Found"),
            None,
        ]
        trigger = KubernetesRolloutTrigger(api=api)

        with pytest.raises(PartialRolloutError) as exc_info:
            await trigger.restart(_deployment("deployment/gone", "deployment/web"))

        error = exc_info.value
        assert error.failed == ["deployment/gone"]
        assert [o.resource for o in error.outcomes] == ["deployment/gone", "deployment/web"]
        assert error.outcomes[0].outcome.reason == "not_found"
        assert error.outcomes[1].outcome.ok
        assert api.patch_namespaced_deployment.call_count == 2

    @pytest.mark.asyncio
    async def test_forbidden(self, api: MagicMock) -> None:
        api.patch_namespaced_deployment.side_effect = ApiException(status=403, reason="Forbidden")
        trigger = KubernetesRolloutTrigger(api=api)

        with pytest.raises(PartialRolloutError) as exc_info:
            await trigger.restart(_deployment("deployment/web"))

        assert exc_info.value.outcomes[0].outcome.reason == "forbidden"

    @pytest.mark.asyncio
    async def test_all_unreachable_is_cluster_unreachable(self, api: MagicMock) -> None:
        api.patch_namespaced_deployment.side_effect = MaxRetryError(
            pool=None, url="/apis/apps/v1", reason=None
        )
        trigger = KubernetesRolloutTrigger(api=api)

        with pytest.raises(ClusterUnreachableError) as exc_info:
            await trigger.restart(_deployment("deployment/web", "deployment/api"))

        assert api.patch_namespaced_deployment.call_count == 2
        outcomes = exc_info.value.outcomes
        assert [o.resource for o in outcomes] == ["deployment/web", "deployment/api"]
        assert all(o.outcome.reason == "unreachable" for o in outcomes)

    @pytest.mark.asyncio
    async def test_request_timeout_bounds_each_call(self, api: MagicMock) -> None:
        """The client call itself is bounded, not only the await on it."""
        trigger = KubernetesRolloutTrigger(timeout=5, api=api)

        await trigger.restart(_deployment("sts/db"))

        assert api.patch_namespaced_stateful_set.call_args.kwargs["_request_timeout"] == 5

    @pytest.mark.asyncio
    async def test_missing_credentials_reports_every_resource(self) -> None:
        with patch(
            "build_hook.rollout.load_apps_api",
            side_effect=ClusterUnreachableError("no usable cluster configuration"),
        ):
            trigger = KubernetesRolloutTrigger()
            with pytest.raises(ClusterUnreachableError) as exc_info:
                await trigger.restart(_deployment("deployment/web", "ds/agent"))

        outcomes = exc_info.value.outcomes
        assert [o.resource for o in outcomes] == ["deployment/web", "ds/agent"]
        assert outcomes[0].outcome.detail == "no usable cluster configuration"

    @pytest.mark.asyncio
    async def test_some_unreachable_is_partial(self, api: MagicMock) -> None:
        api.patch_namespaced_deployment.side_effect = [
            None,
            ConnectionRefusedError("refused"),
        ]
        trigger = KubernetesRolloutTrigger(api=api)

        with pytest.raises(PartialRolloutError) as exc_info:
            await trigger.restart(_deployment("deployment/web", "deployment/api"))

        assert exc_info.value.outcomes[1].outcome.reason == "unreachable"


class TestLoadAppsApi:
    """Tests for credential loading."""

    def test_prefers_in_cluster_config(self) -> None:
        with patch("build_hook.rollout.k8s_config") as k8s_config, patch(
            "build_hook.rollout.client"
        ) as client:
            k8s_config.ConfigException = ConfigException
            load_apps_api()

        k8s_config.load_incluster_config.assert_called_once()
        k8s_config.load_kube_config.assert_not_called()
        client.AppsV1Api.assert_called_once()

    def test_falls_back_to_kubeconfig(self) -> None:
        with patch("build_hook.rollout.k8s_config") as k8s_config, patch("build_hook.rollout.client"):
            k8s_config.ConfigException = ConfigException
            k8s_config.load_incluster_config.side_effect = ConfigException("not in cluster")
            load_apps_api(context="staging")

        k8s_config.load_kube_config.assert_called_once_with(context="staging")

    def test_no_configuration(self) -> None:
        with patch("build_hook.rollout.k8s_config") as k8s_config:
            k8s_config.ConfigException = ConfigException
            k8s_config.load_incluster_config.side_effect = ConfigException("not in cluster")
            k8s_config.load_kube_config.side_effect = ConfigException("no kubeconfig")

            with pytest.raises(ClusterUnreachableError, match="no usable cluster configuration"):
                load_apps_api()

    @pytest.mark.asyncio
    async def test_trigger_loads_lazily(self) -> None:
        with patch("build_hook.rollout.load_apps_api") as loader:
            trigger = KubernetesRolloutTrigger(timeout=5)
            loader.assert_not_called()
            await trigger.restart(_deployment("deployment/web"))

        loader.assert_called_once_with(None, None)
