"""Tests for the canned scenarios against the in-memory cluster."""

import pytest
from fakes import FakeCluster

from dnsprobe.cluster import ClusterError
from dnsprobe.config import ProbeConfig
from dnsprobe.errors import DeploymentError, ProbeTimeoutError, ValidationError
from dnsprobe.runner import ProbeContext
from dnsprobe.scenarios import (
    EXTERNAL_NAME_SERVICE,
    HOSTNAME_SERVICE,
    REGULAR_SERVICE,
    cluster_dns,
    custom_nameserver,
    external_name,
    get_scenario,
    hosts_entries,
    partial_cluster_names,
    pod_hostname,
    pod_subdomain,
    registered_scenarios,
    scenario_summary,
    services_dns,
)

CONFIG = ProbeConfig(namespace="e2e", poll_interval=1.0, poll_timeout=10.0)


def _answering_cluster() -> FakeCluster:
    """Cluster where every lookup succeeds and hosts files list every alias."""
    cluster = FakeCluster()

    def respond(handle, artifact_id: str) -> str:
        if "_hosts@" in artifact_id:
            return artifact_id.split("@", 1)[1] + "\n"
        return "OK\n"

    cluster.responder = respond
    return cluster


def _ctx(cluster: FakeCluster) -> ProbeContext:
    return ProbeContext(cluster=cluster, config=CONFIG, clock=cluster.clock)


class TestNameScenarios:
    """Cluster, partial-name and hosts-file scenarios."""

    def test_cluster_dns(self) -> None:
        cluster = _answering_cluster()
        result = cluster_dns(_ctx(cluster))

        assert result.expected_ids == (
            "wheezy_udp@kubernetes.default.svc.cluster.local",
            "jessie_udp@kubernetes.default.svc.cluster.local",
        )
        assert result.complete
        assert len(cluster.deleted) == 1

    def test_cluster_dns_extra_names(self) -> None:
        result = cluster_dns(_ctx(_answering_cluster()), extra_names=["google.com"])
        assert "jessie_udp@google.com" in result.expected_ids

    def test_partial_names_and_hosts(self) -> None:
        result = partial_cluster_names(_ctx(_answering_cluster()))

        assert "wheezy_udp@kubernetes.default" in result.expected_ids
        assert "jessie_udp@kubernetes.default.svc" in result.expected_ids
        assert (
            "wheezy_hosts@dns-querier-1.dns-test-service.e2e.svc.cluster.local"
            in result.expected_ids
        )
        assert "jessie_hosts@dns-querier-1" in result.expected_ids

    def test_hosts_entries(self) -> None:
        result = hosts_entries(_ctx(_answering_cluster()))
        assert all("_hosts@" in artifact_id for artifact_id in result.expected_ids)
        assert len(result.expected_ids) == 4

    def test_wrong_hosts_entry_fails(self) -> None:
        cluster = FakeCluster()
        cluster.responder = lambda handle, artifact_id: "localhost\n"

        with pytest.raises(ValidationError) as excinfo:
            hosts_entries(_ctx(cluster))
        assert len(excinfo.value.failures) == 4


class TestServicesScenario:
    """services_dns() creates, checks and deletes its services."""

    def test_fqdn(self) -> None:
        cluster = _answering_cluster()
        result = services_dns(_ctx(cluster))

        assert "wheezy_udp@dns-test-service.e2e.svc.cluster.local" in result.expected_ids
        assert (
            f"jessie_udp@_http._tcp.{REGULAR_SERVICE}.e2e.svc.cluster.local"
            in result.expected_ids
        )
        # The headless service has no cluster IP, so the regular one gets the first.
        assert "wheezy_udp@10.96.0.10_PTR" in result.expected_ids

    def test_sandbox_matches_selector(self) -> None:
        cluster = _answering_cluster()
        services_dns(_ctx(cluster))

        manifest = cluster.sandboxes[0]
        assert manifest["metadata"]["labels"] == {"dns-test": "true"}
        assert manifest["spec"]["subdomain"] == "dns-test-service"

    def test_services_deleted_in_reverse(self) -> None:
        cluster = _answering_cluster()
        services_dns(_ctx(cluster))

        assert cluster.deleted_resources == [REGULAR_SERVICE, "dns-test-service"]
        assert cluster.resources == {}

    def test_partial(self) -> None:
        result = services_dns(_ctx(_answering_cluster()), partial=True)

        assert "wheezy_udp@dns-test-service" in result.expected_ids
        assert "wheezy_udp@dns-test-service.e2e" in result.expected_ids
        assert "jessie_udp@_http._tcp.dns-test-service.e2e.svc" in result.expected_ids

    def test_service_create_failure(self) -> None:
        cluster = _answering_cluster()
        cluster.resources[REGULAR_SERVICE] = {"metadata": {"name": REGULAR_SERVICE}}

        with pytest.raises(DeploymentError, match=REGULAR_SERVICE):
            services_dns(_ctx(cluster))

        # The headless service created first is still cleaned up.
        assert cluster.deleted_resources == ["dns-test-service"]
        assert cluster.sandboxes == []


class TestPodScenarios:
    """pod_hostname() and pod_subdomain() scenarios."""

    def test_pod_hostname(self) -> None:
        cluster = _answering_cluster()
        result = pod_hostname(_ctx(cluster))

        assert result.expected_ids == (
            "wheezy_hosts@dns-querier-2.dns-test-service-2.e2e.svc.cluster.local",
            "wheezy_hosts@dns-querier-2",
            "jessie_hosts@dns-querier-2.dns-test-service-2.e2e.svc.cluster.local",
            "jessie_hosts@dns-querier-2",
        )
        spec = cluster.sandboxes[0]["spec"]
        assert spec["hostname"] == "dns-querier-2"
        assert spec["subdomain"] == HOSTNAME_SERVICE
        assert cluster.deleted_resources == [HOSTNAME_SERVICE]

    def test_pod_subdomain(self) -> None:
        result = pod_subdomain(_ctx(_answering_cluster()))
        assert result.expected_ids == (
            "wheezy_udp@dns-querier-2.dns-test-service-2.e2e.svc.cluster.local",
            "jessie_udp@dns-querier-2.dns-test-service-2.e2e.svc.cluster.local",
        )


class TestExternalNameScenario:
    """external_name() follows service updates."""

    def _cluster(self, follow_updates: bool = True) -> FakeCluster:
        cluster = FakeCluster()

        def respond(handle, artifact_id: str) -> str:
            if not follow_updates:
                return "foo.example.com.\n"
            spec = cluster.resources[EXTERNAL_NAME_SERVICE]["spec"]
            if spec.get("type") == "ExternalName":
                return spec["externalName"] + ".\n"
            return spec["clusterIP"] + "\n"

        cluster.responder = respond
        return cluster

    def test_cname_follows_updates(self) -> None:
        cluster = self._cluster()
        results = external_name(_ctx(cluster))

        fqdn = "dns-test-service-3.e2e.svc.cluster.local"
        assert [r.observed[f"wheezy_udp@{fqdn}"].strip() for r in results] == [
            "foo.example.com.",
            "bar.example.com.",
            "10.96.0.10",
        ]
        assert len(cluster.sandboxes) == 3
        assert len(cluster.deleted) == 3
        assert cluster.deleted_resources == [EXTERNAL_NAME_SERVICE]

    def test_cluster_ip_update_drops_external_name(self) -> None:
        cluster = self._cluster()
        specs: list[dict] = []
        update = cluster.update_named_resource

        def recording_update(name, mutator):
            updated = update(name, mutator)
            specs.append(updated["spec"])
            return updated

        cluster.update_named_resource = recording_update  # type: ignore[method-assign]
        external_name(_ctx(cluster))

        assert specs[0]["externalName"] == "bar.example.com"
        assert specs[1]["type"] == "ClusterIP"
        assert "externalName" not in specs[1]

    def test_stale_cname_times_out(self) -> None:
        cluster = self._cluster(follow_updates=False)

        with pytest.raises(ProbeTimeoutError) as excinfo:
            external_name(_ctx(cluster))

        fqdn = "dns-test-service-3.e2e.svc.cluster.local"
        assert excinfo.value.pending == [f"wheezy_udp@{fqdn}", f"jessie_udp@{fqdn}"]
        assert "last seen" in str(excinfo.value)
        assert "'foo.example.com.'" in str(excinfo.value)
        # The stale answer was re-read on every tick until the deadline.
        assert excinfo.value.result.ticks == 11
        assert cluster.deleted_resources == [EXTERNAL_NAME_SERVICE]

    def test_answers_lag_behind_updates(self) -> None:
        cluster = FakeCluster()
        # (time the answer becomes visible, answer) in update order.
        answers: list[tuple[float, str]] = []

        def answer_for(service: dict) -> str:
            spec = service["spec"]
            if spec.get("type") == "ExternalName":
                return spec["externalName"] + ".\n"
            return spec["clusterIP"] + "\n"

        create = cluster.create_named_resource
        update = cluster.update_named_resource

        def recording_create(manifest):
            created = create(manifest)
            answers.append((cluster.clock.now(), answer_for(created)))
            return created

        def lagging_update(name, mutator):
            updated = update(name, mutator)
            answers.append((cluster.clock.now() + 3.0, answer_for(updated)))
            return updated

        def respond(handle, artifact_id: str) -> str | None:
            visible = [a for at, a in answers if at <= cluster.clock.now()]
            return visible[-1] if visible else None

        cluster.create_named_resource = recording_create  # type: ignore[method-assign]
        cluster.update_named_resource = lagging_update  # type: ignore[method-assign]
        cluster.responder = respond
        config = ProbeConfig(namespace="e2e", poll_interval=1.0, poll_timeout=60.0)

        results = external_name(
            ProbeContext(cluster=cluster, config=config, clock=cluster.clock)
        )

        fqdn = "dns-test-service-3.e2e.svc.cluster.local"
        assert [r.observed[f"wheezy_udp@{fqdn}"].strip() for r in results] == [
            "foo.example.com.",
            "bar.example.com.",
            "10.96.0.10",
        ]
        # Each update was only visible on the fourth fetch after it.
        assert [r.ticks for r in results] == [1, 4, 4]

    def test_update_failure(self) -> None:
        cluster = self._cluster()

        def broken_update(name, mutator):
            raise ClusterError("conflict")

        cluster.update_named_resource = broken_update  # type: ignore[method-assign]
        with pytest.raises(DeploymentError, match="Failed to update service"):
            external_name(_ctx(cluster))
        assert cluster.deleted_resources == [EXTERNAL_NAME_SERVICE]


class TestCustomNameserverScenario:
    """custom_nameserver() points the sandbox resolver at its own server."""

    def _cluster(self, server_ip: str = "10.0.0.53") -> FakeCluster:
        cluster = FakeCluster()

        def respond(handle, artifact_id: str) -> str:
            pod = next(s for s in cluster.sandboxes if s["metadata"]["name"] == handle.name)
            dns_config = pod["spec"].get("dnsConfig", {})
            if (
                pod["spec"].get("dnsPolicy") == "None"
                and dns_config.get("nameservers") == [server_ip]
                and "resolv.conf.local" in dns_config.get("searches", [])
            ):
                return "1.1.1.1\n"
            return "10.96.0.1\n"

        cluster.responder = respond
        return cluster

    def test_resolves_through_configured_nameserver(self) -> None:
        cluster = self._cluster()
        config = ProbeConfig(
            namespace="e2e", poll_interval=1.0, poll_timeout=10.0, nameserver="10.0.0.53"
        )

        result = custom_nameserver(
            ProbeContext(cluster=cluster, config=config, clock=cluster.clock)
        )

        assert result.observed["wheezy_udp@notexistname"].strip() == "1.1.1.1"
        assert result.observed["jessie_udp@notexistname"].strip() == "1.1.1.1"
        pod_spec = cluster.sandboxes[0]["spec"]
        assert pod_spec["dnsPolicy"] == "None"
        assert pod_spec["dnsConfig"] == {
            "nameservers": ["10.0.0.53"],
            "searches": ["resolv.conf.local"],
            "options": [{"name": "ndots", "value": "2"}],
        }
        assert "dig +short +search notexistname A" in pod_spec["containers"][1]["command"][2]
        assert len(cluster.deleted) == 1

    def test_explicit_server_ip(self) -> None:
        cluster = self._cluster(server_ip="10.0.0.99")

        result = custom_nameserver(_ctx(cluster), "10.0.0.99")

        assert result.complete
        assert cluster.sandboxes[0]["spec"]["dnsConfig"]["nameservers"] == ["10.0.0.99"]

    def test_cluster_answer_times_out(self) -> None:
        cluster = self._cluster(server_ip="10.0.0.53")

        with pytest.raises(ProbeTimeoutError) as excinfo:
            custom_nameserver(_ctx(cluster), "10.0.0.7")

        assert "'10.96.0.1'" in str(excinfo.value)

    def test_needs_a_nameserver(self) -> None:
        cluster = self._cluster()

        with pytest.raises(ValueError, match="needs a nameserver"):
            custom_nameserver(_ctx(cluster))
        assert cluster.sandboxes == []


class TestRegistry:
    """Scenario lookup by name."""

    def test_registered(self) -> None:
        assert registered_scenarios() == [
            "cluster",
            "cluster-partial",
            "custom-nameserver",
            "external-name",
            "hosts",
            "pod-hostname",
            "pod-subdomain",
            "services",
            "services-partial",
        ]

    def test_get_scenario(self) -> None:
        assert get_scenario("cluster") is cluster_dns

    def test_unknown(self) -> None:
        with pytest.raises(ValueError, match="Unknown scenario"):
            get_scenario("nope")

    def test_summary_is_first_docstring_line(self) -> None:
        assert scenario_summary("custom-nameserver") == (
            "A sandbox with ``dnsPolicy: None`` uses only its own resolver config."
        )
        assert scenario_summary("services-partial").startswith("Headless and regular")
