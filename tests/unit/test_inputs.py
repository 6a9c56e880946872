"""Tests for the three input variants."""

import json
from pathlib import Path

import pytest

from iotdeploy.deploy.context import DeploymentContext
from iotdeploy.deploy.inputs import (
    CONTAINER_INSTANCE_NAME,
    ComposeFileInput,
    ContainerImageInput,
    SourcePackageInput,
    docker_login,
)
from iotdeploy.domain import Credentials, Device, PlacementNode, ExportedEndpoint
from tests.fixtures import FakeRemote, FakeRunner

DESCRIPTOR = json.dumps({"nodes": [{"id": "10.0.0.5", "exportedEndpoints": [{"handlerId": "h1"}]}]})
NODE = PlacementNode(id="10.0.0.5", exported_endpoints=(ExportedEndpoint("h1"),))


@pytest.fixture
def context() -> DeploymentContext:
    return DeploymentContext(deployment_dir="/usr/deployment", port=8080)


@pytest.fixture
def scripted_remote(device: Device) -> FakeRemote:
    return FakeRemote(device, responses={"cat ": DESCRIPTOR})


# ============================================================================
# Registry login
# ============================================================================


@pytest.mark.unit
def test_docker_login_sends_password_on_stdin(remote: FakeRemote) -> None:
    assert docker_login(remote, Credentials("robot", "token"))

    assert remote.probes == ["sudo docker login --username robot --password-stdin"]
    assert remote.stdin == ["token\n"]


@pytest.mark.unit
def test_docker_login_is_skipped_for_anonymous_credentials(remote: FakeRemote) -> None:
    assert not docker_login(remote, Credentials.empty())

    assert remote.all_commands == []


@pytest.mark.unit
def test_failed_docker_login_does_not_raise(device: Device) -> None:
    remote = FakeRemote(device, failing=("docker login",))

    assert docker_login(remote, Credentials("robot", "wrong")) is False


# ============================================================================
# Source package
# ============================================================================


@pytest.mark.unit
def test_source_package_prepare_builds_on_device(
    tmp_path: Path, context: DeploymentContext, remote: FakeRemote
) -> None:
    (tmp_path / ".build" / "debug").mkdir(parents=True)
    (tmp_path / "Package.swift").write_text("// swift-tools-version:5.5\n")
    runner = FakeRunner()
    source = SourcePackageInput(package_dir=tmp_path, product="Svc", runner=runner)

    source.prepare_inputs(context, remote)

    assert not (tmp_path / ".build").exists()
    assert runner.calls == []
    assert remote.uploads == [(str(tmp_path), "/usr/deployment/Svc")]
    assert remote.commands == [
        "cd /usr/deployment/Svc && swift package update",
        "cd /usr/deployment/Svc && swift build -c debug --product Svc",
    ]


@pytest.mark.unit
def test_source_package_without_password_is_synced_with_rsync(
    tmp_path: Path, context: DeploymentContext
) -> None:
    (tmp_path / "Package.swift").write_text("// swift-tools-version:5.5\n")
    remote = FakeRemote(Device("_workstation._tcp", "pi-kitchen.local", "10.0.0.5", username="pi"))
    runner = FakeRunner()

    SourcePackageInput(package_dir=tmp_path, product="Svc", runner=runner).prepare_inputs(context, remote)

    assert remote.uploads == []
    assert runner.calls[0][0] == "rsync"
    assert runner.calls[0][-1] == "pi@10.0.0.5:/usr/deployment/Svc/"


@pytest.mark.unit
def test_source_package_export_and_launch(
    tmp_path: Path, context: DeploymentContext, scripted_remote: FakeRemote
) -> None:
    source = SourcePackageInput(package_dir=tmp_path, product="Svc", runner=FakeRunner())

    path, placement = source.export_structure(context, scripted_remote, "default")
    source.launch(context, scripted_remote, NODE, path)

    assert path.startswith("/usr/deployment/AM_") and path.endswith(".json")
    assert placement.nodes[0].id == "10.0.0.5"
    assert scripted_remote.commands[0] == (
        f"cd /usr/deployment/Svc/.build/debug && ./Svc export-structure {path} "
        "--ip-address 10.0.0.5 --action-keys default --port 8080"
    )
    assert scripted_remote.probes == ["tmux kill-session -t Svc"]
    assert scripted_remote.commands[-1] == (
        "cd /usr/deployment/Svc/.build/debug && "
        f"tmux new-session -d -s Svc './Svc startup {path} --node-id 10.0.0.5 --endpoint-ids h1'"
    )


@pytest.mark.unit
def test_source_package_exports_use_unique_paths(
    tmp_path: Path, context: DeploymentContext, scripted_remote: FakeRemote
) -> None:
    source = SourcePackageInput(package_dir=tmp_path, product="Svc", runner=FakeRunner())

    first, _ = source.export_structure(context, scripted_remote, "default")
    second, _ = source.export_structure(context, scripted_remote, "default")

    assert first != second


# ============================================================================
# Container image
# ============================================================================


@pytest.mark.unit
def test_container_image_export_runs_image_with_mounted_dir(
    context: DeploymentContext, scripted_remote: FakeRemote
) -> None:
    source = ContainerImageInput("svc:latest")

    path, placement = source.export_structure(context, scripted_remote, "lifx,default")

    assert path == "/usr/deployment/WebServiceStructure.json"
    assert scripted_remote.probes == [
        "test -w /usr/deployment",
        "sudo rm -f /usr/deployment/WebServiceStructure.json",
    ]
    assert scripted_remote.commands == [
        "cd /usr/deployment && sudo docker run --rm -v /usr/deployment:/app/tmp:Z svc:latest "
        "export-structure /app/tmp/WebServiceStructure.json --ip-address 10.0.0.5 "
        "--action-keys lifx,default --port 8080",
        "cd /usr/deployment && cat /usr/deployment/WebServiceStructure.json",
    ]
    assert placement.nodes[0].handler_ids == ["h1"]


@pytest.mark.unit
def test_container_image_export_makes_dir_writable(context: DeploymentContext, device: Device) -> None:
    remote = FakeRemote(device, responses={"cat ": DESCRIPTOR}, failing=("test -w",))

    ContainerImageInput("svc:latest").export_structure(context, remote, "default")

    assert remote.probes[:2] == ["test -w /usr/deployment", "sudo chmod 777 /usr/deployment"]


@pytest.mark.unit
def test_container_image_launch_is_detached_and_privileged(
    context: DeploymentContext, remote: FakeRemote
) -> None:
    source = ContainerImageInput("svc:latest")

    source.launch(context, remote, NODE, "/usr/deployment/WebServiceStructure.json")

    assert remote.probes == [f"sudo docker rm -f {CONTAINER_INSTANCE_NAME}"]
    assert remote.commands == [
        f"cd /usr/deployment && sudo docker run --rm --name {CONTAINER_INSTANCE_NAME} -p 8080:8080 -d "
        "--privileged -v /usr/deployment:/app/tmp:Z svc:latest "
        "startup /app/tmp/WebServiceStructure.json --node-id 10.0.0.5 --endpoint-ids h1"
    ]


@pytest.mark.unit
def test_container_image_prepare_only_logs_in(context: DeploymentContext, remote: FakeRemote) -> None:
    ContainerImageInput("svc:latest").prepare_inputs(context, remote, Credentials("robot", "token"))

    assert remote.commands == []
    assert remote.probes == ["sudo docker login --username robot --password-stdin"]


# ============================================================================
# Compose file
# ============================================================================


@pytest.mark.unit
def test_compose_product_name_is_parent_dir(tmp_path: Path) -> None:
    compose_file = tmp_path / "DemoService" / "docker-compose.yml"

    assert ComposeFileInput(compose_file).product_name == "DemoService"


@pytest.mark.unit
def test_compose_prepare_logs_in_and_copies_file(
    tmp_path: Path, context: DeploymentContext, remote: FakeRemote
) -> None:
    compose_file = tmp_path / "docker-compose.yml"
    compose_file.write_text("services: {}\n")
    runner = FakeRunner()

    ComposeFileInput(compose_file, runner=runner).prepare_inputs(context, remote, Credentials("robot", "token"))

    assert remote.probes == ["sudo docker login --username robot --password-stdin"]
    assert remote.uploads == [(str(compose_file), "/usr/deployment/docker-compose.yml")]
    assert runner.calls == []


@pytest.mark.unit
def test_compose_export_and_launch_use_env_files(
    tmp_path: Path, context: DeploymentContext, scripted_remote: FakeRemote
) -> None:
    runner = FakeRunner()
    source = ComposeFileInput(tmp_path / "docker-compose.yml", runner=runner)

    path, _ = source.export_structure(context, scripted_remote, "default")
    source.launch(context, scripted_remote, NODE, path)

    compose = "sudo docker compose -f /usr/deployment/docker-compose.yml --env-file /usr/deployment/deployment.env up"
    assert scripted_remote.commands == [
        compose,
        "cd /usr/deployment && cat /usr/deployment/WebServiceStructure.json",
        f"{compose} -d",
    ]
    assert runner.calls == []
    assert [target for _, target in scripted_remote.uploads] == ["/usr/deployment/deployment.env"] * 2
    assert "startup /app/tmp/WebServiceStructure.json --node-id 10.0.0.5" in (
        scripted_remote.uploaded_text["/usr/deployment/deployment.env"]
    )


@pytest.mark.unit
def test_watch_paths_per_variant(tmp_path: Path) -> None:
    assert ContainerImageInput("svc:latest").watch_paths() == []
    assert SourcePackageInput(tmp_path, "Svc").watch_paths() == [tmp_path]
    assert ComposeFileInput(tmp_path / "c.yml").watch_paths() == [tmp_path / "c.yml"]


@pytest.mark.unit
def test_compose_export_removes_previous_descriptor_before_running(
    tmp_path: Path, context: DeploymentContext, scripted_remote: FakeRemote
) -> None:
    ComposeFileInput(tmp_path / "docker-compose.yml").export_structure(context, scripted_remote, "default")

    assert "sudo rm -f /usr/deployment/WebServiceStructure.json" in scripted_remote.probes
    assert scripted_remote.commands[0].startswith("sudo docker compose")
