"""
Pytest configuration and fixtures for the ExplorerLLM Ops tests.

The FakeRunner stands in for docker, docker-compose, ssh and rsync. Docker
volumes are directories on disk, remote hosts are directory trees under
the test's tmp_path, and compose state is tracked per host, so pipelines
can be run end to end and their effects inspected.
"""

import re
import shlex
import shutil
import tarfile
import tempfile
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional, Set, Tuple

import pytest

from explorerllm_ops.core.exceptions import ConnectivityError
from explorerllm_ops.models.config import OpsSettings
from explorerllm_ops.orchestrator.orchestrator import BackupRestoreOrchestrator
from explorerllm_ops.runner.process import ProcessRunner

FIXED_NOW = datetime(2024, 1, 4, 14, 20, 0)

COMPOSE_YAML = """version: '3.8'
services:
  ollama:
    image: ollama/ollama
    volumes:
      - ollama_data:/root/.ollama
  open-webui:
    image: ghcr.io/open-webui/open-webui:main
    ports:
      - "3000:8080"
    volumes:
      - ollama_webui_data:/app/backend/data
volumes:
  ollama_data:
  ollama_webui_data:
"""

READ_ONLY_COMMANDS = {"test", "ls", "cat", "du", "stat"}
_REMOTE_SPEC = re.compile(r"^([^@/]+)@([^:]+):(.*)$")
_SNAPSHOT_SCRIPT = re.compile(r"tar czf /backup/(\S+) /data && mv /backup/(\S+) /backup/(\S+)")


def is_mutating(argv: List[str]) -> bool:
    """Whether a command changes state on a host."""
    if argv[0] in READ_ONLY_COMMANDS:
        return False
    if argv[0] == "docker-compose" and argv[1] == "ps":
        return False
    if argv[:2] == ["docker", "exec"] and argv[-2:] == ["ollama", "list"]:
        return False
    if argv[:2] == ["sh", "-c"] and argv[2].startswith("command -v"):
        return False
    return True


class FakeHost:
    """Compose and tool state of one simulated host."""

    def __init__(self, name: Optional[str]):
        self.name = name
        self.containers = False
        self.running = False
        self.models = ["llama2:latest", "mistral:latest"]
        self.tools: Set[str] = {"docker", "docker-compose", "rsync", "ssh"}
        self.never_ready = False
        self.fail_start = False
        self.fail_snapshot_of: Set[str] = set()

    def start_services(self):
        self.containers = True
        self.running = not self.never_ready


class FakeWorld:
    """All simulated hosts, their filesystems and their docker volumes."""

    def __init__(self, root: Path):
        self.root = root
        self.hosts: Dict[Optional[str], FakeHost] = {}
        self.drop_on_push = False

    def host(self, name: Optional[str] = None) -> FakeHost:
        if name not in self.hosts:
            self.hosts[name] = FakeHost(name)
        return self.hosts[name]

    @property
    def local(self) -> FakeHost:
        return self.host(None)

    def path(self, host_name: Optional[str], path) -> Path:
        if host_name is None:
            return Path(path)
        return self.root / "hosts" / host_name / str(path).lstrip("/")

    def volume(self, host_name: Optional[str], volume: str) -> Path:
        return self.root / "volumes" / (host_name or "local") / volume

    def write_volume(self, host_name: Optional[str], volume: str, files: Dict[str, bytes]):
        base = self.volume(host_name, volume)
        for name, content in files.items():
            target = base / name
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(content)

    def read_volume(self, host_name: Optional[str], volume: str) -> Dict[str, bytes]:
        base = self.volume(host_name, volume)
        if not base.exists():
            return {}
        return {
            p.relative_to(base).as_posix(): p.read_bytes()
            for p in sorted(base.rglob("*")) if p.is_file()
        }


def _extract(tar: tarfile.TarFile, destination: str):
    if hasattr(tarfile, "data_filter"):
        tar.extractall(destination, filter="data")
    else:
        tar.extractall(destination)


class FakeRunner(ProcessRunner):
    """ProcessRunner that executes commands against a FakeWorld."""

    def __init__(self, world: FakeWorld):
        super().__init__()
        self.world = world
        self.calls: List[Tuple[Optional[str], List[str]]] = []
        self.executed: List[List[str]] = []

    @property
    def mutating_calls(self) -> List[Tuple[Optional[str], List[str]]]:
        return [(host, argv) for host, argv in self.calls if is_mutating(argv)]

    def commands_on(self, host_name: Optional[str]) -> List[List[str]]:
        return [argv for host, argv in self.calls if host == host_name]

    def _execute(self, command, cwd, input_text):
        self.executed.append(list(command))
        host_name, argv = self._unwrap(command)
        self.calls.append((host_name, argv))
        return self._dispatch(host_name, argv, input_text)

    @staticmethod
    def _unwrap(command: List[str]) -> Tuple[Optional[str], List[str]]:
        if command[0] != "ssh":
            return None, list(command)
        host_name = command[-2].split("@", 1)[1]
        tokens = shlex.split(command[-1])
        if len(tokens) > 3 and tokens[0] == "cd" and tokens[2] == "&&":
            tokens = tokens[3:]
        return host_name, tokens

    def _dispatch(self, host_name, argv, input_text):
        host = self.world.host(host_name)
        name = argv[0]
        if name == "docker-compose":
            return self._compose(host, argv[1:])
        if name == "docker" and argv[1] == "run":
            return self._helper(host, argv[2:])
        if name == "docker" and argv[1] == "exec":
            if not host.running:
                return 1, "", "Error: No such container"
            lines = ["NAME ID SIZE MODIFIED"] + [f"{m} abc123 3.8 GB 2 days ago" for m in host.models]
            return 0, "\n".join(lines) + "\n", ""
        if argv[:2] == ["sh", "-c"]:
            script = argv[2]
            if script.startswith("command -v "):
                tool = shlex.split(script)[2]
                if tool in host.tools:
                    return 0, f"/usr/bin/{tool}\n", ""
                return 1, "", ""
            if "get.docker.com" in script:
                host.tools |= {"docker", "docker-compose"}
                return 0, "", ""
        if name == "rsync":
            return self._rsync(argv[1:])
        return self._filesystem(host_name, argv, input_text)

    def _compose(self, host: FakeHost, args: List[str]):
        if args == ["ps"]:
            lines = ["Name   Command   State   Ports", "-" * 40]
            if host.containers:
                state = "Up" if host.running else "Exit 0"
                lines += [
                    f"explorerllm_ollama_1       /bin/ollama serve   {state}   11434/tcp",
                    f"explorerllm_open-webui_1   bash start.sh       {state}   0.0.0.0:3000->8080/tcp",
                ]
            return 0, "\n".join(lines) + "\n", ""
        if args[:2] == ["ps", "-q"]:
            return 0, ("c0ffee\n" if host.running else ""), ""
        if args[:2] == ["ps", "--services"]:
            return 0, ("ollama\nopen-webui\n" if host.running else ""), ""
        if args == ["stop"]:
            host.running = False
            return 0, "", ""
        if args == ["start"]:
            if host.fail_start or not host.containers:
                return 1, "", "ERROR: No containers to start"
            host.start_services()
            return 0, "", ""
        if args == ["up", "-d"]:
            if host.fail_start:
                return 1, "", "ERROR: failed to start"
            host.start_services()
            return 0, "", ""
        if args == ["up", "--no-start"]:
            host.containers = True
            return 0, "", ""
        return 1, "", f"unsupported compose arguments: {args}"

    def _helper(self, host: FakeHost, args: List[str]):
        mounts = {}
        index = 0
        while args[index].startswith("-"):
            if args[index] == "-v":
                source, _, mount_point = args[index + 1].rpartition(":")
                mounts[mount_point] = source
                index += 2
            else:
                index += 1
        command = args[index + 1:]

        volume_name = mounts["/data"]
        volume = self.world.volume(host.name, volume_name)
        volume.mkdir(parents=True, exist_ok=True)
        backup_dir = self.world.path(host.name, mounts["/backup"])

        if command[:2] == ["sh", "-c"]:
            match = _SNAPSHOT_SCRIPT.match(command[2])
            partial, final = match.group(1), match.group(3)
            if not backup_dir.is_dir():
                return 2, "", "tar: /backup: Cannot open: No such file or directory"
            with tarfile.open(backup_dir / partial, "w:gz") as tar:
                tar.add(volume, arcname="data")
            if volume_name in host.fail_snapshot_of:
                return 2, "", "tar: write error"
            (backup_dir / partial).rename(backup_dir / final)
            return 0, "", ""

        if command[:2] == ["tar", "xzf"]:
            archive = backup_dir / command[2][len("/backup/"):]
            if not archive.exists():
                return 2, "", f"tar: {command[2]}: Cannot open"
            with tempfile.TemporaryDirectory() as tmp:
                with tarfile.open(archive) as tar:
                    _extract(tar, tmp)
                shutil.copytree(Path(tmp) / "data", volume, dirs_exist_ok=True)
            return 0, "", ""
        return 1, "", f"unsupported helper command: {command}"

    def _endpoint(self, spec: str) -> Path:
        match = _REMOTE_SPEC.match(spec)
        if match:
            return self.world.path(match.group(2), match.group(3))
        return Path(spec)

    def _rsync(self, args: List[str]):
        flags, source, destination = args[0], args[-2], args[-1]
        src = self._endpoint(source)
        dst = self._endpoint(destination)
        if not src.is_dir():
            return 23, "", f"rsync: change_dir {source} failed: No such file or directory"

        if "n" in flags:
            differences = []
            for path in sorted(src.rglob("*")):
                if not path.is_file():
                    continue
                other = dst / path.relative_to(src)
                if not other.exists():
                    differences.append(f">f+++++++++ {path.relative_to(src).as_posix()}")
                elif other.read_bytes() != path.read_bytes():
                    differences.append(f">fc........ {path.relative_to(src).as_posix()}")
            return 0, "\n".join(differences) + ("\n" if differences else ""), ""

        pushing = _REMOTE_SPEC.match(destination) is not None
        if pushing and self.world.drop_on_push:
            dst.mkdir(parents=True, exist_ok=True)
            return 0, "", ""
        shutil.copytree(src, dst, dirs_exist_ok=True)
        return 0, "", ""

    def _filesystem(self, host_name: Optional[str], argv: List[str], input_text: Optional[str]):
        name = argv[0]
        path = self.world.path(host_name, argv[-1])
        if name == "test":
            exists = path.is_dir() if argv[1] == "-d" else path.exists()
            return (0 if exists else 1), "", ""
        if name == "mkdir":
            path.mkdir(parents=True, exist_ok=True)
            return 0, "", ""
        if name == "ls":
            if not path.is_dir():
                return 2, "", f"ls: cannot access '{argv[-1]}': No such file or directory"
            return 0, "".join(f"{p.name}\n" for p in sorted(path.iterdir())), ""
        if name == "cp":
            shutil.copy2(self.world.path(host_name, argv[-2]), path)
            return 0, "", ""
        if name == "mv":
            shutil.move(str(self.world.path(host_name, argv[-2])), str(path))
            return 0, "", ""
        if name == "tee":
            path.write_text(input_text or "")
            return 0, input_text or "", ""
        if name == "cat":
            if not path.exists():
                return 1, "", f"cat: {argv[-1]}: No such file or directory"
            return 0, path.read_text(), ""
        if name == "rm":
            if path.is_dir():
                shutil.rmtree(path)
            else:
                path.unlink(missing_ok=True)
            return 0, "", ""
        if name == "du":
            if not path.exists():
                return 1, "", "du: cannot access"
            size = sum(p.stat().st_size for p in path.rglob("*") if p.is_file())
            return 0, f"{size}\t{argv[-1]}\n", ""
        if name == "stat":
            if not path.exists():
                return 1, "", "stat: cannot stat"
            return 0, f"{int(path.stat().st_mtime)}\n", ""
        return 127, "", f"{name}: command not found"


class FakeClock:
    """Monotonic clock advanced only by sleep."""

    def __init__(self):
        self.now = 0.0
        self.sleeps: List[float] = []

    def sleep(self, seconds: float):
        self.sleeps.append(seconds)
        self.now += seconds

    def __call__(self) -> float:
        return self.now


class FakeConnectivity:
    """Connectivity validator that accepts every host except the unreachable ones."""

    def __init__(self):
        self.unreachable: Set[str] = set()
        self.checked: List[str] = []

    def require(self, target):
        self.checked.append(target.host)
        if target.host in self.unreachable:
            raise ConnectivityError(target.host)


@pytest.fixture
def world(tmp_path) -> FakeWorld:
    """Simulated hosts rooted in the test's temporary directory."""
    return FakeWorld(tmp_path / "world")


@pytest.fixture
def runner(world) -> FakeRunner:
    return FakeRunner(world)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def connectivity() -> FakeConnectivity:
    return FakeConnectivity()


@pytest.fixture
def local_tools(monkeypatch, world):
    """Resolve local tools against the simulated local host."""
    monkeypatch.setattr(
        "explorerllm_ops.validation.dependency.shutil.which",
        lambda tool: f"/usr/bin/{tool}" if tool in world.local.tools else None
    )


@pytest.fixture
def project_dir(tmp_path) -> Path:
    """A local project directory holding docker-compose.yml."""
    path = tmp_path / "explorerllm"
    path.mkdir()
    (path / "docker-compose.yml").write_text(COMPOSE_YAML)
    return path


@pytest.fixture
def settings(project_dir, tmp_path) -> OpsSettings:
    return OpsSettings(
        project_dir=project_dir,
        backup_dir=tmp_path / "backups",
        start_timeout=10,
        poll_interval=2,
    )


@pytest.fixture
def orchestrator(settings, runner, connectivity, clock, local_tools) -> BackupRestoreOrchestrator:
    return BackupRestoreOrchestrator(
        settings,
        runner=runner,
        connectivity=connectivity,
        sleep=clock.sleep,
        clock=clock,
        now=lambda: FIXED_NOW,
    )


@pytest.fixture
def populated(world, settings):
    """Local volumes with WebUI data and one model, services running."""
    world.write_volume(None, settings.webui_volume, {
        "webui.db": b"SQLite format 3\x00users and chats",
        "uploads/notes.txt": b"lesson plan",
    })
    world.write_volume(None, settings.models_volume, {
        "models/manifests/llama2": b'{"schemaVersion": 2}',
        "models/blobs/sha256-abc": bytes(range(256)) * 16,
    })
    world.local.containers = True
    world.local.running = True
    return world
