"""
Filesystem access for backup set directories.

Backup sets live either on the local host or, during a migration, on a
remote host. Both are reached through the same small interface so the
pipelines do not care where a directory is.
"""

import shutil
from abc import ABC, abstractmethod
from datetime import datetime
from pathlib import Path, PurePosixPath
from typing import List, Optional, Union

from explorerllm_ops.models.config import RemoteTarget
from explorerllm_ops.runner.process import ProcessRunner

PathLike = Union[str, Path, PurePosixPath]


class HostFilesystem(ABC):
    """Directory and file operations on one host."""

    description = "local host"

    @abstractmethod
    def exists(self, path: PathLike) -> bool:
        pass

    @abstractmethod
    def is_dir(self, path: PathLike) -> bool:
        pass

    @abstractmethod
    def make_dirs(self, path: PathLike) -> None:
        pass

    @abstractmethod
    def list_dir(self, path: PathLike) -> List[str]:
        """Names of the entries in a directory, sorted."""
        pass

    @abstractmethod
    def copy_file(self, source: PathLike, destination: PathLike) -> None:
        pass

    @abstractmethod
    def move(self, source: PathLike, destination: PathLike) -> None:
        pass

    @abstractmethod
    def write_text(self, path: PathLike, text: str) -> None:
        pass

    @abstractmethod
    def read_text(self, path: PathLike) -> str:
        pass

    @abstractmethod
    def remove(self, path: PathLike) -> None:
        """Remove a file; a missing file is not an error."""
        pass

    @abstractmethod
    def remove_tree(self, path: PathLike) -> None:
        pass

    @abstractmethod
    def size(self, path: PathLike) -> Optional[int]:
        """Total size in bytes of a file or directory tree."""
        pass

    @abstractmethod
    def modified(self, path: PathLike) -> Optional[datetime]:
        pass


class LocalFilesystem(HostFilesystem):
    """HostFilesystem backed by pathlib."""

    def exists(self, path: PathLike) -> bool:
        return Path(path).exists()

    def is_dir(self, path: PathLike) -> bool:
        return Path(path).is_dir()

    def make_dirs(self, path: PathLike) -> None:
        Path(path).mkdir(parents=True, exist_ok=True)

    def list_dir(self, path: PathLike) -> List[str]:
        return sorted(p.name for p in Path(path).iterdir())

    def copy_file(self, source: PathLike, destination: PathLike) -> None:
        shutil.copy2(source, destination)

    def move(self, source: PathLike, destination: PathLike) -> None:
        shutil.move(str(source), str(destination))

    def write_text(self, path: PathLike, text: str) -> None:
        Path(path).write_text(text, encoding="utf-8")

    def read_text(self, path: PathLike) -> str:
        return Path(path).read_text(encoding="utf-8")

    def remove(self, path: PathLike) -> None:
        Path(path).unlink(missing_ok=True)

    def remove_tree(self, path: PathLike) -> None:
        shutil.rmtree(path)

    def size(self, path: PathLike) -> Optional[int]:
        path = Path(path)
        if not path.exists():
            return None
        if path.is_file():
            return path.stat().st_size
        return sum(p.stat().st_size for p in path.rglob("*") if p.is_file())

    def modified(self, path: PathLike) -> Optional[datetime]:
        path = Path(path)
        if not path.exists():
            return None
        return datetime.fromtimestamp(path.stat().st_mtime)


class RemoteFilesystem(HostFilesystem):
    """HostFilesystem that runs coreutils commands over ssh."""

    def __init__(self, runner: ProcessRunner, target: RemoteTarget):
        self.runner = runner
        self.target = target
        self.description = target.address

    def _run(self, *args: str, check: bool = True, input_text: Optional[str] = None):
        return self.runner.run(list(args), target=self.target, check=check, input_text=input_text)

    def exists(self, path: PathLike) -> bool:
        return self._run("test", "-e", str(path), check=False).ok

    def is_dir(self, path: PathLike) -> bool:
        return self._run("test", "-d", str(path), check=False).ok

    def make_dirs(self, path: PathLike) -> None:
        self._run("mkdir", "-p", str(path))

    def list_dir(self, path: PathLike) -> List[str]:
        return sorted(self._run("ls", "-1A", str(path)).lines)

    def copy_file(self, source: PathLike, destination: PathLike) -> None:
        self._run("cp", "-p", str(source), str(destination))

    def move(self, source: PathLike, destination: PathLike) -> None:
        self._run("mv", str(source), str(destination))

    def write_text(self, path: PathLike, text: str) -> None:
        self._run("tee", str(path), input_text=text)

    def read_text(self, path: PathLike) -> str:
        return self._run("cat", str(path)).stdout

    def remove(self, path: PathLike) -> None:
        self._run("rm", "-f", str(path))

    def remove_tree(self, path: PathLike) -> None:
        self._run("rm", "-rf", str(path))

    def size(self, path: PathLike) -> Optional[int]:
        result = self._run("du", "-sb", str(path), check=False)
        if not result.ok or not result.stdout.split():
            return None
        return int(result.stdout.split()[0])

    def modified(self, path: PathLike) -> Optional[datetime]:
        result = self._run("stat", "-c", "%Y", str(path), check=False)
        if not result.ok or not result.stdout.strip():
            return None
        return datetime.fromtimestamp(int(result.stdout.strip()))


def filesystem_for(runner: ProcessRunner, target: Optional[RemoteTarget] = None) -> HostFilesystem:
    """Return the filesystem of the local host or of a remote target."""
    if target is None:
        return LocalFilesystem()
    return RemoteFilesystem(runner, target)
