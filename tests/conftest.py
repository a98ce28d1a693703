"""
Shared test fixtures and helpers.
"""

from __future__ import annotations

import io
import logging
import os
import tarfile
from pathlib import Path
from typing import Callable

import pytest

from crouton_edit.adapters.mock import MockAdapter
from crouton_edit.adapters.registry import AdapterRegistry
from crouton_edit.core.models.config import EditConfig
from crouton_edit.core.services.backup_common import label_member
from crouton_edit.core.services.confirm import Confirmer
from crouton_edit.core.services.encryption import Mounter

INLINE_KEY = b"\nINLINE-WRAPPED-KEY\n"
EXTERNAL_KEY = b"\nEXTERNAL-WRAPPED-KEY\n"


def populate_chroot(path: Path) -> Path:
    """Fill ``path`` with a small but varied tree."""
    (path / "etc" / "crouton").mkdir(parents=True)
    (path / "etc" / "hostname").write_text("dev\n")
    (path / "etc" / "crouton" / "targets").write_text("core,xfce\n")

    (path / "usr" / "bin").mkdir(parents=True)
    tool = path / "usr" / "bin" / "tool"
    tool.write_bytes(b"#!/bin/sh\necho hi\n")
    tool.chmod(0o755)
    os.link(tool, path / "usr" / "bin" / "tool-link")
    (path / "bin").symlink_to("usr/bin")

    (path / "var" / "empty").mkdir(parents=True)
    data = path / "home" / "user" / "data.bin"
    data.parent.mkdir(parents=True)
    data.write_bytes(bytes(range(256)) * 64)
    (path / "home" / "user" / "private").write_text("secret")
    (path / "home" / "user" / "private").chmod(0o600)
    return path


def tree_snapshot(root: Path) -> dict[str, tuple]:
    """Relative path → (kind, content or link target, permission bits)."""
    snap: dict[str, tuple] = {}
    for dirpath, dirnames, filenames in os.walk(root):
        for entry in dirnames + filenames:
            path = Path(dirpath, entry)
            rel = str(path.relative_to(root))
            st = os.lstat(path)
            if path.is_symlink():
                snap[rel] = ("link", os.readlink(path))
            elif path.is_dir():
                snap[rel] = ("dir", st.st_mode & 0o7777)
            else:
                snap[rel] = ("file", path.read_bytes(), st.st_mode & 0o7777)
    return snap


def write_archive(
    path: Path,
    top: str,
    files: dict[str, bytes] | None = None,
    *,
    label: str | None = None,
    compression: str = "gz",
) -> Path:
    """Build a small archive by hand, optionally with a volume label."""
    files = files if files is not None else {"etc/hostname": b"restored\n"}
    mode = f"w:{compression}" if compression else "w"
    with tarfile.open(path, mode, format=tarfile.GNU_FORMAT) as tar:
        if label is not None:
            tar.addfile(label_member(label, 0))
        root = tarfile.TarInfo(top)
        root.type = tarfile.DIRTYPE
        root.mode = 0o755
        tar.addfile(root)
        made: set[str] = set()
        for rel, content in files.items():
            parts = rel.split("/")[:-1]
            for i in range(1, len(parts) + 1):
                d = "/".join(parts[:i])
                if d not in made:
                    info = tarfile.TarInfo(f"{top}/{d}")
                    info.type = tarfile.DIRTYPE
                    info.mode = 0o755
                    tar.addfile(info)
                    made.add(d)
            info = tarfile.TarInfo(f"{top}/{rel}")
            info.size = len(content)
            info.mode = 0o644
            tar.addfile(info, io.BytesIO(content))
    return path


@pytest.fixture(autouse=True)
def restore_root_logger():
    """setup_logging() replaces the root handlers; put them back."""
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    for h in root.handlers:
        if h not in handlers:
            h.close()
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.fixture
def chroots_root(tmp_path: Path) -> Path:
    root = tmp_path / "chroots"
    root.mkdir()
    return root


@pytest.fixture
def make_chroot(chroots_root: Path) -> Callable[..., Path]:
    """Factory: ``make_chroot("dev", encrypted=True, keyfile=path)``."""

    def _make(name: str = "dev", *, encrypted: bool = False, keyfile: Path | None = None) -> Path:
        path = populate_chroot(chroots_root / name)
        if encrypted:
            if keyfile is not None:
                keyfile.parent.mkdir(parents=True, exist_ok=True)
                keyfile.write_bytes(EXTERNAL_KEY)
                (path / ".ecryptfs").write_text(f"{keyfile}\n")
            else:
                (path / ".ecryptfs").write_bytes(INLINE_KEY)
        return path

    return _make


@pytest.fixture
def mock_adapter() -> MockAdapter:
    return MockAdapter()


@pytest.fixture
def registry(mock_adapter: MockAdapter) -> AdapterRegistry:
    reg = AdapterRegistry()
    reg.register(mock_adapter)
    return reg


@pytest.fixture
def mounter(registry: AdapterRegistry, chroots_root: Path) -> Mounter:
    return Mounter(registry, chroots_root)


@pytest.fixture
def config(chroots_root: Path, tmp_path: Path) -> EditConfig:
    return EditConfig(
        chroots_root=chroots_root,
        bin_dir=tmp_path / "bin",
        restore_grace_seconds=0,
    )


def refuse_prompt(question: str) -> str:
    raise AssertionError(f"Unexpected prompt: {question}")


@pytest.fixture
def no_prompt() -> Confirmer:
    """A confirmer that fails the test if it ever has to ask."""
    return Confirmer(prompt=refuse_prompt)
