"""
Pytest configuration for the FusedKernelLibrary MCP Server tests.
"""

from __future__ import annotations

import os
import stat
import sys
from pathlib import Path

import pytest

from mcp_fkl.config import AppConfig, ProjectConfig, TimeoutsConfig

CMAKE_CONTENT = """\
cmake_minimum_required(VERSION 3.24)
set(PROJECT_VERSION_MAJOR 0)
set(PROJECT_VERSION_MINOR 1)
set(PROJECT_VERSION_REV 9)
project(FusedKernelLibrary VERSION ${PROJECT_VERSION_MAJOR}.${PROJECT_VERSION_MINOR}.${PROJECT_VERSION_REV})
"""

README_CONTENT = """\
# FusedKernelLibrary

```cpp
#include <fused_kernel/fused_kernel.h>
using namespace fk;
auto pipeline = PerThreadRead<_2D, uchar3>::build(input).then(Mul<float>::build(2.f));
```
"""

EXAMPLE_CONTENT = """\
#include <fused_kernel/algorithms/basic_ops/arithmetic.h>

int launch() {
    return fk::executeOperations(stream, read.then(write));
}
"""

# Fake toolchain: prints its own name and argv, and creates the -B
# directory like cmake configure does.
FAKE_TOOL_SOURCE = """\
#!{python}
import os
import sys

name = os.path.basename(sys.argv[0])
args = sys.argv[1:]
if "-B" in args:
    os.makedirs(args[args.index("-B") + 1], exist_ok=True)
if os.environ.get("FAKE_TOOL_FAIL") == name:
    sys.stderr.write(name + ": simulated failure\\n")
    sys.exit(2)
sys.stdout.write("[" + name + "] " + " ".join(args) + "\\n")
sys.stderr.write("[" + name + "] stderr\\n")
"""


def pytest_configure(config: pytest.Config) -> None:
    """Configure pytest markers."""
    config.addinivalue_line(
        "markers",
        "integration: marks tests that spawn real subprocesses",
    )


@pytest.fixture
def project_root(tmp_path: Path) -> Path:
    """Create a minimal FusedKernelLibrary checkout."""
    root = tmp_path / "FusedKernelLibrary"
    (root / "tests" / "algorithm").mkdir(parents=True)
    (root / "CMakeLists.txt").write_text(CMAKE_CONTENT)
    (root / "README.md").write_text(README_CONTENT)
    (root / "tests" / "algorithm" / "test_arith.cpp").write_text(EXAMPLE_CONTENT)
    (root / "tests" / "common.h").write_text("#pragma once\n")
    (root / "tests" / "kernel.cu").write_text("// cuda\n")
    (root / "tests" / "notes.txt").write_text("not an example\n")
    return root


@pytest.fixture
def app_config(project_root: Path) -> AppConfig:
    """AppConfig pointing at the temporary checkout with short timeouts."""
    return AppConfig(
        project=ProjectConfig(root=project_root),
        timeouts=TimeoutsConfig(
            configure_seconds=20,
            build_seconds=20,
            test_seconds=20,
            probe_seconds=5,
        ),
    )


@pytest.fixture
def fake_toolchain(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Put fake cmake, ctest, nvcc and nvidia-smi executables first on PATH."""
    bin_dir = tmp_path / "bin"
    bin_dir.mkdir()
    source = FAKE_TOOL_SOURCE.format(python=sys.executable)
    for name in ("cmake", "ctest", "nvcc", "nvidia-smi"):
        tool = bin_dir / name
        tool.write_text(source)
        tool.chmod(tool.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    monkeypatch.setenv("PATH", f"{bin_dir}{os.pathsep}{os.environ.get('PATH', '')}")
    monkeypatch.delenv("FAKE_TOOL_FAIL", raising=False)
    return bin_dir


@pytest.fixture
def empty_path(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Make PATH contain only an empty directory, so no toolchain is found."""
    empty = tmp_path / "empty-bin"
    empty.mkdir()
    monkeypatch.setenv("PATH", str(empty))
