from __future__ import annotations

from pathlib import Path

import pytest

from tests._fixtures.proto_workspace import ProtoWorkspaceBuilder


@pytest.fixture
def proto_workspace(tmp_path: Path) -> ProtoWorkspaceBuilder:
    """Provide a reusable schema workspace builder rooted at the pytest tmp_path."""
    return ProtoWorkspaceBuilder(tmp_path)
