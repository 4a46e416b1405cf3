"""
Shared fixtures
"""
from pathlib import Path

import pytest

from core.account import NodeAccount
from tests.fake_node import DEV_PRIVATE_KEY, FakeNode


@pytest.fixture
def fake_node():
    """A fresh fake node for each test"""
    node = FakeNode()
    yield node
    node.client.close()


@pytest.fixture
def key_file(tmp_path: Path) -> Path:
    """A key file as the node would write it"""
    path = tmp_path / "key"
    path.write_text(DEV_PRIVATE_KEY)
    return path


@pytest.fixture
def account() -> NodeAccount:
    return NodeAccount.from_private_key(DEV_PRIVATE_KEY)
