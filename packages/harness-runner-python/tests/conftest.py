from __future__ import annotations

import pytest

from runner_helpers import ListWriter


@pytest.fixture
def list_writer() -> ListWriter:
    return ListWriter()
