from __future__ import annotations

from typing import List

import pytest

from repowiki.models import RepoMeta
from tests.fakes import make_meta


@pytest.fixture
def sample_paths() -> List[str]:
    return [f"src/module{i}/file{i}.ts" for i in range(50)]


@pytest.fixture
def sample_meta() -> RepoMeta:
    return make_meta()
