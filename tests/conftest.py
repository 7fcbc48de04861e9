"""Root conftest.py for test configuration.

Ensures local src/ directory takes priority over any installed packages, and
provides a deterministic embedding provider plus a small TypeScript repo.
"""

import sys
from collections.abc import Sequence
from pathlib import Path
from unittest.mock import MagicMock

import pytest

# Insert local src directory at the beginning of sys.path
# This ensures that the local coderecall package is used, not any installed one
_src_dir = Path(__file__).parent.parent / "src"
if str(_src_dir) not in sys.path:
    sys.path.insert(0, str(_src_dir))

# Force reimport of coderecall modules if already imported
for module_name in list(sys.modules.keys()):
    if module_name.startswith("coderecall"):
        del sys.modules[module_name]

from coderecall.config.models import CodeRecallConfig  # noqa: E402
from coderecall.providers.retry import RetryPolicy  # noqa: E402

# One dimension per keyword bucket plus a constant bias, so no text maps to
# the zero vector.
KEYWORD_BUCKETS: tuple[tuple[str, ...], ...] = (
    ("auth", "login", "password", "token", "credential", "session"),
    ("user", "create", "profile", "account", "email"),
    ("cache", "evict", "store"),
    ("render", "format", "print"),
)
STUB_DIMENSIONS = len(KEYWORD_BUCKETS) + 1


def keyword_vector(text: str) -> list[float]:
    lowered = text.lower()
    counts = [float(sum(lowered.count(word) for word in bucket)) for bucket in KEYWORD_BUCKETS]
    return [*counts, 0.1]


def make_stub_provider(name: str = "stub", dimensions: int | None = STUB_DIMENSIONS) -> MagicMock:
    """Embedding provider mock returning keyword-bucket vectors."""
    provider = MagicMock()
    provider.name = name
    provider.model = "keyword-buckets"
    provider.dimensions = dimensions

    def embed_batch(texts: Sequence[str]) -> list[list[float]]:
        return [keyword_vector(t) for t in texts]

    provider.embed.side_effect = keyword_vector
    provider.embed_batch.side_effect = embed_batch
    return provider


AUTH_TS = """\
import { findUser } from "./user";

/** Check a password and issue a session token. */
export function authenticate(username: string, password: string): string | null {
  const found = findUser(username);
  if (!found || found.password !== password) {
    return null;
  }
  return issueToken(found.name);
}

function issueToken(name: string): string {
  return `token-${name}`;
}
"""

USER_TS = """\
export interface User {
  name: string;
  email: string;
}

const users: User[] = [];

/** Create a user record. */
export function createUser(name: string, email: string): User {
  const user = { name, email };
  users.push(user);
  return user;
}

export function findUser(name: string): User | undefined {
  return users.find((u) => u.name === name);
}
"""


@pytest.fixture
def stub_provider() -> MagicMock:
    return make_stub_provider()


@pytest.fixture
def fast_retry() -> RetryPolicy:
    """Retry policy that never sleeps long."""
    return RetryPolicy(max_attempts=2, base_delay=0.0, max_delay=0.0)


@pytest.fixture
def data_dir(tmp_path: Path) -> Path:
    path = tmp_path / "data"
    path.mkdir()
    return path


@pytest.fixture
def config(data_dir: Path) -> CodeRecallConfig:
    cfg = CodeRecallConfig()
    cfg.storage.data_dir = str(data_dir)
    cfg.indexer.max_workers = 2
    return cfg


@pytest.fixture
def ts_repo(tmp_path: Path) -> Path:
    """Two-file repository: auth.ts defines authenticate, user.ts createUser."""
    root = tmp_path / "repo"
    (root / "src").mkdir(parents=True)
    (root / "src" / "auth.ts").write_text(AUTH_TS)
    (root / "src" / "user.ts").write_text(USER_TS)
    return root
