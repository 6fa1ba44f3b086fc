import logging
import os
import pathlib
import sys
from typing import List

import pytest


# Ensure repo root is on PYTHONPATH for direct package imports (e.g. `import tyron`).
_REPO_ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(_REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(_REPO_ROOT))

from tyron.account import SSIAccount  # noqa: E402
from tyron.authenticators import AuthenticatorDirectory  # noqa: E402
from tyron.config import AccountConfig, ConfigManager  # noqa: E402
from tyron.events import EventBus, EventRecorder  # noqa: E402
from tyron.keys import KeyPair  # noqa: E402
from tyron.observability import ROOT_LOGGER_NAME, AuditLog, StructuredHandler  # noqa: E402


def _env_flag(name: str) -> bool:
    v = (os.environ.get(name) or '').strip().lower()
    return v in {'1', 'true', 'yes', 'y', 'on'}


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line(
        "markers",
        "slow: slow correctness tests (skipped unless TYRON_RUN_SLOW=1)",
    )


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    run_slow = _env_flag('TYRON_RUN_SLOW')
    for item in items:
        if 'slow' in item.keywords and not run_slow:
            item.add_marker(pytest.mark.skip(reason='slow tests skipped; set TYRON_RUN_SLOW=1 to enable'))


def make_key(n: int) -> KeyPair:
    """Deterministic key pair number ``n`` (1-255)."""
    return KeyPair.from_seed(bytes([n]) * 32, kid=f"key-{n}")


@pytest.fixture(autouse=True)
def _isolate_process_state():
    ConfigManager.reset()
    yield
    ConfigManager.reset()
    root = logging.getLogger(ROOT_LOGGER_NAME)
    for handler in list(root.handlers):
        if isinstance(handler, StructuredHandler):
            root.removeHandler(handler)


@pytest.fixture
def owner() -> KeyPair:
    return make_key(1)


@pytest.fixture
def environment() -> KeyPair:
    return make_key(2)


@pytest.fixture
def new_owner() -> KeyPair:
    return make_key(3)


@pytest.fixture
def guardians() -> List[KeyPair]:
    return [make_key(n) for n in range(10, 15)]


@pytest.fixture
def config() -> AccountConfig:
    return AccountConfig()


@pytest.fixture
def directory() -> AuthenticatorDirectory:
    return AuthenticatorDirectory()


@pytest.fixture
def bus() -> EventBus:
    return EventBus()


@pytest.fixture
def recorder(bus) -> EventRecorder:
    return EventRecorder(bus)


@pytest.fixture
def audit_log() -> AuditLog:
    return AuditLog()


@pytest.fixture
def account(owner, environment, guardians, config, directory, bus, recorder, audit_log) -> SSIAccount:
    """Account with the first three guardians registered (threshold 3)."""
    return SSIAccount.create(
        owner.identity,
        guardians=[g.identity for g in guardians[:3]],
        environment=environment.identity,
        config=config,
        directory=directory,
        event_bus=bus,
        audit_log=audit_log,
    )


def sign_votes(account: SSIAccount, new_owner, signers: List[KeyPair]):
    """Guardian identities and signatures voting for ``new_owner``."""
    digest = account.recovery_digest(new_owner)
    return [s.identity for s in signers], [s.sign(digest) for s in signers]
