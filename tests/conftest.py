import os
import pathlib
import sys
import pytest


# Ensure repo root is on PYTHONPATH for direct package imports (e.g. `import herdbook`).
_REPO_ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(_REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(_REPO_ROOT))


def _env_flag(name: str) -> bool:
    v = (os.environ.get(name) or '').strip().lower()
    return v in {'1', 'true', 'yes', 'y', 'on'}


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line(
        "markers",
        "slow: slow correctness tests (skipped unless HERDBOOK_RUN_SLOW=1)",
    )


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    run_slow = _env_flag('HERDBOOK_RUN_SLOW')

    for item in items:
        if 'slow' in item.keywords and not run_slow:
            item.add_marker(pytest.mark.skip(reason='slow tests skipped; set HERDBOOK_RUN_SLOW=1 to enable'))


@pytest.fixture(autouse=True)
def _fresh_config(monkeypatch):
    """Every test starts from default configuration with no HERDBOOK_* overrides."""
    from herdbook.config import get_config_manager

    for name in list(os.environ):
        if name.startswith("HERDBOOK_") and name != "HERDBOOK_RUN_SLOW":
            monkeypatch.delenv(name, raising=False)
    get_config_manager().reset()
    yield
    get_config_manager().reset()


@pytest.fixture
def registry():
    from herdbook.registry import LivestockRegistry, RegistryLimits

    return LivestockRegistry(RegistryLimits())


@pytest.fixture
def authorized(registry):
    registry.set_authority("AUTH")
    return registry


@pytest.fixture
def ctx():
    from herdbook.registry import CallContext

    def _ctx(caller: str = "A", block_height: int = 100):
        return CallContext(caller=caller, block_height=block_height)
    return _ctx
