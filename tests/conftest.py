import pytest

from config import get_settings
from storage import get_store, reset_state


@pytest.fixture(autouse=True)
def data_dir(tmp_path, monkeypatch):
    root = tmp_path / "data"
    monkeypatch.setenv("FINTRACK_DATA_DIR", str(root))
    get_settings.cache_clear()
    get_store.cache_clear()
    reset_state()
    yield root
    get_settings.cache_clear()
    get_store.cache_clear()
    reset_state()
