import pytest

from utils.config import Settings


@pytest.fixture
def make_settings(tmp_path):
    """Build Settings rooted in tmp_path, ignoring any .env file."""

    def _make(**overrides) -> Settings:
        values = {
            "API_DOMAIN": "example.okta.com",
            "API_TOKEN": "secret-token",
            "STATE_PATH": str(tmp_path / "state" / "checkpoint.json"),
            "TMP_DIR": str(tmp_path / "tmp"),
            "OUTPUT_DIR": str(tmp_path / "out"),
        }
        values.update(overrides)
        return Settings(_env_file=None, **values)

    return _make
