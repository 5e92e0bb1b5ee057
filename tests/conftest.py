import pytest

from dataform_cli.core.config import Settings


@pytest.fixture
def settings(tmp_path):
    return Settings(
        working_dir_root=str(tmp_path / "work"),
        output_dir=str(tmp_path / "out"),
    )


@pytest.fixture
def marker():
    """Shell command printing an output marker whose value is a shell expression."""
    def _marker(key: str, shell_value: str) -> str:
        return 'echo "::{\\"outputs\\":{\\"%s\\":\\"%s\\"}}::"' % (key, shell_value)
    return _marker
