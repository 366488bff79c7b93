from pathlib import Path

import pytest


@pytest.fixture(autouse=True)
def isolate_user_config(tmp_path_factory, monkeypatch):
    """Point the configuration loader at an empty directory.

    A developer's own ``~/.git_automation/config.json`` or
    ``GIT_AUTOMATION_SSH`` must not leak into the tests.
    """
    config_dir = Path(tmp_path_factory.mktemp("git_automation_home"))
    monkeypatch.setattr(
        "git_automation.config.loader._get_config_directory", lambda: config_dir
    )
    monkeypatch.delenv("GIT_AUTOMATION_SSH", raising=False)
    yield config_dir
