import os

from sshconn import platform_utils


def test_env_overrides(monkeypatch, tmp_path):
    monkeypatch.setenv("SSHCONN_CONFIG_DIR", str(tmp_path / "conf"))
    monkeypatch.setenv("SSHCONN_DATA_DIR", str(tmp_path / "data"))
    monkeypatch.setenv("SSHCONN_SSH_DIR", str(tmp_path / "dotssh"))

    assert platform_utils.get_config_dir() == str(tmp_path / "conf")
    assert platform_utils.get_data_dir() == str(tmp_path / "data")
    assert platform_utils.get_ssh_dir() == str(tmp_path / "dotssh")
    assert platform_utils.get_default_ssh_config_path() == str(tmp_path / "dotssh" / "config")


def test_xdg_locations(monkeypatch, tmp_path):
    for name in ("SSHCONN_CONFIG_DIR", "SSHCONN_DATA_DIR"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setattr(platform_utils, "is_windows", lambda: False)
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "xdg-config"))
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "xdg-data"))

    assert platform_utils.get_config_dir() == str(tmp_path / "xdg-config" / "ssh-conn")
    assert platform_utils.get_data_dir() == str(tmp_path / "xdg-data" / "ssh-conn")


def test_ssh_dir_defaults_to_home(monkeypatch, tmp_path):
    monkeypatch.delenv("SSHCONN_SSH_DIR", raising=False)
    monkeypatch.setenv("HOME", str(tmp_path))

    assert platform_utils.get_ssh_dir() == os.path.join(str(tmp_path), ".ssh")


def test_supports_exec_matches_posix():
    assert platform_utils.supports_exec() is (os.name == "posix")
