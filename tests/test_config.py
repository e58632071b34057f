import os
import tempfile

from kamalproxy.config import Config


def test_default_ports():
    config = Config()
    assert config.http_port == 80
    assert config.https_port == 443
    assert config.metrics_port == 0


def test_socket_path_uses_runtime_dir(monkeypatch, tmp_path):
    monkeypatch.setenv("XDG_RUNTIME_DIR", str(tmp_path))

    assert Config().socket_path() == os.path.join(str(tmp_path), "kamal-proxy.sock")


def test_socket_path_falls_back_to_temp_dir(monkeypatch):
    monkeypatch.delenv("XDG_RUNTIME_DIR", raising=False)

    assert Config().socket_path() == os.path.join(tempfile.gettempdir(), "kamal-proxy.sock")


def test_alternate_config_dir(tmp_path):
    config = Config(alternate_config_dir=str(tmp_path))

    assert config.state_path() == os.path.join(str(tmp_path), "kamal-proxy.state")
    assert config.certificate_path() == os.path.join(str(tmp_path), "certs")


def test_default_data_dir_is_created_under_home(monkeypatch, tmp_path):
    monkeypatch.setenv("HOME", str(tmp_path))
    monkeypatch.setenv("USERPROFILE", str(tmp_path))

    expected_dir = os.path.join(str(tmp_path), ".config", "kamal-proxy")
    assert Config().state_path() == os.path.join(expected_dir, "kamal-proxy.state")
    assert os.path.isdir(expected_dir)


def test_default_data_dir_falls_back_when_unwritable(monkeypatch, tmp_path):
    home_file = tmp_path / "home"
    home_file.write_text("not a directory")
    monkeypatch.setenv("HOME", str(home_file))
    monkeypatch.setenv("USERPROFILE", str(home_file))

    assert Config().certificate_path() == os.path.join(tempfile.gettempdir(), "certs")