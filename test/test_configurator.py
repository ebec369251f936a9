from pytest import fixture

from stormcrow.configurator import AppConfigurator


@fixture
def configurator(monkeypatch, tmp_path) -> AppConfigurator:
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("STORMCROW_SETTINGS", raising=False)
    return AppConfigurator("stormcrow", package_name="stormcrow")


def test_names_derived_from_app_name():
    configurator = AppConfigurator("stormcrow")
    assert configurator.default_filename == "stormcrow.cfg"
    assert configurator.environment_variable == "STORMCROW_SETTINGS"


def test_package_defaults(configurator):
    config = {}
    assert configurator.configure(config)

    assert config["HYPERVISOR"]["type"] == "libvirt"
    assert config["CONTROL"]["socket"] == "/run/stormcrow/control.sock"
    assert config["REMOVE_REQUIRES_OWNER"] is True
    assert "__doc__" not in config


def test_layered_configuration(configurator, tmp_path, monkeypatch):
    first = tmp_path / "first.cfg"
    first.write_text("REMOVE_REQUIRES_OWNER = False\nEVENT_QUEUE_SIZE = 8\nfoo = 1\n")
    second = tmp_path / "second.cfg"
    second.write_text("EVENT_QUEUE_SIZE = 16\n")
    monkeypatch.setenv("STORMCROW_SETTINGS", str(second))

    config = {}
    assert configurator.configure(config, str(first))

    assert config["REMOVE_REQUIRES_OWNER"] is False
    assert config["EVENT_QUEUE_SIZE"] == 16
    assert "foo" not in config


def test_default_file_in_current_directory(configurator, tmp_path):
    (tmp_path / "stormcrow.cfg").write_text("EVENT_QUEUE_SIZE = 4\n")

    config = {}
    assert configurator.configure(config)
    assert config["EVENT_QUEUE_SIZE"] == 4


def test_missing_files(configurator, tmp_path, monkeypatch):
    # The default configuration file is optional
    assert configurator.configure({})

    # Files given explicitly are mandatory
    assert not configurator.configure({}, str(tmp_path / "missing.cfg"))

    # So is the file named by the environment variable
    monkeypatch.setenv("STORMCROW_SETTINGS", str(tmp_path / "missing.cfg"))
    assert not configurator.configure({})


def test_invalid_configuration_is_rejected(configurator, tmp_path):
    path = tmp_path / "bad.cfg"
    path.write_text("REMOVE_REQUIRES_OWNER = 'yes'\n")
    assert not configurator.configure({}, str(path))

    path.write_text("CONTROL = {'socket': ''}\n")
    assert not configurator.configure({}, str(path))

    path.write_text("HYPERVISOR = {'type': 'dry-run', 'timeout': 0}\n")
    assert not configurator.configure({}, str(path))

    path.write_text("HYPERVISOR = {'type': 'dry-run', 'timeout': None}\n")
    assert configurator.configure({}, str(path))
