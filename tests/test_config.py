import pytest

from songbridge.exceptions import ConfigurationError
from songbridge.models import RelayConfig
from songbridge.storage import ConfigManager


def test_missing_file_gives_defaults(tmp_path):
    config = ConfigManager(tmp_path / "absent.ini").load_config()
    assert config == RelayConfig()
    assert config.default_provider == "gequbao"
    assert (config.retry_limit, config.retry_delay_ms, config.download_timeout) == (2, 600, 30.0)


def test_file_values_and_cli_overrides(tmp_path):
    path = tmp_path / "config.ini"
    path.write_text(
        "[DEFAULT]\nport = 9000\ndefault_provider = Livepoo\nrequest_timeout = 7.5\n"
        "retry_limit = 4\nhost = 0.0.0.0\n",
        encoding="utf-8",
    )

    config = ConfigManager(path).load_config({"port": 9100, "host": None})

    assert config.port == 9100
    assert config.host == "0.0.0.0"
    assert config.default_provider == "livepoo"
    assert config.request_timeout == 7.5
    assert config.retry_limit == 4


def test_unparseable_number_is_a_configuration_error(tmp_path):
    path = tmp_path / "config.ini"
    path.write_text("[DEFAULT]\nport = eighty\n", encoding="utf-8")
    with pytest.raises(ConfigurationError):
        ConfigManager(path).load_config()


@pytest.mark.parametrize(
    "overrides",
    [
        {"port": 0},
        {"retry_limit": 11},
        {"chunk_size": 512},
        {"max_workers": 0},
        {"download_timeout": 0},
        {"default_provider": "  "},
    ],
)
def test_out_of_range_values_are_rejected(tmp_path, overrides):
    with pytest.raises(ConfigurationError):
        ConfigManager(tmp_path / "absent.ini").load_config(overrides)


def test_save_new_config_round_trip(tmp_path):
    path = tmp_path / "nested" / "config.ini"
    manager = ConfigManager(path)

    manager.save_new_config({"port": 8123, "max_workers": 4})

    text = path.read_text(encoding="utf-8")
    for key in RelayConfig.get_ini_keys():
        assert f"{key} = " in text
    config = ConfigManager(path).load_config()
    assert config.port == 8123
    assert config.max_workers == 4


def test_save_new_config_rejects_invalid_settings(tmp_path):
    with pytest.raises(ConfigurationError):
        ConfigManager(tmp_path / "config.ini").save_new_config({"port": 70000})
