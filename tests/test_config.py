import json

from slotmap.config import CONFIG, DEFAULT_CONFIG, DisplayOptions, load_config


class TestDisplayOptions:
    def test_no_flags_enables_everything(self):
        assert DisplayOptions.from_flags() == DisplayOptions(True, True, True, True, True)

    def test_flags_select_sections(self):
        options = DisplayOptions.from_flags(mapping=True, driver=True)
        assert options.mapping and options.driver
        assert not (options.vms or options.net or options.verbose)


class TestLoadConfig:
    def test_overrides_defaults(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"BRIDGE_NAME": "vmbr1", "COMMAND_TIMEOUT": 5}))
        config = load_config(str(path))
        assert config["BRIDGE_NAME"] == "vmbr1"
        assert CONFIG["COMMAND_TIMEOUT"] == 5
        assert CONFIG["LSPCI_BINARY"] == "lspci"

    def test_environment_variable(self, isolated_config, tmp_path):
        load_config()
        assert CONFIG["LOG_DIR"] == str(tmp_path / "logs")

    def test_explicit_path_wins_over_environment(self, tmp_path):
        path = tmp_path / "other.json"
        path.write_text(json.dumps({"LOG_DIR": "/tmp/elsewhere"}))
        load_config(str(path))
        assert CONFIG["LOG_DIR"] == "/tmp/elsewhere"

    def test_missing_file_uses_defaults(self, tmp_path):
        assert load_config(str(tmp_path / "absent.json")) == DEFAULT_CONFIG

    def test_invalid_json_uses_defaults(self, tmp_path):
        path = tmp_path / "broken.json"
        path.write_text("{not json")
        assert load_config(str(path)) == DEFAULT_CONFIG

    def test_non_object_is_ignored(self, tmp_path):
        path = tmp_path / "list.json"
        path.write_text("[1, 2]")
        assert load_config(str(path)) == DEFAULT_CONFIG

    def test_reload_resets_previous_overrides(self, tmp_path):
        first = tmp_path / "first.json"
        first.write_text(json.dumps({"BRIDGE_NAME": "vmbr9"}))
        load_config(str(first))
        load_config(str(tmp_path / "absent.json"))
        assert CONFIG["BRIDGE_NAME"] == "vmbr0"
