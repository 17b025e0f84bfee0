"""設定読み込みとパラメータ変換のテスト。"""
from tposlive.config import default_config, load_config, save_config
from tposlive.job.params import LiveParams, ProgressParams


def test_missing_file_returns_defaults(tmp_path):
    assert load_config(str(tmp_path / "none.yaml")) == default_config()


def test_partial_file_is_merged_over_defaults(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("live:\n  phase_cutoff_minute: 720\n", encoding="utf-8")
    config = load_config(str(path))
    assert config["live"]["phase_cutoff_minute"] == 720
    assert config["live"]["utc_offset_hours"] == 7
    assert config["progress"]["hard_timeout_sec"] == 120


def test_broken_yaml_falls_back(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("live: [unclosed\n", encoding="utf-8")
    assert load_config(str(path)) == default_config()


def test_save_and_reload(tmp_path):
    path = str(tmp_path / "config.yaml")
    config = default_config()
    config["tpos"]["default_crm_team_id"] = "999"
    save_config(config, path)
    assert load_config(path)["tpos"]["default_crm_team_id"] == "999"


def test_out_of_range_cutoff_is_corrected():
    assert LiveParams.from_config({"live": {"phase_cutoff_minute": 5000}}).phase_cutoff_minute == 750


def test_progress_params_from_defaults():
    params = ProgressParams.from_config(default_config())
    assert params.debounce_sec == 0.3
    assert params.silence_window_sec == 15
    assert params.fallback_max_polls == 60
