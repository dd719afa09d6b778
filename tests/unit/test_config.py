from stampede.core.config import Settings


def test_default_run_config():
    run_config = Settings.get_run_config()

    assert run_config["scheduler_tick_interval"] > 0
    assert run_config["threshold_eval_interval"] > 0
    assert run_config["trend_percentiles"] == Settings.get_trend_percentiles()
    assert Settings.validate_run_config() is True


def test_invalid_percentile_setting(monkeypatch):
    monkeypatch.setattr(Settings, "SUMMARY_TREND_PERCENTILES", "50,150")
    assert Settings.validate_run_config() is False


def test_invalid_interval_setting(monkeypatch):
    monkeypatch.setattr(Settings, "SCHEDULER_TICK_INTERVAL", 0.0)
    assert Settings.validate_run_config() is False
