import pytest
import yaml

from revenue_selection import load_pipeline_config, pipeline_config_from_dict


def test_from_dict_builds_every_section():
    config = pipeline_config_from_dict(
        {
            "arima": {"max_p": 1, "d": 0, "fit_timeout": 5.0},
            "ranker": {"max_workers": 2, "batch_timeout": 60},
            "reconcile": {"drop_priority": ["filing_flag"]},
            "forecast": {"horizon": 12, "alpha": 0.1},
            "window_start": 6,
        }
    )

    assert config.arima.max_p == 1
    assert config.arima.d == 0
    assert config.ranker.max_workers == 2
    assert config.ranker.arima is config.arima
    assert config.reconcile.arima is config.arima
    assert config.reconcile.drop_priority == ["filing_flag"]
    assert config.forecast.horizon == 12
    assert config.window_start == 6


def test_empty_mapping_gives_defaults():
    config = pipeline_config_from_dict({})

    assert config.arima.seasonal_period == 12
    assert config.forecast.horizon is None
    assert config.window_start == 0


def test_unknown_keys_are_rejected():
    with pytest.raises(ValueError, match="max_r"):
        pipeline_config_from_dict({"arima": {"max_r": 1}})
    with pytest.raises(ValueError, match="sections"):
        pipeline_config_from_dict({"plotting": {}})
    with pytest.raises(ValueError, match="arima"):
        pipeline_config_from_dict({"ranker": {"arima": {}}})


def test_load_from_yaml(tmp_path):
    path = tmp_path / "selection.yaml"
    path.write_text(yaml.safe_dump({"arima": {"max_q": 1}, "ranker": {"max_workers": 1}}))

    config = load_pipeline_config(path)

    assert config.arima.max_q == 1
    assert config.ranker.max_workers == 1


def test_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_pipeline_config(tmp_path / "missing.yaml")
