from datetime import timedelta
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from envoy_influx.errors import NetworkError, WriteError
from envoy_influx.main import main, overrides_from_args, parse_args


@pytest.fixture(autouse=True)
def _isolated_cwd(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("ENVOY_INFLUX_ENVOY__HOST", raising=False)
    monkeypatch.delenv("ENVOY_INFLUX_INTERVALS__LOOP", raising=False)
    # main() installs a SIGTERM handler; don't leave it behind for other tests.
    monkeypatch.setattr("envoy_influx.main.signal.signal", MagicMock())


def test_short_flags() -> None:
    args = parse_args(
        ["-e", "10.0.0.5", "-dba", "http://influx:8086", "-dbo", "home", "-dbn", "solar_db"]
        + ["-dbu", "admin", "-dbp", "secret", "-m", "power", "-loop", "30s"]
    )
    assert overrides_from_args(args) == {
        "envoy": {"host": "10.0.0.5"},
        "influxdb": {
            "url": "http://influx:8086",
            "org": "home",
            "bucket": "solar_db",
            "username": "admin",
            "password": "secret",
            "measurement": "power",
        },
        "intervals": {"loop": "30s"},
    }
    assert args.config == "config.toml"


def test_no_flags_means_no_overrides() -> None:
    assert overrides_from_args(parse_args([])) == {}


@patch("envoy_influx.main.Scheduler")
@patch("envoy_influx.main.InfluxWriter")
@patch("envoy_influx.main.EnvoyClient")
def test_main_wires_config_into_pipeline(
    mock_client: MagicMock, mock_writer: MagicMock, mock_scheduler: MagicMock
) -> None:
    assert main(["-e", "envoy.lan", "-m", "power", "-loop", "1m"]) == 0

    mock_client.assert_called_once_with("envoy.lan", timeout=2.0)
    influx_config = mock_writer.call_args.args[0]
    assert influx_config.measurement == "power"
    writer = mock_writer.return_value.__enter__.return_value
    mock_scheduler.assert_called_once_with(
        mock_client.return_value, writer, interval=timedelta(minutes=1)
    )
    mock_scheduler.return_value.run.assert_called_once()
    mock_writer.return_value.__exit__.assert_called_once()


@pytest.mark.parametrize("error", [NetworkError("refused"), WriteError("unauthorized")])
@patch("envoy_influx.main.Scheduler")
@patch("envoy_influx.main.InfluxWriter")
@patch("envoy_influx.main.EnvoyClient")
def test_one_shot_failure_exits_non_zero(
    mock_client: MagicMock, mock_writer: MagicMock, mock_scheduler: MagicMock, error: Exception
) -> None:
    mock_scheduler.return_value.run.side_effect = error
    assert main([]) == 1
    mock_scheduler.return_value.run.assert_called_once()
    mock_writer.return_value.__exit__.assert_called_once()


@patch("envoy_influx.main.Scheduler")
@patch("envoy_influx.main.InfluxWriter")
@patch("envoy_influx.main.EnvoyClient")
def test_keyboard_interrupt_is_a_clean_exit(
    mock_client: MagicMock, mock_writer: MagicMock, mock_scheduler: MagicMock
) -> None:
    mock_scheduler.return_value.run.side_effect = KeyboardInterrupt
    assert main(["-loop", "10s"]) == 0
    mock_writer.return_value.__exit__.assert_called_once()


def test_one_shot_end_to_end(capsys: pytest.CaptureFixture[str]) -> None:
    envoy_json = (Path(__file__).parent / "production_details.json").read_text()
    response = MagicMock(text=envoy_json)
    influx_client = MagicMock()

    with (
        patch("envoy_influx.envoy_client.requests.get", return_value=response) as mock_get,
        patch("envoy_influx.influx_writer.InfluxDBClient", return_value=influx_client),
    ):
        assert main(["-e", "envoy.local"]) == 0

    mock_get.assert_called_once_with("http://envoy.local/production.json?details=1", timeout=2.0)
    write_api = influx_client.write_api.return_value
    records = [c.kwargs["record"] for c in write_api.write.call_args_list]
    assert [r.to_line_protocol().split(" ")[0] for r in records] == [
        "readings,type=total-consumption",
        "readings,type=net-consumption",
        "readings,type=production",
    ]
    influx_client.close.assert_called_once()
    assert capsys.readouterr().out.count("\n") == 3


@pytest.mark.parametrize("argv", [["-loop", "soon"], ["-loop", "5 parsecs"]])
@patch("envoy_influx.main.Scheduler")
def test_invalid_flag_value_is_a_usage_error(
    mock_scheduler: MagicMock, argv: list[str], capsys: pytest.CaptureFixture[str]
) -> None:
    with pytest.raises(SystemExit) as excinfo:
        main(argv)
    assert excinfo.value.code == 2
    err = capsys.readouterr().err
    assert err.startswith("usage:")
    assert "invalid configuration" in err
    assert "loop" in err
    mock_scheduler.assert_not_called()


def test_invalid_config_file_value_is_a_usage_error(tmp_path: Path) -> None:
    (tmp_path / "config.toml").write_text('[intervals]\nloop = "5 parsecs"\n')
    with pytest.raises(SystemExit) as excinfo:
        main([])
    assert excinfo.value.code == 2
