import pytest

from keyupload import __main__ as cli
from keyupload.controller import build_upload_controller


def test_parser_requires_a_command():
    with pytest.raises(SystemExit):
        cli.build_parser().parse_args([])


def test_parser_accepts_cover_traffic_once():
    args = cli.build_parser().parse_args(["cover-traffic", "--once"])

    assert args.command == "cover-traffic"
    assert args.once is True


def test_main_runs_a_single_tick(monkeypatch, settings):
    captured = {}

    async def fake_run(once):
        captured["once"] = once
        return 0

    monkeypatch.setattr(cli, "get_settings", lambda: settings)
    monkeypatch.setattr(cli, "configure_logging", lambda **kwargs: captured.update(kwargs))
    monkeypatch.setattr(cli, "run_cover_traffic", fake_run)

    assert cli.main(["cover-traffic", "--once"]) == 0
    assert captured["once"] is True
    assert captured["level"] == "INFO"


@pytest.mark.asyncio
async def test_run_cover_traffic_once_uses_configured_controller(monkeypatch, settings, server, fake_connectivity):
    # A skipped tick sends nothing and reports success.
    monkeypatch.setattr(
        cli,
        "build_upload_controller",
        lambda s: build_upload_controller(s, connectivity=fake_connectivity(), http_transport=server.transport),
    )
    monkeypatch.setattr(cli, "get_settings", lambda: settings.model_copy(update={"cover_traffic_execution_probability": 0.0}))

    assert await cli.run_cover_traffic(once=True) == 0
    assert server.requests == []
