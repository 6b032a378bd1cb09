import pytest

from app import cli


def test_parser_defaults():
    args = cli.build_parser().parse_args([])

    assert args.config is None
    assert args.migrate is None
    assert args.verbose is False


def test_parser_options():
    args = cli.build_parser().parse_args(["--config", "prod.env", "--migrate", "down", "--verbose"])

    assert args.config == "prod.env"
    assert args.migrate == "down"
    assert args.verbose is True


def test_parser_rejects_unknown_migration():
    with pytest.raises(SystemExit):
        cli.build_parser().parse_args(["--migrate", "sideways"])


@pytest.fixture
def quiet_logging(monkeypatch):
    monkeypatch.setattr(cli, "setup_logging", lambda verbose=False, sink=None: None)


def test_bad_config_exits_nonzero(monkeypatch, quiet_logging):
    def broken(env_file=None):
        raise ValueError("LOG_LEVEL: Unknown LOG_LEVEL: LOUD")

    monkeypatch.setattr(cli, "load_settings", broken)

    assert cli.main(["--config", "broken.env"]) == 1


def test_migration_runs_and_exits(monkeypatch, quiet_logging):
    directions = []

    async def fake_migration(direction):
        directions.append(direction)

    monkeypatch.setattr(cli, "load_settings", lambda env_file=None: None)
    monkeypatch.setattr(cli, "run_migration", fake_migration)

    assert cli.main(["--migrate", "up"]) == 0
    assert directions == ["up"]


def test_failed_migration_exits_nonzero(monkeypatch, quiet_logging):
    async def failing_migration(direction):
        raise ConnectionError("Could not connect to MongoDB")

    monkeypatch.setattr(cli, "load_settings", lambda env_file=None: None)
    monkeypatch.setattr(cli, "run_migration", failing_migration)

    assert cli.main(["--migrate", "down"]) == 1
