import json

import pytest

from conftest import FakeAuthenticator, FakeMailClient
from pdf_organizer import cli
from pdf_organizer.errors import AuthenticationError, RetrievalError, TokenStoreError
from pdf_organizer.models import SearchQuery


@pytest.fixture
def wired(monkeypatch, settings, mailbox):
    """Replace the network-facing collaborators with fakes."""
    messages, payloads = mailbox
    settings.client_config_path.write_text(json.dumps({"client_id": "client-123"}))
    state = {
        "authenticator": FakeAuthenticator(),
        "client": FakeMailClient(messages, payloads),
    }
    monkeypatch.setattr(cli, "Authenticator", lambda *args, **kwargs: state["authenticator"])
    monkeypatch.setattr(cli, "GraphMailClient", lambda *args, **kwargs: state["client"])
    return state


def test_end_to_end_run_exits_zero(settings, wired, tmp_path):
    output_dir = tmp_path / "pdfs"

    code = cli.main(["-o", str(output_dir), "-m", "2025-12"], settings=settings)

    assert code == 0
    assert len(list(output_dir.iterdir())) == 2
    assert wired["client"].queries == [SearchQuery.for_month("2025-12")]


def test_attachment_failure_still_exits_zero(settings, wired, tmp_path):
    messages = list(wired["client"].messages.values())
    wired["client"] = FakeMailClient(messages, {"a1": b"1", "a3": b"3"}, failing_messages={"m1"})
    output_dir = tmp_path / "pdfs"

    assert cli.main(["-o", str(output_dir)], settings=settings) == 0
    assert len(list(output_dir.iterdir())) == 1


def test_all_dates_drops_date_range(settings, wired, tmp_path):
    cli.main(["-o", str(tmp_path / "pdfs"), "--all-dates"], settings=settings)

    assert wired["client"].queries == [SearchQuery()]


def test_search_failure_exits_one(settings, wired, tmp_path):
    wired["client"] = FakeMailClient([], {}, search_error=RetrievalError("search failed"))

    assert cli.main(["-o", str(tmp_path / "pdfs")], settings=settings) == 1


def test_authentication_failure_exits_one(settings, wired, tmp_path):
    wired["authenticator"] = FakeAuthenticator(error=AuthenticationError("denied"))

    assert cli.main(["-o", str(tmp_path / "pdfs")], settings=settings) == 1


def test_missing_client_config_exits_one(settings, wired, tmp_path):
    settings.client_config_path.unlink()

    assert cli.main(["-o", str(tmp_path / "pdfs")], settings=settings) == 1


def test_unparseable_client_config_exits_one(settings, wired, tmp_path):
    settings.client_config_path.write_text("{not json")

    assert cli.main(["-o", str(tmp_path / "pdfs")], settings=settings) == 1


def test_invalid_month_is_rejected(settings):
    with pytest.raises(SystemExit) as excinfo:
        cli.main(["-m", "2025-13"], settings=settings)

    assert excinfo.value.code == 2


def test_defaults_come_from_settings(settings):
    args = cli.build_parser(settings).parse_args([])

    assert args.output == settings.output_dir
    assert args.name_pattern == "{date}_{id}_{subject}_{original_filename}"


def test_invalid_environment_exits_one(monkeypatch, caplog):
    monkeypatch.setenv("CALLBACK_PORT", "abc")

    assert cli.main([]) == 1
    assert "Invalid environment configuration" in caplog.text


def test_far_future_month_is_a_usage_error(settings):
    with pytest.raises(SystemExit) as excinfo:
        cli.main(["-m", "9999-12"], settings=settings)

    assert excinfo.value.code == 2


def test_token_cache_write_failure_exits_one(settings, monkeypatch, tmp_path):
    settings.client_config_path.write_text(json.dumps({"client_id": "client-123"}))
    monkeypatch.setattr(
        cli, "Authenticator", lambda *args, **kwargs: FakeAuthenticator(error=TokenStoreError("read-only disk"))
    )
    monkeypatch.setattr(cli, "GraphMailClient", lambda *args, **kwargs: FakeMailClient([], {}))

    assert cli.main(["-o", str(tmp_path / "pdfs")], settings=settings) == 1
