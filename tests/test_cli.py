"""Tests for the console scripts"""

import json

import pytest

from conftest import USER_ID, b64
from papertrail.vault import cli
from papertrail.vault.validator import UploadRequest


@pytest.fixture
def cli_vault(vault, config, monkeypatch):
    """Point the console scripts at the in-memory test vault"""
    monkeypatch.setattr(cli, "load_config", lambda: config)
    monkeypatch.setattr(cli, "create_vault", lambda cfg: vault)
    return vault


class TestHealthCheck:
    """Test papertrail-health"""

    def test_healthy_json(self, cli_vault, capsys):
        cli.health_check(["--json"])

        output = json.loads(capsys.readouterr().out)
        assert output["status"] == "healthy"
        assert output["object_store"] == "MemoryObjectStore"

    def test_healthy_text(self, cli_vault, capsys):
        cli.health_check([])
        assert "Status: HEALTHY" in capsys.readouterr().out

    def test_unhealthy_exits_nonzero(self, cli_vault, monkeypatch):
        def unreachable():
            raise ConnectionError("bucket unreachable")

        monkeypatch.setattr(cli_vault.object_store, "check_access", unreachable)

        with pytest.raises(SystemExit) as exc_info:
            cli.health_check(["--json"])
        assert exc_info.value.code == 1


class TestOrphanReport:
    """Test papertrail-orphans"""

    def test_lists_unreferenced_uploads(self, cli_vault, identity, capsys):
        request = UploadRequest(user_id=USER_ID, document_type_id="passport", payload=b64(b"scan"),
                                mime_or_extension="pdf", side="front")
        first = cli_vault.submit_upload(identity, request)["storageKey"]
        cli_vault.submit_upload(identity, request)

        cli.orphan_report(["--user", USER_ID, "--json"])

        output = json.loads(capsys.readouterr().out)
        assert output == {"user_id": USER_ID, "orphans": [first]}

    def test_user_is_required(self, cli_vault):
        with pytest.raises(SystemExit):
            cli.orphan_report([])
