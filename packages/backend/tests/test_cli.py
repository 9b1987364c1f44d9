"""CLI tests — click commands against a mocked Profile Service."""

import json

import httpx
import pytest
from click.testing import CliRunner

from accountflow.auth.tokens import verify_token
from accountflow.cli import main as cli
from accountflow.client.transfer import ProfileClient


@pytest.fixture()
def fake_service(monkeypatch):
    """Route the CLI's ProfileClient to a programmable handler."""
    state = {"requests": [], "response": httpx.Response(200, json={})}

    def handler(request: httpx.Request):
        state["requests"].append(request)
        return state["response"]

    def profile_client(token, api_url):
        async def token_provider():
            return token

        http = httpx.AsyncClient(
            transport=httpx.MockTransport(handler),
            base_url=api_url or "http://api.test/api/v1",
        )
        return ProfileClient(token_provider, http=http)

    monkeypatch.setattr(cli, "_profile_client", profile_client)
    return state


def test_token_mint():
    runner = CliRunner()
    result = runner.invoke(
        cli.main, ["token", "mint", "--subject", "abc", "--email", "a@example.com", "--verified"]
    )
    assert result.exit_code == 0
    claims = verify_token(result.output.strip())
    assert claims["sub"] == "abc"
    assert claims["email_verified"] is True


def test_profile_show(fake_service):
    fake_service["response"] = httpx.Response(
        200, json={"subjectId": "abc", "phone": "555-0100"}
    )
    result = CliRunner().invoke(cli.main, ["profile", "show", "--token", "tok"])
    assert result.exit_code == 0
    assert json.loads(result.output)["phone"] == "555-0100"
    assert fake_service["requests"][0].headers["Authorization"] == "Bearer tok"


def test_profile_show_missing(fake_service):
    fake_service["response"] = httpx.Response(404, json={"error": "Profile not found"})
    result = CliRunner().invoke(cli.main, ["profile", "show", "--token", "tok"])
    assert result.exit_code == 1
    assert "No profile stored" in result.output


def test_profile_set(fake_service):
    fake_service["response"] = httpx.Response(
        201, json={"subjectId": "abc", "phone": "1", "accountType": "staff"}
    )
    result = CliRunner().invoke(
        cli.main,
        ["profile", "set", "--token", "tok", "--phone", "1", "--account-type", "staff"],
    )
    assert result.exit_code == 0
    sent = json.loads(fake_service["requests"][0].content)
    assert sent == {"phone": "1", "accountType": "staff"}


def test_profile_set_nothing_to_do(fake_service):
    result = CliRunner().invoke(cli.main, ["profile", "set", "--token", "tok"])
    assert result.exit_code == 2
    assert fake_service["requests"] == []


def test_profile_set_server_error(fake_service):
    fake_service["response"] = httpx.Response(
        500, json={"error": "Internal server error", "details": "Profile store failure"}
    )
    result = CliRunner().invoke(cli.main, ["profile", "set", "--token", "tok", "--phone", "1"])
    assert result.exit_code == 1
    assert "Error (500): Internal server error" in result.output


def test_profile_verify_email(fake_service):
    fake_service["response"] = httpx.Response(
        200, json={"subjectId": "abc", "emailVerified": True, "mirrored": True}
    )
    result = CliRunner().invoke(cli.main, ["profile", "verify-email", "--token", "tok"])
    assert result.exit_code == 0
    assert "mirrored into profile: True" in result.output


def test_token_required(monkeypatch):
    monkeypatch.delenv("ACCOUNTFLOW_TOKEN", raising=False)
    result = CliRunner().invoke(cli.main, ["profile", "show"])
    assert result.exit_code == 2
