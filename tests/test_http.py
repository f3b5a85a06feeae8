import logging

import httpx
import pytest

from gamefinder.http import MAX_LOGGED_BODY, build_event_hooks, build_http_client


def _messages(caplog) -> str:
    return "\n".join(
        record.getMessage() for record in caplog.records if record.name == "gamefinder.http"
    )


@pytest.mark.asyncio
async def test_debug_hooks_log_url_without_query(httpx_mock, caplog) -> None:
    httpx_mock.add_response(url="https://provider.example/token?code=secret-code", json={})

    with caplog.at_level(logging.INFO, logger="gamefinder.http"):
        async with build_http_client(timeout=5.0, debug=True) as client:
            await client.get("https://provider.example/token?code=secret-code")

    messages = _messages(caplog)
    assert "Provider request GET https://provider.example/token" in messages
    assert "-> 200" in messages
    assert "secret-code" not in messages


@pytest.mark.asyncio
async def test_error_body_logged_and_truncated(httpx_mock, caplog) -> None:
    httpx_mock.add_response(url="https://provider.example/token", status_code=400, text="x" * 5000)

    with caplog.at_level(logging.WARNING, logger="gamefinder.http"):
        async with build_http_client(timeout=5.0) as client:
            response = await client.get("https://provider.example/token")

    assert response.status_code == 400
    messages = _messages(caplog)
    assert "x" * MAX_LOGGED_BODY + "...<truncated>" in messages
    assert "x" * (MAX_LOGGED_BODY + 1) not in messages


@pytest.mark.asyncio
async def test_quiet_hooks_skip_success_logging(httpx_mock, caplog) -> None:
    httpx_mock.add_response(url="https://provider.example/ok", json={})
    hooks = build_event_hooks(debug=False)

    with caplog.at_level(logging.INFO, logger="gamefinder.http"):
        async with httpx.AsyncClient(event_hooks=hooks) as client:
            await client.get("https://provider.example/ok")

    assert _messages(caplog) == ""
