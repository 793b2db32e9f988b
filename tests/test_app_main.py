import logging

from fastapi.testclient import TestClient

import app_main
from lime_quiz.server.api_server import create_api_app
from lime_quiz.utils.settings import AppSettings


def test_main_logs_the_api_and_docs_urls(monkeypatch, caplog):
    served = []
    monkeypatch.setattr(app_main.AppSettings, "from_env", lambda *args, **kwargs: AppSettings(port=9001))
    monkeypatch.setattr(app_main, "_determine_api_url", lambda port: f"http://10.0.0.5:{port}/")
    monkeypatch.setattr(app_main, "run_api_server", lambda state, host, port: served.append((host, port)))

    with caplog.at_level(logging.INFO, logger="lime_quiz"):
        app_main.main()

    assert [port for _, port in served] == [9001]
    assert "http://10.0.0.5:9001/docs" in caplog.text
    assert "Students connect" not in caplog.text


def test_logged_docs_url_is_served():
    state = app_main.build_state(AppSettings())
    with TestClient(create_api_app(state)) as client:
        assert client.get("/docs").status_code == 200
