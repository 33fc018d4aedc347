"""
Tests for the main module.
"""

from core.config import Settings
from main import create_app


def test_read_root(client):
    """Test the root endpoint returns the service banner."""
    response = client.get("/")
    assert response.status_code == 200
    assert response.json() == {"message": "Chat Editor Relay is running"}


def test_lifespan_installs_relay_service(client):
    relay = client.app.state.relay_service
    assert relay.config.base_url == "http://127.0.0.1:11434"
    assert relay.config.default_model == "llama3.2"


def test_create_app_uses_given_settings():
    app = create_app(Settings(APP_NAME="Scratchpad Relay", OLLAMA_MODEL="qwen2.5"))
    assert app.title == "Scratchpad Relay API"
    assert app.state.settings.OLLAMA_MODEL == "qwen2.5"
