"""Tests for the FAQ matcher and the assistant endpoint."""

from unittest.mock import patch

import pytest

from saludlibre import config
from saludlibre.faq import DEFAULT_REPLY, match_faq, normalize


class TestFaq:
    """Keyword matching against the FAQ list."""

    @pytest.mark.parametrize("message, question", [
        ("¿Qué es Salud Libre?", "¿Qué es Salud Libre?"),
        ("¿Cómo agendo un turno?", "¿Cómo agendo una cita médica?"),
        ("¿Es gratis?", "¿Es gratuito usar Salud Libre?"),
        ("¿Dónde quedan mis datos?", "¿Qué tan segura es mi información médica?"),
        ("¿Aceptan obra social OSDE?", "¿Funcionan las citas con obra social?"),
    ])
    def test_matches(self, message, question):
        assert match_faq(message)["question"] == question

    def test_no_match(self):
        assert match_faq("me duele la rodilla") is None

    def test_normalize_strips_accents_and_punctuation(self):
        assert normalize("¿Cómo  AGENDO?") == "como agendo"


class TestChatEndpoint:
    """POST /chat/ fallbacks: FAQ, doctor search, Gemini, default."""

    def test_empty_message(self, client):
        assert client.post("/chat/", json={"message": "   "}).status_code == 400

    def test_faq_answer(self, client):
        body = client.post("/chat/", json={"message": "¿Es gratis?"}).json()
        assert body["success"] is True
        assert body["response"].startswith("El registro y uso básico")

    def test_specialty_search(self, client, doctor):
        body = client.post("/chat/", json={"message": "necesito un cardiologo"}).json()
        assert "Laura Perez (CABA)" in body["response"]
        assert "Cardiología" in body["response"]

    def test_default_reply_without_gemini(self, client):
        assert client.post("/chat/", json={"message": "hola"}).json()["response"] == DEFAULT_REPLY

    def test_gemini_fallback(self, client):
        with patch.object(config, "GEMINI_API_KEY", "test-key"), \
                patch("saludlibre.chat.genai.Client") as mock_client:
            mock_client.return_value.models.generate_content.return_value.text = "  Hola, ¿en qué te ayudo?  "
            body = client.post("/chat/", json={
                "message": "hola",
                "chat_history": [{"role": "user", "content": "buenas"}],
            }).json()
        assert body["response"] == "Hola, ¿en qué te ayudo?"
        mock_client.assert_called_once_with(api_key="test-key")
        prompt = mock_client.return_value.models.generate_content.call_args.kwargs["contents"]
        assert "user: buenas" in prompt
        assert prompt.endswith("hola")

    def test_gemini_error_falls_back_to_default(self, client):
        with patch.object(config, "GEMINI_API_KEY", "test-key"), \
                patch("saludlibre.chat.genai.Client") as mock_client:
            mock_client.return_value.models.generate_content.side_effect = RuntimeError("quota")
            body = client.post("/chat/", json={"message": "hola"}).json()
        assert body["response"] == DEFAULT_REPLY
