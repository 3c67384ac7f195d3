"""
Integration tests for OpenAPI documentation.

Verifies OpenAPI schema is correctly generated for all endpoints.
The schema is built without entering the lifespan, so no database is needed.
"""

import pytest

from onboarding.api.main import app


@pytest.fixture
def schema() -> dict:
    return app.openapi()


class TestOpenAPISchema:
    """Tests for OpenAPI schema generation."""

    def test_title_and_version(self, schema: dict) -> None:
        assert schema["info"]["title"] == "onboarding"
        assert schema["info"]["version"] == "0.1.0"

    @pytest.mark.parametrize(
        ("path", "method"),
        [
            ("/create-client", "post"),
            ("/finalize-account", "post"),
            ("/verify-code", "post"),
            ("/verify", "get"),
            ("/resend-verification", "post"),
            ("/verify-login", "post"),
            ("/send-verification", "post"),
            ("/forgot-password", "post"),
            ("/reset-password", "post"),
            ("/sendgrid-events", "post"),
            ("/health", "get"),
        ],
    )
    def test_endpoint_documented(self, schema: dict, path: str, method: str) -> None:
        assert method in schema["paths"][path]

    def test_request_schema_uses_camel_case(self, schema: dict) -> None:
        properties = schema["components"]["schemas"]["VerifyCodeRequest"]["properties"]

        assert set(properties) == {"email", "sessionId", "code"}
