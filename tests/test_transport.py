"""
Tests for HTTP transport and authentication.
"""
import base64

import pytest

from automation_client.auth import (
    BasicAuthAgent,
    NoAuth,
    NoAuthAgent,
    OAuth2Agent,
    OAuth2ClientCredentials,
    SharedSecretAuth,
    coerce_auth,
    create_auth_agent,
)
from automation_client.errors import ApiError, InvalidConfigError, NetworkError, TransportError
from automation_client.transport import ApiRequest, RetryConfig, _prepare_query

from conftest import CLIENT_ID, CLIENT_SECRET, SECRET_KEY, MockHttpError


@pytest.fixture
def make_request(mock_server, quiet_logger):
    """Build ApiRequests against the mock server; tests close them."""

    def factory(**kwargs) -> ApiRequest:
        kwargs.setdefault("auth", SharedSecretAuth(SECRET_KEY))
        kwargs.setdefault("token_url", mock_server.url + "/auth/token")
        kwargs.setdefault("retry", RetryConfig(attempts=1, delay=0.01))
        return ApiRequest(mock_server.url, logger=quiet_logger, **kwargs)

    return factory


class TestCoerceAuth:
    """Test normalization of auth values."""

    def test_variants(self):
        assert coerce_auth(None) == NoAuth()
        assert coerce_auth("") == NoAuth()
        assert coerce_auth("secret") == SharedSecretAuth("secret")
        assert coerce_auth(("id", "s")) == OAuth2ClientCredentials("id", "s")
        assert coerce_auth({"client_id": "id", "client_secret": "s"}) == OAuth2ClientCredentials("id", "s")

    def test_passthrough(self):
        auth = SharedSecretAuth("secret")
        assert coerce_auth(auth) is auth

    def test_invalid(self):
        with pytest.raises(InvalidConfigError):
            coerce_auth(3.14)

    def test_reprs_hide_secrets(self):
        assert repr(SharedSecretAuth("topsecret")) == "SharedSecretAuth(secret=***)"
        assert "s3cr3t" not in repr(OAuth2ClientCredentials("id", "s3cr3t"))


class TestAuthAgents:
    """Test header agents."""

    @pytest.mark.asyncio
    async def test_basic_auth_header(self):
        agent = BasicAuthAgent("secret")
        headers = await agent.headers(None)

        expected = base64.b64encode(b"secret:").decode("ascii")
        assert headers == {"Authorization": f"Basic {expected}"}

    @pytest.mark.asyncio
    async def test_no_auth_header(self):
        assert await NoAuthAgent().headers(None) == {}

    def test_create_auth_agent(self):
        assert isinstance(create_auth_agent(NoAuth(), token_url=""), NoAuthAgent)
        assert isinstance(create_auth_agent(SharedSecretAuth("s"), token_url=""), BasicAuthAgent)
        assert isinstance(create_auth_agent(OAuth2ClientCredentials("i", "s"), token_url="http://t"), OAuth2Agent)


class TestApiRequest:
    """Test request execution against the mock API."""

    @pytest.mark.asyncio
    async def test_post_and_get(self, mock_server, make_request):
        async with make_request() as request:
            job = await request.post("/jobs", body={"serviceId": "123", "category": "test", "input": {}})
            fetched = await request.get(f"/jobs/{job['id']}")

        assert fetched["id"] == job["id"]
        assert fetched["serviceId"] == "123"

    @pytest.mark.asyncio
    async def test_not_found(self, make_request):
        async with make_request() as request:
            with pytest.raises(TransportError) as exc_info:
                await request.get("/jobs/missing")

        assert exc_info.value.http_status == 404
        assert exc_info.value.name == "TransportError"
        assert exc_info.value.retryable is False

    @pytest.mark.asyncio
    async def test_forbidden_without_credentials(self, make_request):
        async with make_request(auth=NoAuth()) as request:
            with pytest.raises(TransportError) as exc_info:
                await request.post("/jobs", body={"serviceId": "123"})

        assert exc_info.value.details["status"] == 403

    @pytest.mark.asyncio
    async def test_structured_error(self, mock_server, make_request):
        def reject(job):
            raise MockHttpError(400, "Service is disabled", name="ServiceDisabledError", details={"serviceId": "123"})

        mock_server.on("createJob", reject)
        async with make_request() as request:
            with pytest.raises(ApiError) as exc_info:
                await request.post("/jobs", body={"serviceId": "123"})

        error = exc_info.value
        assert error.name == "ServiceDisabledError"
        assert error.message == "Service is disabled"
        assert error.details["serviceId"] == "123"
        assert mock_server.count("POST", "/jobs") == 1

    @pytest.mark.asyncio
    async def test_retries_gateway_error(self, mock_server, make_request):
        def fail_once(job):
            mock_server.remove_hooks("createJob")
            raise MockHttpError(502, "Bad gateway", name="BadGateway")

        mock_server.on("createJob", fail_once)
        async with make_request() as request:
            job = await request.post("/jobs", body={"serviceId": "123"})

        assert job["id"] == mock_server.job["id"]
        assert mock_server.count("POST", "/jobs") == 2

    @pytest.mark.asyncio
    async def test_retries_exhausted(self, mock_server, make_request):
        def always_fail(job):
            raise MockHttpError(503, "Unavailable", name="Unavailable")

        mock_server.on("createJob", always_fail)
        async with make_request(retry=RetryConfig(attempts=2, delay=0.01)) as request:
            with pytest.raises(ApiError) as exc_info:
                await request.post("/jobs", body={"serviceId": "123"})

        assert exc_info.value.http_status == 503
        assert mock_server.count("POST", "/jobs") == 3

    @pytest.mark.asyncio
    async def test_network_error(self, quiet_logger):
        request = ApiRequest("http://127.0.0.1:1", retry=RetryConfig(attempts=1, delay=0), logger=quiet_logger)
        try:
            with pytest.raises(NetworkError) as exc_info:
                await request.get("/jobs/1")
        finally:
            await request.close()

        assert exc_info.value.retryable is True
        assert exc_info.value.context.attempt == 2

    @pytest.mark.asyncio
    async def test_extra_headers_sent(self, mock_server, make_request):
        async with make_request(headers={"X-Trace": "abc"}) as request:
            await request.post("/jobs", body={"serviceId": "123"})

        assert mock_server.last_headers["X-Trace"] == "abc"
        assert mock_server.last_headers["Accept"] == "application/json"

    def test_prepare_query(self):
        assert _prepare_query(None) is None
        assert _prepare_query({"key": None}) is None
        assert _prepare_query({"offset": 3, "flag": True, "key": None}) == {"offset": "3", "flag": "true"}

    def test_retry_config_validation(self):
        with pytest.raises(ValueError):
            RetryConfig(attempts=-1)
        with pytest.raises(ValueError):
            RetryConfig(delay=-0.1)


class TestOAuth2:
    """Test the client-credentials flow."""

    @pytest.mark.asyncio
    async def test_token_fetched_once_and_reused(self, mock_server, make_request):
        issued = []
        mock_server.on("issueToken", issued.append)

        async with make_request(auth=OAuth2ClientCredentials(CLIENT_ID, CLIENT_SECRET)) as request:
            job = await request.post("/jobs", body={"serviceId": "123"})
            await request.get(f"/jobs/{job['id']}")

        assert len(issued) == 1
        assert mock_server.count("POST", "/auth/token") == 1

    @pytest.mark.asyncio
    async def test_invalid_credentials(self, mock_server, make_request):
        async with make_request(auth=OAuth2ClientCredentials(CLIENT_ID, "wrong")) as request:
            with pytest.raises(ApiError) as exc_info:
                await request.post("/jobs", body={"serviceId": "123"})

        assert exc_info.value.name == "AuthError"
        assert mock_server.count("POST", "/jobs") == 0
