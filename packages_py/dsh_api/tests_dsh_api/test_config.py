"""
Tests for settings assembly.
"""
from dsh_api import DshApiSettings, TimeoutConfig, platform_tenant_env_var, tenant_env_var
from dsh_api.config import normalize_timeout


class TestEnvVarNames:
    def test_platform_tenant_env_var(self):
        assert (
            platform_tenant_env_var("DSH_API_PASSWORD", "np-aws-lz-dsh", "my-tenant")
            == "DSH_API_PASSWORD_NP_AWS_LZ_DSH_MY_TENANT"
        )

    def test_tenant_env_var(self):
        assert tenant_env_var("DSH_API_GUID", "my-tenant") == "DSH_API_GUID_MY_TENANT"


class TestDshApiSettings:
    """DshApiSettings.from_env"""

    def test_defaults(self):
        settings = DshApiSettings.from_env({})

        assert settings.platform is None
        assert settings.tenant is None
        assert settings.platforms_file is None
        assert settings.timeout == TimeoutConfig()
        assert settings.token_safety_margin == 30.0
        assert settings.verify_ssl is True
        assert settings.trace is False

    def test_reads_values(self):
        settings = DshApiSettings.from_env(
            {
                "DSH_API_PLATFORM": "nplz",
                "DSH_API_TENANT": "my-tenant",
                "DSH_API_PLATFORMS_FILE": "/etc/platforms.yaml",
                "DSH_API_SELECTORS_FILE": "/etc/selectors.yaml",
                "DSH_API_CONNECT_TIMEOUT": "2",
                "DSH_API_READ_TIMEOUT": "60.5",
                "DSH_API_TOKEN_SAFETY_MARGIN": "10",
                "DSH_API_TRACE": "true",
            }
        )

        assert settings.platform == "nplz"
        assert settings.tenant == "my-tenant"
        assert settings.platforms_file == "/etc/platforms.yaml"
        assert settings.selectors_file == "/etc/selectors.yaml"
        assert settings.timeout.connect == 2.0
        assert settings.timeout.read == 60.5
        assert settings.timeout.write == TimeoutConfig.write
        assert settings.token_safety_margin == 10.0
        assert settings.trace is True

    def test_invalid_number_falls_back_to_default(self):
        settings = DshApiSettings.from_env({"DSH_API_READ_TIMEOUT": "slow"})

        assert settings.timeout.read == TimeoutConfig.read

    def test_ssl_verification_disabled(self):
        assert DshApiSettings.from_env({"SSL_CERT_VERIFY": "0"}).verify_ssl is False
        assert DshApiSettings.from_env({"NODE_TLS_REJECT_UNAUTHORIZED": "0"}).verify_ssl is False
        assert DshApiSettings.from_env({"SSL_CERT_VERIFY": "1"}).verify_ssl is True

    def test_env_file_merged_below_environment(self, tmp_path):
        env_file = tmp_path / ".env"
        env_file.write_text(
            "DSH_API_PLATFORM=prodlz\n"
            "DSH_API_TENANT=file-tenant\n"
            "DSH_API_PASSWORD_NP_AWS_LZ_DSH_MY_TENANT=from-file\n"
        )

        settings = DshApiSettings.from_env({"DSH_API_PLATFORM": "nplz"}, env_file=env_file)

        assert settings.platform == "nplz"
        assert settings.tenant == "file-tenant"
        assert settings.environ["DSH_API_PASSWORD_NP_AWS_LZ_DSH_MY_TENANT"] == "from-file"

    def test_environ_not_in_repr(self):
        settings = DshApiSettings.from_env({"DSH_API_PASSWORD_NP_AWS_LZ_DSH_MY_TENANT": "hidden"})

        assert "hidden" not in repr(settings)


class TestNormalizeTimeout:
    def test_none(self):
        assert normalize_timeout(None) == TimeoutConfig()

    def test_number(self):
        assert normalize_timeout(3) == TimeoutConfig(connect=3, read=3, write=3)

    def test_config(self):
        config = TimeoutConfig(connect=1.0)
        assert normalize_timeout(config) is config
