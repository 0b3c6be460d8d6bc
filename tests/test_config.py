import pytest

from tripredirect.config import Settings
from tripredirect.domains import DomainTable, normalize_host
from tripredirect.errors import ConfigurationError

_ENV = (
    "PORT", "DB_PATH", "DOMAINS_FILE", "POLARSTEPS_API_URL", "PROFILE_BASE_URL",
    "UPSTREAM_TIMEOUT", "GEO_API_URL",
    "RYBBIT_API_KEY", "RYBBIT_API_URL", "RYBBIT_SITE_ID",
)


@pytest.fixture
def clean_env(monkeypatch):
    for name in _ENV:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


def test_defaults(clean_env):
    settings = Settings.from_env()
    assert settings.port == 3000
    assert settings.db_path == "stats.db"
    assert settings.database_url == "sqlite+aiosqlite:///stats.db"
    assert settings.api_url == "https://api.polarsteps.com"
    assert settings.profile_base_url == "https://polarsteps.com"
    assert settings.upstream_timeout == 10.0
    assert not settings.rybbit.enabled


def test_environment_overrides(clean_env):
    clean_env.setenv("PORT", "8080")
    clean_env.setenv("DB_PATH", "/data/visits.db")
    clean_env.setenv("PROFILE_BASE_URL", "https://example.test/")
    clean_env.setenv("UPSTREAM_TIMEOUT", "2.5")
    settings = Settings.from_env()
    assert settings.port == 8080
    assert settings.database_url == "sqlite+aiosqlite:////data/visits.db"
    assert settings.profile_base_url == "https://example.test"
    assert settings.upstream_timeout == 2.5


def test_invalid_numbers_fall_back_to_defaults(clean_env):
    clean_env.setenv("PORT", "eighty")
    clean_env.setenv("UPSTREAM_TIMEOUT", "-1")
    settings = Settings.from_env()
    assert settings.port == 3000
    assert settings.upstream_timeout == 10.0


def test_rybbit_needs_all_three_variables(clean_env):
    clean_env.setenv("RYBBIT_API_KEY", "k")
    clean_env.setenv("RYBBIT_API_URL", "https://rybbit.test")
    partial = Settings.from_env()
    assert partial.rybbit.partially_configured
    assert not partial.rybbit.enabled

    clean_env.setenv("RYBBIT_SITE_ID", "7")
    assert Settings.from_env().rybbit.enabled


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("example.com", "example.com"),
        ("www.example.com", "example.com"),
        ("WWW.Example.COM", "example.com"),
        ("www.www.example.com", "www.example.com"),
        ("example.com:8080", "example.com"),
        ("www.example.com.", "example.com"),
        ("www", "www"),
        ("", ""),
    ],
)
def test_normalize_host(raw, expected):
    assert normalize_host(raw) == expected


def test_domain_table_from_yaml(tmp_path):
    path = tmp_path / "domains.yaml"
    path.write_text("domains:\n  Trip.Example: alice\n  www.andes.example: bob\n", encoding="utf-8")

    table = DomainTable.from_yaml(path)

    assert len(table) == 2
    assert table.lookup("trip.example") == "alice"
    assert table.lookup("www.trip.example") == "alice"
    assert table.lookup("andes.example") == "bob"
    assert table.lookup("unknown.example") is None


def test_domain_table_missing_file(tmp_path):
    with pytest.raises(ConfigurationError):
        DomainTable.from_yaml(tmp_path / "absent.yaml")


def test_domain_table_rejects_bad_shape(tmp_path):
    path = tmp_path / "domains.yaml"
    path.write_text("domains:\n  - trip.example\n", encoding="utf-8")
    with pytest.raises(ConfigurationError):
        DomainTable.from_yaml(path)


def test_domain_table_rejects_invalid_yaml(tmp_path):
    path = tmp_path / "domains.yaml"
    path.write_text("domains: [unclosed\n", encoding="utf-8")
    with pytest.raises(ConfigurationError):
        DomainTable.from_yaml(path)
