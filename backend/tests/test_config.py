from arns_indexer.config import Settings, describe_name_filter, parse_name_filter


def test_parse_name_filter():
    assert parse_name_filter(None) is None
    assert parse_name_filter("") is None
    assert parse_name_filter("   ") is None
    assert parse_name_filter("*") == "*"
    assert parse_name_filter(" * ") == "*"
    assert parse_name_filter("ardrive, , permaweb ,") == ["ardrive", "permaweb"]


def test_describe_name_filter():
    assert describe_name_filter(None) == "none"
    assert describe_name_filter("*") == "*"
    assert describe_name_filter(["a", "b"]) == "[2 names]"


def test_settings_expose_parsed_filters():
    settings = Settings(
        _env_file=None,
        resolution_whitelist="a,b",
        resolution_blacklist="*",
        crawl_blacklist="c",
    )

    assert settings.resolution_allow == ["a", "b"]
    assert settings.resolution_deny == "*"
    assert settings.crawl_allow is None
    assert settings.crawl_deny == ["c"]


def test_gateway_base_url():
    settings = Settings(_env_file=None, arns_crawl_gateway="ar-io.dev", gateway_scheme="http")
    assert settings.gateway_base_url == "http://ar-io.dev"
