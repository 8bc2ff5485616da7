from usage_tracker.classifier import UNKNOWN_DOMAIN, classify, is_excluded


def test_classify_ordinary_addresses() -> None:
    assert classify("https://www.google.com/search?q=test") == "google.com"
    assert classify("http://subdomain.example.com/path/to/page") == "subdomain.example.com"
    assert classify("https://github.com/user/repository") == "github.com"


def test_www_prefix_and_bare_host_classify_identically() -> None:
    assert classify("https://www.example.org/a") == classify("https://example.org/b")


def test_only_leading_www_label_is_stripped() -> None:
    assert classify("https://shop.www.example.com/") == "shop.www.example.com"
    assert classify("https://WWW.Example.COM/") == "example.com"


def test_internal_schemes_map_to_sentinels_regardless_of_path() -> None:
    assert classify("chrome://extensions/") == "chrome://"
    assert classify("chrome://settings/?search=cookies") == "chrome://"
    assert classify("chrome-extension://abc123/popup.html") == "chrome-extension://"
    assert classify("about:blank") == "about:"
    assert classify("file:///home/user/document.pdf") == "file://"


def test_unparseable_addresses_are_unknown() -> None:
    assert classify("invalid-url") == UNKNOWN_DOMAIN
    assert classify("") == UNKNOWN_DOMAIN
    assert classify("http://[::1") == UNKNOWN_DOMAIN
    assert classify(None) == UNKNOWN_DOMAIN


def test_is_excluded() -> None:
    for url in ("chrome://extensions/", "chrome-extension://abc/popup.html", "about:blank", "file:///tmp/x"):
        assert is_excluded(classify(url))

    assert not is_excluded(classify("https://google.com"))
    assert not is_excluded(UNKNOWN_DOMAIN)
    assert is_excluded(UNKNOWN_DOMAIN, ["unknown"])
    assert is_excluded("mail.youtube.com", ["youtube.com"])
    assert is_excluded("")
