from bucketcache import Headers


def test_lookup_is_case_insensitive() -> None:
    headers = Headers({"ETag": '"abc"'})

    assert headers["etag"] == '"abc"'
    assert headers.get("ETAG") == '"abc"'
    assert "Etag" in headers


def test_repeated_values_are_joined() -> None:
    headers = Headers.from_pairs([("Vary", "accept"), ("vary", "origin")])

    assert headers["vary"] == "accept, origin"
    assert headers.get_list("VARY") == ["accept", "origin"]
    assert headers.pairs() == [("vary", "accept"), ("vary", "origin")]


def test_delete_and_len() -> None:
    headers = Headers({"a": "1", "b": ["2", "3"]})
    del headers["A"]

    assert len(headers) == 1
    assert list(headers) == ["b"]


def test_equality_ignores_key_case() -> None:
    assert Headers({"Content-Length": "1"}) == Headers({"content-length": "1"})
    assert Headers({"content-length": "1"}) != {"content-length": "1"}
