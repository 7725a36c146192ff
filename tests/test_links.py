from datetime import datetime, timedelta, timezone

from utils.links import format_rfc3339, next_cursor, parse_link_header

SELF = '<https://example.okta.com/api/v1/logs?limit=1000>; rel="self"'
NEXT = '<https://example.okta.com/api/v1/logs?after=1709294430000_1&limit=1000>; rel="next"'


def test_self_and_next_in_one_header() -> None:
    assert next_cursor([f"{SELF}, {NEXT}"]) == "1709294430000_1"


def test_self_and_next_as_repeated_headers() -> None:
    assert next_cursor([SELF, NEXT]) == "1709294430000_1"


def test_only_self_link_means_last_page() -> None:
    assert next_cursor([SELF]) == ""


def test_no_link_header_means_last_page() -> None:
    assert next_cursor([]) == ""
    assert next_cursor([""]) == ""


def test_next_link_without_cursor_param_means_last_page() -> None:
    assert next_cursor(['<https://example.okta.com/api/v1/logs?limit=1000>; rel="next"']) == ""


def test_next_link_with_empty_cursor_means_last_page() -> None:
    assert next_cursor(['<https://example.okta.com/api/v1/logs?after=&limit=1000>; rel="next"']) == ""


def test_unparsable_header_means_last_page() -> None:
    assert next_cursor(['rel="next" https://example.okta.com/api/v1/logs?after=x']) == ""


def test_cursor_is_url_decoded() -> None:
    assert next_cursor(['<https://example.okta.com/api/v1/logs?after=a%2Bb%3D>; rel="next"']) == "a+b="


def test_parse_link_header_maps_relations() -> None:
    links = parse_link_header([f"{SELF}, {NEXT}"])

    assert links == {
        "self": "https://example.okta.com/api/v1/logs?limit=1000",
        "next": "https://example.okta.com/api/v1/logs?after=1709294430000_1&limit=1000",
    }


def test_parse_link_header_accepts_unquoted_rel() -> None:
    assert parse_link_header(["<https://a.example/x?after=1>; rel=next"]) == {
        "next": "https://a.example/x?after=1"
    }


def test_format_rfc3339_uses_utc_seconds() -> None:
    eastern = timezone(timedelta(hours=-5))

    assert format_rfc3339(datetime(2024, 3, 1, 7, 0, 0, 123456, tzinfo=eastern)) == "2024-03-01T12:00:00Z"
    assert format_rfc3339(datetime(2024, 3, 1, 12, 0, 0)) == "2024-03-01T12:00:00Z"


def test_entry_with_several_relations_counts_for_each() -> None:
    links = ['<https://example.okta.com/api/v1/logs?after=abc&limit=1000>; rel="next last"']

    assert parse_link_header(links)["last"] == parse_link_header(links)["next"]
    assert next_cursor(links) == "abc"


def test_relation_names_are_case_insensitive() -> None:
    assert next_cursor(['<https://example.okta.com/api/v1/logs?after=abc>; rel="Next"']) == "abc"
