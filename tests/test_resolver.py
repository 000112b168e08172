from conftest import make_collection

from dlm.core.resolver import find_collection, resolve_collection


def test_first_matching_collection_wins(tmp_path):
    collections = [
        make_collection("A", ["example.com"], tmp_path / "a", "echo %"),
        make_collection("B", ["sub.example.com"], tmp_path / "b", "echo %"),
    ]

    match = resolve_collection(collections, "https://sub.example.com/x")

    assert match.name == "A"


def test_narrower_domain_listed_first_is_preferred(tmp_path):
    collections = [
        make_collection("B", ["sub.example.com"], tmp_path / "b", "echo %"),
        make_collection("A", ["example.com"], tmp_path / "a", "echo %"),
    ]

    assert resolve_collection(collections, "https://sub.example.com/x").name == "B"
    assert resolve_collection(collections, "https://example.com/y").name == "A"


def test_any_domain_of_a_collection_matches(tmp_path):
    collections = [
        make_collection("yt", ["youtube.com", "youtu.be"], tmp_path, "yt-dlp %"),
    ]
    assert resolve_collection(collections, "https://youtu.be/abc").name == "yt"


def test_no_match_returns_none(tmp_path):
    collections = [make_collection("A", ["example.com"], tmp_path, "echo %")]

    assert resolve_collection(collections, "https://other.org/") is None
    assert resolve_collection([], "https://example.com/") is None


def test_find_collection_by_name(tmp_path):
    collections = [make_collection("A", ["example.com"], tmp_path, "echo %")]

    assert find_collection(collections, "A") is collections[0]
    assert find_collection(collections, "missing") is None
