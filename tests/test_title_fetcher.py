import asyncio

from dlm.web.title_fetcher import extract_title, fetch_page_title, is_file_url


def test_extract_title_normalizes_whitespace():
    html = "<html><head><title>\n  My   Page\n</title></head><body></body></html>"
    assert extract_title(html) == "My Page"


def test_extract_title_decodes_entities():
    assert extract_title("<title>Tom &amp; Jerry</title>") == "Tom & Jerry"


def test_extract_title_missing_or_empty():
    assert extract_title("<html><body>no title</body></html>") is None
    assert extract_title("<title>   </title>") is None
    assert extract_title("") is None


def test_is_file_url():
    assert is_file_url("https://x.com/archive.ZIP")
    assert is_file_url("https://x.com/video.mp4?token=abc")
    assert not is_file_url("https://x.com/watch?v=file.mp4")
    assert not is_file_url("https://x.com/page")


def test_file_urls_are_not_fetched():
    assert asyncio.run(fetch_page_title("https://x.com/a.pdf")) is None


def test_invalid_url_yields_none():
    assert asyncio.run(fetch_page_title("not a url", timeout_s=1)) is None
