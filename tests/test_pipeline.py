import json
from pathlib import Path

import pytest

from src.contentful_pipeline import pipeline as pipeline_mod
from src.contentful_pipeline.contentful_client import ContentfulAPIError, ContentfulFetchError
from src.contentful_pipeline.models import Document
from src.contentful_pipeline.pipeline import (
    build_query,
    fetch_all_entries,
    load_documents,
    split_documents,
)
from src.contentful_pipeline.loaders import parse_config

DATA_DIR = Path(__file__).resolve().parents[1] / "data"

CONFIG = {
    "mainContentType": {"contentType": "article", "fieldsToParse": ["fields.title"]},
    "fieldsForCitation": {"titleField": "fields.title", "slugField": "fields.slug", "urlPrefix": "https://site.test/"},
}


# --- helpers -----------------------------------------------------------------


def make_entries(n):
    return [
        {
            "sys": {
                "type": "Entry",
                "id": f"e-{i}",
                "contentType": {"sys": {"type": "Link", "linkType": "ContentType", "id": "article"}},
            },
            "fields": {"title": f"Title {i}", "slug": f"slug-{i}"},
        }
        for i in range(n)
    ]


class FakeContentfulClient:
    """Serves `entries` in pages of `page_size`, recording every query."""

    def __init__(self, entries, page_size=2, fail_on_call=None):
        self.entries = entries
        self.page_size = page_size
        self.fail_on_call = fail_on_call
        self.queries = []

    def get_entries(self, query):
        self.queries.append(dict(query))
        if self.fail_on_call is not None and len(self.queries) == self.fail_on_call:
            raise ContentfulAPIError("HTTP 503: Service Unavailable", status_code=503)
        skip = query.get("skip", 0)
        items = self.entries[skip: skip + self.page_size]
        return {"items": items, "skip": skip, "limit": self.page_size, "total": len(self.entries)}


class WordSplitter:
    def split_text(self, text):
        return [word for word in text.split() if word]


# --- build_query -------------------------------------------------------------


def test_build_query_single_page():
    config = parse_config(CONFIG)
    metadata = {"fields.category": "faq"}

    query = build_query(config, metadata, include=2, limit=10, include_all=False)

    assert query == {"fields.category": "faq", "limit": 10, "include": 2, "content_type": "article"}
    assert metadata == {"fields.category": "faq"}


def test_build_query_include_all_drops_limit():
    config = parse_config({})

    assert build_query(config, None, include=None, limit=10, include_all=True) == {}


# --- fetch_all_entries -------------------------------------------------------


def test_include_all_fetches_every_page():
    client = FakeContentfulClient(make_entries(5), page_size=2)

    entries = fetch_all_entries(client, {"content_type": "article"}, include_all=True)

    assert [q["skip"] for q in client.queries] == [0, 2, 4]
    assert len(entries) == 5
    assert [e["sys"]["id"] for e in entries] == [f"e-{i}" for i in range(5)]


def test_single_page_without_include_all():
    client = FakeContentfulClient(make_entries(5), page_size=2)

    entries = fetch_all_entries(client, {}, include_all=False)

    assert len(client.queries) == 1
    assert client.queries[0]["skip"] == 0
    assert len(entries) == 2


def test_empty_page_stops_pagination():
    class ShortClient(FakeContentfulClient):
        def get_entries(self, query):
            page = super().get_entries(query)
            page["total"] = 10  # reports more than it serves
            return page

    client = ShortClient(make_entries(3), page_size=2)

    entries = fetch_all_entries(client, {}, include_all=True)

    assert len(entries) == 3
    assert [q["skip"] for q in client.queries] == [0, 2, 3]


def test_failure_on_second_page_aborts_without_partial_result():
    client = FakeContentfulClient(make_entries(5), page_size=2, fail_on_call=2)

    with pytest.raises(ContentfulFetchError) as excinfo:
        fetch_all_entries(client, {}, include_all=True)

    assert "Failed to fetch entries from Contentful" in str(excinfo.value)
    assert isinstance(excinfo.value.__cause__, ContentfulAPIError)
    assert len(client.queries) == 2


# --- load_documents ----------------------------------------------------------


def test_load_documents_paginates_and_builds_documents():
    client = FakeContentfulClient(make_entries(5), page_size=2)

    documents = load_documents(
        client,
        json.dumps(CONFIG),
        space_id="space1",
        environment_id="master",
        include_all=True,
    )

    assert len(client.queries) == 3
    assert len(documents) == 5
    assert all(isinstance(d, Document) for d in documents)
    assert documents[0].text == "Title 0\n\n"
    assert documents[0].metadata["source"] == "https://site.test/slug-0"
    assert documents[4].metadata["entryId"] == "e-4"
    assert client.queries[0]["content_type"] == "article"


def test_load_documents_failure_returns_no_documents():
    client = FakeContentfulClient(make_entries(5), page_size=2, fail_on_call=2)

    with pytest.raises(ContentfulFetchError):
        load_documents(client, CONFIG, space_id="s", include_all=True)


def test_load_documents_merges_metadata_and_uses_it_as_query():
    client = FakeContentfulClient(make_entries(1))

    documents = load_documents(
        client,
        CONFIG,
        space_id="s",
        metadata='{"fields.category": "faq"}',
    )

    assert client.queries[0]["fields.category"] == "faq"
    assert documents[0].metadata["fields.category"] == "faq"
    assert documents[0].metadata["entryId"] == "e-0"


def test_load_documents_string_output():
    client = FakeContentfulClient(make_entries(2))

    texts = load_documents(client, CONFIG, space_id="s", output="stringOutput")

    assert texts == ["Title 0\n\n", "Title 1\n\n"]


def test_load_documents_include_field_names():
    client = FakeContentfulClient(make_entries(1))

    texts = load_documents(client, CONFIG, space_id="s", include_field_names=True, output="stringOutput")

    assert texts == ["title: Title 0\n\n"]


def test_load_documents_applies_text_splitter_before_metadata_merge():
    client = FakeContentfulClient(make_entries(1))

    documents = load_documents(
        client,
        CONFIG,
        space_id="s",
        metadata={"team": "support"},
        text_splitter=WordSplitter(),
    )

    assert [d.text for d in documents] == ["Title", "0"]
    assert all(d.metadata["team"] == "support" for d in documents)
    assert all(d.metadata["entryId"] == "e-0" for d in documents)


def test_load_documents_malformed_config_falls_back_to_default():
    client = FakeContentfulClient(make_entries(1))

    documents = load_documents(client, "{oops", space_id="s")

    assert "content_type" not in client.queries[0]
    assert documents[0].text == ""
    assert documents[0].metadata["source"] == "https://www.example.com/slug-0"


def test_split_documents_without_splitter_is_identity():
    docs = [Document(text="a b", metadata={"entryId": "1"})]

    assert split_documents(docs, None) is docs


# --- run_pipeline ------------------------------------------------------------


def test_run_pipeline_from_offline_file_dedupes_and_writes(tmp_path: Path):
    entries = make_entries(2) + make_entries(1)  # e-0 twice
    input_path = tmp_path / "entries.json"
    input_path.write_text(json.dumps(entries), encoding="utf-8")
    output_dir = tmp_path / "output"

    total, processed, paths = pipeline_mod.run_pipeline(
        CONFIG,
        output_dir=output_dir,
        input_path=input_path,
        space_id="space1",
        string_output=True,
        keep_history=False,
    )

    assert total == 3
    assert processed == 2
    assert paths["documents"] == output_dir / "documents.json"
    written = json.loads(paths["documents"].read_text(encoding="utf-8"))
    assert [d["metadata"]["entryId"] for d in written] == ["e-0", "e-1"]
    assert json.loads(paths["texts"].read_text(encoding="utf-8")) == ["Title 0\n\n", "Title 1\n\n"]
    run_meta = json.loads((output_dir / "run_metadata.json").read_text(encoding="utf-8"))
    assert run_meta["duplicates_removed"] == 1


def test_run_pipeline_with_client_and_history(tmp_path: Path):
    client = FakeContentfulClient(make_entries(3), page_size=2)

    total, processed, paths = pipeline_mod.run_pipeline(
        CONFIG,
        output_dir=tmp_path,
        client=client,
        space_id="space1",
        include_all=True,
    )

    assert (total, processed) == (3, 3)
    assert paths["documents"].name.startswith("documents_")
    assert list(tmp_path.glob("run_metadata_*.json"))


def test_run_pipeline_dry_run_writes_nothing(tmp_path: Path):
    output_dir = tmp_path / "output"

    total, processed, paths = pipeline_mod.run_pipeline(
        CONFIG,
        output_dir=output_dir,
        client=FakeContentfulClient(make_entries(2)),
        dry_run=True,
    )

    assert (total, processed, paths) == (2, 2, {})
    assert not output_dir.exists()


def test_run_pipeline_requires_a_source(tmp_path: Path):
    with pytest.raises(ValueError):
        pipeline_mod.run_pipeline(CONFIG, output_dir=tmp_path)


def test_run_pipeline_sample_data(tmp_path: Path):
    total, processed, paths = pipeline_mod.run_pipeline(
        (DATA_DIR / "sample_config.json").read_text(encoding="utf-8"),
        output_dir=tmp_path,
        input_path=DATA_DIR / "sample_entries.json",
        space_id="space1",
        keep_history=False,
    )

    assert (total, processed) == (2, 2)
    written = json.loads(paths["documents"].read_text(encoding="utf-8"))
    assert written[1]["text"].startswith("Billing overview\n\nInvoices are sent monthly.\n\n")
