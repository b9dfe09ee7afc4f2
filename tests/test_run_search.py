import json
from pathlib import Path

import pytest

import src.run_search as run_search
from src.contentful_pipeline import embeddings


class FakeOpenSearch:
    def __init__(self, hits):
        self.hits = hits
        self.calls = []

    def search(self, index, body):
        self.calls.append({"index": index, "body": body})
        return {"hits": {"hits": self.hits}}


@pytest.fixture
def search_env(tmp_path: Path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("OPENSEARCH_URL", "localhost:9200")
    fake_client = FakeOpenSearch([
        {"_source": {"text": "Refunds take five days.", "metadata": {"entryId": "post-1"}}, "_score": 0.9},
        {"_source": {"text": "Unrelated", "metadata": {"entryId": "post-9"}}, "_score": 0.2},
    ])
    monkeypatch.setattr(run_search, "create_client", lambda *args, **kwargs: fake_client)
    monkeypatch.setattr(embeddings, "embed_query", lambda text, model=None: [0.1, 0.2])
    return fake_client


def test_search_prints_documents_above_min_score(search_env, capsys):
    exit_code = run_search.main(
        ["--index", "docs", "--question", "How do refunds work?", "--min-score", "50"]
    )

    assert exit_code == 0
    printed = json.loads(capsys.readouterr().out)
    assert printed == [{"text": "Refunds take five days.", "metadata": {"entryId": "post-1"}}]
    assert search_env.calls[0]["index"] == "docs"


def test_search_text_output(search_env, capsys):
    exit_code = run_search.main(
        ["--index", "docs", "--values", '{"question": "refunds"}', "--output", "text"]
    )

    assert exit_code == 0
    assert capsys.readouterr().out.strip() == "Refunds take five days.\\nUnrelated\\n"


def test_search_without_opensearch_url_fails(tmp_path: Path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("OPENSEARCH_URL", raising=False)

    assert run_search.main(["--index", "docs", "--question", "q"]) == 1
