import json

import pytest

from digital_twin.services.errors import ProviderError
from digital_twin.services.vectorstore import OpenAIEmbedder, StaticEmbeddingStore, content_key


class StubEmbeddings:
    model = "stub-embed"

    def __init__(self, vectors=None, fail=False):
        self.vectors = vectors
        self.fail = fail

    def embed_query(self, text):
        if self.fail:
            raise RuntimeError("rate limited")
        return [0.1, 0.2]

    def embed_documents(self, texts):
        if self.fail:
            raise RuntimeError("rate limited")
        return self.vectors if self.vectors is not None else [[0.1, 0.2] for _ in texts]


def test_embedder_passes_vectors_through():
    embedder = OpenAIEmbedder(StubEmbeddings())
    assert embedder.model == "stub-embed"
    assert embedder.embed("hi") == [0.1, 0.2]
    assert embedder.embed_batch(["a", "b"]) == [[0.1, 0.2], [0.1, 0.2]]
    assert embedder.embed_batch([]) == []


def test_embedder_wraps_upstream_errors():
    embedder = OpenAIEmbedder(StubEmbeddings(fail=True))
    with pytest.raises(ProviderError):
        embedder.embed("hi")
    with pytest.raises(ProviderError):
        embedder.embed_batch(["a"])


def test_embedder_rejects_short_batches():
    with pytest.raises(ProviderError):
        OpenAIEmbedder(StubEmbeddings(vectors=[[0.1, 0.2]])).embed_batch(["a", "b"])


def test_store_round_trip_records_model(tmp_path):
    store = StaticEmbeddingStore(tmp_path / "nested" / "embeddings.json")
    assert store.load() is None

    rows = [{"id": "a", "type": "static", "content": "x", "content_key": content_key("x"), "embedding": [1.0, 0.0]}]
    store.save(rows, model="m1")

    assert store.load(model="m1") == rows
    assert store.load() == rows
    assert store.load(model="m2") is None
    assert json.loads(store.path.read_text(encoding="utf-8"))["dim"] == 2


@pytest.mark.parametrize("text", ["{broken", "[]", '{"model": "m1"}'])
def test_store_unreadable_or_foreign_file_is_absent(tmp_path, text):
    path = tmp_path / "embeddings.json"
    path.write_text(text, encoding="utf-8")
    assert StaticEmbeddingStore(path).load() is None
