"""Tests for the storyline graph CRUD endpoints, the catalog and the seed fixture."""

import os
import tempfile
import unittest
from pathlib import Path

os.environ["ENABLE_HTTP_LOGGING"] = "false"

from fastapi.testclient import TestClient  # noqa: E402

from api.main import app, get_llm_client, get_store  # noqa: E402
from conftest import ScriptedLLM  # noqa: E402
from scripts.seed_novel import load_fixture, seed  # noqa: E402
from models import Novel  # noqa: E402
from storage import NovelStore  # noqa: E402

FIXTURE = Path(__file__).resolve().parent.parent / "scripts" / "fixtures" / "the_gate.yaml"


class ApiTestCase(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.store = NovelStore(os.path.join(self._tmp.name, "storyloom-test.db"))
        self.store.add_novel(Novel(id="novel-1", title="The Gate"))
        app.dependency_overrides[get_store] = lambda: self.store
        app.dependency_overrides[get_llm_client] = lambda: ScriptedLLM(configured=False)
        self.client = TestClient(app)

    def tearDown(self):
        app.dependency_overrides.clear()
        self._tmp.cleanup()

    def _storyline(self, novel_id="novel-1", **extra):
        res = self.client.post("/api/storylines", json={"novelId": novel_id, "title": "Main", **extra})
        self.assertEqual(res.status_code, 200)
        return res.json()

    def _node(self, storyline_id, title, **extra):
        res = self.client.post("/api/story-nodes", json={"storylineId": storyline_id, "title": title, **extra})
        self.assertEqual(res.status_code, 200)
        return res.json()


class TestStorylineEndpoints(ApiTestCase):
    def test_create_defaults(self):
        storyline = self._storyline()
        self.assertEqual(storyline["type"], "main")
        self.assertEqual(storyline["status"], "active")
        self.assertEqual(storyline["color"], "#3B82F6")

    def test_create_for_unknown_novel_is_404(self):
        res = self.client.post("/api/storylines", json={"novelId": "no-such-novel", "title": "Main"})
        self.assertEqual(res.status_code, 404)
        self.assertEqual(self.store.count_rows("storylines"), 0)

    def test_create_without_title_is_422(self):
        res = self.client.post("/api/storylines", json={"novelId": "novel-1"})
        self.assertEqual(res.status_code, 422)

    def test_partial_update(self):
        storyline = self._storyline(description="keep")
        res = self.client.put(
            f"/api/storylines/{storyline['id']}", json={"title": "Renamed", "status": "paused"}
        )
        self.assertEqual(res.status_code, 200)
        body = res.json()
        self.assertEqual((body["title"], body["status"], body["description"]), ("Renamed", "paused", "keep"))

    def test_update_missing_is_404(self):
        self.assertEqual(self.client.put("/api/storylines/missing", json={"title": "x"}).status_code, 404)

    def test_delete_cascades(self):
        storyline = self._storyline()
        a = self._node(storyline["id"], "a")
        b = self._node(storyline["id"], "b")
        self.client.post("/api/node-connections", json={"fromNodeId": a["id"], "toNodeId": b["id"]})

        res = self.client.delete(f"/api/storylines/{storyline['id']}")
        self.assertEqual(res.status_code, 200)
        self.assertEqual(self.client.get(f"/api/story-nodes/{storyline['id']}").json(), [])
        self.assertEqual(self.store.count_rows("node_connections"), 0)
        self.assertEqual(self.client.delete(f"/api/storylines/{storyline['id']}").status_code, 404)


class TestNodeAndConnectionEndpoints(ApiTestCase):
    def test_node_position_round_trip(self):
        storyline = self._storyline()
        node = self._node(storyline["id"], "a", position={"x": 320, "y": 100}, nodeType="turning")
        self.assertEqual(node["nodeType"], "turning")
        res = self.client.put(f"/api/story-nodes/{node['id']}", json={"position": {"x": 10, "y": 20}})
        self.assertEqual(res.json()["position"], {"x": 10, "y": 20})
        self.assertEqual(res.json()["title"], "a")

    def test_node_for_missing_storyline_is_404(self):
        res = self.client.post("/api/story-nodes", json={"storylineId": "missing", "title": "a"})
        self.assertEqual(res.status_code, 404)

    def test_connection_rules(self):
        storyline = self._storyline()
        a = self._node(storyline["id"], "a")
        b = self._node(storyline["id"], "b")

        loop = self.client.post("/api/node-connections", json={"fromNodeId": a["id"], "toNodeId": a["id"]})
        self.assertEqual(loop.status_code, 422)
        dangling = self.client.post(
            "/api/node-connections", json={"fromNodeId": a["id"], "toNodeId": "missing"}
        )
        self.assertEqual(dangling.status_code, 404)

        res = self.client.post(
            "/api/node-connections",
            json={"fromNodeId": a["id"], "toNodeId": b["id"], "connectionType": "cause", "weight": 42},
        )
        self.assertEqual(res.status_code, 200)
        connection = res.json()
        self.assertEqual((connection["connectionType"], connection["weight"]), ("cause", 10))

        params = {"storylineId": storyline["id"]}
        listed = self.client.get("/api/node-connections", params=params).json()
        self.assertEqual([c["id"] for c in listed], [connection["id"]])
        self.assertEqual(self.client.delete(f"/api/node-connections/{connection['id']}").status_code, 200)
        self.assertEqual(self.client.get("/api/node-connections", params=params).json(), [])

    def test_connections_need_storyline_query(self):
        self.assertEqual(self.client.get("/api/node-connections").status_code, 422)


class TestCatalogEndpoints(ApiTestCase):
    def test_novel_catalog_and_context(self):
        res = self.client.post("/api/novels", json={"title": "The Gate", "worldSetting": "Seven gates."})
        novel = res.json()
        self.assertEqual(novel["worldSetting"], "Seven gates.")
        self.assertEqual(self.client.get(f"/api/novels/{novel['id']}").json()["title"], "The Gate")

        self.client.post(f"/api/novels/{novel['id']}/characters", json={"name": "Ima", "description": "courier"})
        self.client.post(f"/api/novels/{novel['id']}/plot-points", json={"title": "Key", "content": "it hums"})
        chapter = self.client.post(
            f"/api/novels/{novel['id']}/chapters",
            json={"order": 1, "title": "Arrival", "content": "one two three", "summary": "She arrives."},
        ).json()
        self.assertEqual(chapter["wordCount"], 3)

        context = self.client.get(f"/api/ai/context/{novel['id']}").json()["message"]["content"]
        self.assertIn("- Ima: courier", context)
        self.assertIn("## Chapter 1: Arrival", context)

    def test_missing_novel_is_404(self):
        self.assertEqual(self.client.get("/api/novels/missing").status_code, 404)
        self.assertEqual(
            self.client.post("/api/novels/missing/characters", json={"name": "x"}).status_code, 404
        )
        self.assertEqual(self.client.get("/api/ai/context/missing").status_code, 404)


class TestSeedFixture(ApiTestCase):
    def test_fixture_seeds_catalog_and_graph(self):
        counts = seed(self.store, load_fixture(FIXTURE))
        self.assertEqual((counts["characters"], counts["plotPoints"], counts["chapters"]), (2, 2, 2))
        self.assertEqual((counts["storylines"], counts["rejected"]), (1, 0))

        listed = self.client.get(f"/api/storylines/{counts['novelId']}").json()
        self.assertEqual(listed[0]["title"], "Opening the seventh gate")
        self.assertEqual(listed[0]["nodeCount"], 3)

        context = self.client.get(f"/api/ai/context/{counts['novelId']}").json()["message"]["content"]
        self.assertIn("## Chapter 1: The Delivery", context)
        self.assertIn("## Chapter 2: The Key", context)

    def test_fixture_without_novel_is_rejected(self):
        broken = Path(self._tmp.name) / "broken.yaml"
        broken.write_text("characters: []\n", encoding="utf-8")
        with self.assertRaises(ValueError):
            load_fixture(broken)


if __name__ == "__main__":
    unittest.main()
