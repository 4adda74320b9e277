"""
Tests for the HTTP API using FastAPI's TestClient.
"""

import inspect
import unittest
from pathlib import Path

from fastapi.testclient import TestClient

import api_server
import flowbot_config

DEMO_BOARD = Path(__file__).parent.parent / "boards" / "demo.yaml"


class TestApiServer(unittest.TestCase):

    def setUp(self):
        self._saved = (flowbot_config.THINK_DELAY, flowbot_config.SEED_BOARD, flowbot_config.MAX_SESSIONS)
        flowbot_config.THINK_DELAY = 0.0
        flowbot_config.SEED_BOARD = ""
        api_server.sessions.clear()
        self.client = TestClient(api_server.app)

    def tearDown(self):
        flowbot_config.THINK_DELAY, flowbot_config.SEED_BOARD, flowbot_config.MAX_SESSIONS = self._saved
        api_server.sessions.clear()

    def chat(self, message, session_id=None):
        payload = {"message": message}
        if session_id:
            payload["session_id"] = session_id
        return self.client.post("/api/chat", json=payload)

    def test_health(self):
        response = self.client.get("/health")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["status"], "ok")

    def test_suggestions(self):
        response = self.client.get("/api/suggestions")

        self.assertEqual(response.json(), flowbot_config.SUGGESTIONS)

    def test_chat_creates_session(self):
        response = self.chat("create workflow Launch Campaign")

        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body["intent"], "create")
        self.assertEqual(len(body["workflows"]), 1)
        self.assertEqual(body["workflows"][0]["name"], "Launch Campaign")
        self.assertEqual(body["workflows"][0]["steps"], [])
        self.assertEqual(body["highlighted_workflow_id"], body["workflows"][0]["id"])
        self.assertIn(body["session_id"], api_server.sessions)

    def test_conversation(self):
        session_id = self.chat("create workflow Launch Campaign").json()["session_id"]
        self.chat("add step to Launch Campaign: Prepare email sequence", session_id)

        body = self.chat("run workflow Launch Campaign", session_id).json()

        self.assertEqual(body["intent"], "run")
        step = body["workflows"][0]["steps"][0]
        self.assertEqual(step["title"], "Prepare email sequence")
        self.assertEqual(step["status"], "in-progress")

    def test_unknown_session(self):
        response = self.chat("list workflows", "nope")

        self.assertEqual(response.status_code, 404)

    def test_blank_message_rejected(self):
        response = self.chat("   ")

        self.assertEqual(response.status_code, 422)
        self.assertEqual(api_server.sessions, {})

    def test_session_detail_and_delete(self):
        session_id = self.chat("create workflow Launch Campaign").json()["session_id"]

        detail = self.client.get(f"/api/sessions/{session_id}").json()
        self.assertEqual([m["role"] for m in detail["messages"]], ["system", "user", "assistant"])
        self.assertEqual(len(detail["workflows"]), 1)

        listing = self.client.get("/api/sessions").json()
        self.assertEqual(listing[0]["turns"], 1)

        self.assertEqual(self.client.delete(f"/api/sessions/{session_id}").status_code, 200)
        self.assertEqual(self.client.get(f"/api/sessions/{session_id}").status_code, 404)

    def test_seed_board(self):
        flowbot_config.SEED_BOARD = str(DEMO_BOARD)

        body = self.chat("list workflows").json()

        self.assertEqual(len(body["workflows"]), 3)
        self.assertIn("Product Release QA", body["reply"])

    def test_chat_runs_on_event_loop(self):
        # the session table is mutated from the loop, never from a worker thread
        self.assertTrue(inspect.iscoroutinefunction(api_server.chat))

    def test_listing_while_sessions_are_created(self):
        for _ in range(3):
            self.chat("help")

        listing = self.client.get("/api/sessions").json()

        self.assertEqual(len(listing), 3)
        self.assertEqual([s["session_id"] for s in listing], list(api_server.sessions))

    def test_oldest_session_evicted(self):
        flowbot_config.MAX_SESSIONS = 2
        first = self.chat("help").json()["session_id"]
        self.chat("help")
        self.chat("help")

        self.assertEqual(len(api_server.sessions), 2)
        self.assertNotIn(first, api_server.sessions)


if __name__ == '__main__':
    unittest.main()
