import os
import tempfile
import unittest
from unittest.mock import AsyncMock, patch

from fastapi.testclient import TestClient

from everydaymed.config import GameConfig, Settings
from everydaymed.main import create_app
from everydaymed.openai_client import CANNED_CASE


class ApiTestCase(unittest.TestCase):
    cron_secret = None

    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        url = f"sqlite+aiosqlite:///{os.path.join(self.tmp.name, 'api.sqlite3')}"
        self.settings = Settings(
            game=GameConfig(max_questions=3),
            database_url=url,
            use_llm=False,
            timezone="UTC",
            cron_secret=self.cron_secret,
        )
        self.client = TestClient(create_app(self.settings))
        self.client.__enter__()

    def tearDown(self):
        self.client.__exit__(None, None, None)
        self.tmp.cleanup()

    def start(self, user_id="player-1"):
        self.client.get("/api/get-disease-of-the-day")
        return self.client.post("/api/get-disease-of-the-day", json={"user_id": user_id})


class TestHealth(ApiTestCase):
    def test_health(self):
        r = self.client.get("/health")
        self.assertEqual(r.status_code, 200)
        self.assertEqual(r.json(), {"server": "ok", "database": "ok", "llm": "disabled"})


class TestDiseaseOfTheDay(ApiTestCase):
    def test_get_generates_case_and_hides_answer(self):
        r = self.client.get("/api/get-disease-of-the-day")
        self.assertEqual(r.status_code, 200)
        data = r.json()
        self.assertNotIn("disease_name", data["disease"])
        self.assertEqual(data["disease"]["description"], CANNED_CASE["description"])
        self.assertIsNone(data["user_progress"])
        self.assertEqual(data["game_config"], {"max_attempts": 3, "max_hints": 3, "max_questions": 3})

    def test_post_without_case_is_404(self):
        r = self.client.post("/api/get-disease-of-the-day", json={})
        self.assertEqual(r.status_code, 404)

    def test_post_creates_progress(self):
        r = self.start()
        self.assertEqual(r.status_code, 200)
        progress = r.json()["user_progress"]
        self.assertEqual(progress["user_id"], "player-1")
        self.assertEqual(progress["attempts_left"], 3)
        self.assertFalse(progress["is_solved"])

    def test_answer_revealed_after_game_ends(self):
        self.start()
        self.client.post("/api/submit-guess", json={"guess": "pneumonia", "user_id": "player-1"})

        mine = self.client.get("/api/get-disease-of-the-day", params={"user_id": "player-1"}).json()
        theirs = self.client.get("/api/get-disease-of-the-day", params={"user_id": "player-2"}).json()
        self.assertEqual(mine["disease"]["disease_name"], CANNED_CASE["disease_name"])
        self.assertNotIn("disease_name", theirs["disease"])


class TestSubmitGuess(ApiTestCase):
    def test_guess_without_case_is_404(self):
        r = self.client.post("/api/submit-guess", json={"guess": "pneumonia"})
        self.assertEqual(r.status_code, 404)

    def test_short_guess_rejected(self):
        self.start()
        r = self.client.post("/api/submit-guess", json={"guess": " ab ", "user_id": "player-1"})
        self.assertEqual(r.status_code, 400)
        r = self.client.post("/api/submit-guess", json={"guess": "", "user_id": "player-1"})
        self.assertEqual(r.status_code, 422)

    def test_correct_guess_scores_and_completes(self):
        self.start()
        r = self.client.post("/api/submit-guess", json={"guess": "Pneumonia", "user_id": "player-1"})
        self.assertEqual(r.status_code, 200)
        data = r.json()
        self.assertTrue(data["is_correct"])
        self.assertEqual(data["score"], 250)
        self.assertEqual(data["correct_answer"], CANNED_CASE["disease_name"])

        r = self.client.post("/api/submit-guess", json={"guess": "Pneumonia", "user_id": "player-1"})
        self.assertEqual(r.status_code, 400)
        self.assertEqual(r.json()["detail"], "Game already completed for today")

        stats = self.client.get("/api/statistics", params={"user_id": "player-1"}).json()
        self.assertEqual(stats["games_won"], 1)
        self.assertEqual(stats["win_rate"], 1.0)

    def test_guess_creates_progress_for_new_player(self):
        self.client.get("/api/get-disease-of-the-day")
        r = self.client.post("/api/submit-guess", json={"guess": "gripe"})
        self.assertEqual(r.status_code, 200)
        self.assertEqual(r.json()["attempts_left"], 2)

    def test_statistics_failure_still_returns_result(self):
        from sqlalchemy.exc import SQLAlchemyError

        self.start()
        failing = AsyncMock(side_effect=SQLAlchemyError("statistics table unavailable"))
        with patch("everydaymed.crud.record_game_result", new=failing):
            r = self.client.post("/api/submit-guess", json={"guess": "pneumonia", "user_id": "player-1"})

        self.assertEqual(r.status_code, 200)
        self.assertTrue(r.json()["game_completed"])
        self.assertEqual(r.json()["correct_answer"], CANNED_CASE["disease_name"])
        failing.assert_awaited_once()

        # the finished game stays stored
        r = self.client.get("/api/get-disease-of-the-day", params={"user_id": "player-1"})
        self.assertTrue(r.json()["user_progress"]["is_solved"])
        self.assertEqual(self.client.get("/api/statistics", params={"user_id": "player-1"}).status_code, 404)


class TestQuestionsAndHints(ApiTestCase):
    def test_question_flow(self):
        self.start()
        with patch("everydaymed.game.answer_yes_no", new=AsyncMock(return_value="Não")):
            r = self.client.post("/api/ask-question", json={"question": "O paciente fuma?", "user_id": "player-1"})
        self.assertEqual(r.status_code, 200)
        self.assertEqual(r.json()["answer"], "Não")
        self.assertEqual(r.json()["remaining_questions"], 2)

        r = self.client.post("/api/ask-question", json={"question": "o paciente FUMA?", "user_id": "player-1"})
        self.assertEqual(r.status_code, 400)

        r = self.client.post("/api/ask-question", json={"question": "Dor?", "user_id": "player-1"})
        self.assertEqual(r.status_code, 400)

    def test_hint_limit(self):
        self.start()
        for n in (1, 2, 3):
            r = self.client.post("/api/get-hint", json={"user_id": "player-1"})
            self.assertEqual(r.status_code, 200)
            self.assertEqual(r.json()["hint_number"], n)

        r = self.client.post("/api/get-hint", json={"user_id": "player-1"})
        self.assertEqual(r.status_code, 400)
        self.assertIn("Maximum of 3 hints", r.json()["detail"])

    def test_hint_model_failure_is_502(self):
        from everydaymed.errors import LLMError

        self.start()
        with patch("everydaymed.game.generate_hint", new=AsyncMock(side_effect=LLMError("LLM backend failed: down"))):
            r = self.client.post("/api/get-hint", json={"user_id": "player-1"})
        self.assertEqual(r.status_code, 502)


class TestGenerateDisease(ApiTestCase):
    def test_generate_then_existing_then_forced(self):
        r = self.client.post("/api/generate-disease")
        self.assertEqual(r.json()["message"], "Disease generated successfully")
        first_id = r.json()["disease"]["id"]

        r = self.client.post("/api/generate-disease", json={"force_regenerate": False})
        self.assertEqual(r.json()["message"], "Disease already exists for today")
        self.assertEqual(r.json()["disease"]["id"], first_id)

        r = self.client.post("/api/generate-disease", json={"force_regenerate": True})
        self.assertEqual(r.status_code, 200)
        self.assertNotEqual(r.json()["disease"]["id"], first_id)


class TestAdmin(ApiTestCase):
    def test_status_and_recent(self):
        r = self.client.get("/api/admin/disease-control")
        self.assertEqual(r.json()["system_status"], "needs_disease")

        self.client.post("/api/admin/disease-control", json={"action": "ensure-today"})
        self.client.post("/api/admin/disease-control", json={"action": "pre-generate-tomorrow"})

        status = self.client.get("/api/admin/disease-control", params={"action": "status"}).json()
        self.assertEqual(status["system_status"], "healthy")
        self.assertTrue(status["tomorrow_disease"]["exists"])
        self.assertFalse(status["cron"]["disease_generation"]["enabled"])

        recent = self.client.get("/api/admin/disease-control", params={"action": "recent", "days": 5}).json()
        self.assertEqual(recent["count"], 2)

        today = self.client.get("/api/admin/disease-control", params={"action": "check-today"}).json()
        self.assertTrue(today["exists"])

    def test_run_cron_now(self):
        r = self.client.post("/api/admin/disease-control", json={"action": "run-cron-now"})
        self.assertEqual(r.status_code, 200)
        self.assertIsNotNone(r.json()["cron_result"]["tomorrow"])

    def test_invalid_actions(self):
        self.assertEqual(self.client.get("/api/admin/disease-control", params={"action": "nope"}).status_code, 400)
        self.assertEqual(self.client.post("/api/admin/disease-control", json={"action": "nope"}).status_code, 400)


class TestCronSecret(ApiTestCase):
    cron_secret = "s3cret"

    def test_cron_requires_bearer_secret(self):
        self.assertEqual(self.client.get("/api/cron/daily-disease").status_code, 401)

        headers = {"Authorization": "Bearer s3cret"}
        r = self.client.get("/api/cron/daily-disease", headers=headers)
        self.assertEqual(r.status_code, 200)
        self.assertEqual(r.json()["message"], "Daily disease generated successfully")

        r = self.client.post("/api/cron/daily-disease", headers=headers)
        self.assertEqual(r.json()["message"], "Disease already exists for today")

    def test_admin_requires_bearer_secret(self):
        self.assertEqual(self.client.get("/api/admin/disease-control").status_code, 401)


if __name__ == "__main__":
    unittest.main()
