import os
import unittest
from unittest.mock import patch

from fastapi.testclient import TestClient

from backend.app import create_app
from backend.config import get_settings
from backend.dependencies import get_backend
from backend.supabase_client import InMemoryBackend

TEST_ENV = {
    "SUPABASE_URL": "https://project.supabase.test",
    "SUPABASE_SERVICE_KEY": "service-key",
    "SUPABASE_ANON_KEY": "anon-key",
}


def _profile_row(user_id: str) -> dict:
    return {
        "id": user_id,
        "email": "ada@example.com",
        "name": "Ada",
        "bio": "Builds engines.",
        "location": "London",
        "title": None,
        "role": "founder",
        "github_url": "https://github.com/ada",
        "linkedin_url": None,
        "portfolio_url": None,
        "skills": ["Python", {"name": "Math", "level": "expert"}],
        "education": [],
        "work_experience": [
            {
                "title": "Engineer",
                "company": "Analytical Engines",
                "period": "1842-1843",
                "description": "Wrote the notes.",
                "technologies": ["Punch cards"],
            }
        ],
    }


class BackendApiTests(unittest.TestCase):
    def setUp(self):
        env = patch.dict(os.environ, TEST_ENV)
        env.start()
        self.addCleanup(env.stop)
        get_settings.cache_clear()
        self.addCleanup(get_settings.cache_clear)

        self.backend = InMemoryBackend()
        app = create_app()
        app.dependency_overrides[get_backend] = lambda: self.backend
        self.client = TestClient(app)

    def test_hello(self):
        response = self.client.get("/api/hello")
        self.assertEqual(response.status_code, 200)
        payload = response.json()
        self.assertEqual(payload["message"], "Hello from Teamera API!")
        self.assertEqual(payload["status"], "success")
        self.assertIn("timestamp", payload)

    def test_health_reports_connection(self):
        response = self.client.get("/api/health")
        self.assertEqual(response.status_code, 200)
        payload = response.json()
        self.assertTrue(payload["success"])
        self.assertEqual(payload["data"], {"connected": True})

    def test_health_reports_unreachable_backend(self):
        self.backend.fail("test_connection", "connection refused")
        response = self.client.get("/api/health")
        self.assertEqual(response.status_code, 503)
        payload = response.json()
        self.assertFalse(payload["success"])
        self.assertEqual(payload["code"], "BACKEND_UNAVAILABLE")

    def test_me_requires_bearer_token(self):
        response = self.client.get("/api/me")
        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.json()["code"], "UNAUTHORIZED")

        response = self.client.get(
            "/api/me", headers={"Authorization": "Bearer not-a-token"}
        )
        self.assertEqual(response.status_code, 401)

    def test_me_returns_user_and_profile(self):
        user = self.backend.register_user("ada@example.com", "secret", name="Ada")
        session = self.backend.start_session(user)
        self.backend.add_profile(_profile_row(user.id))

        response = self.client.get(
            "/api/me", headers={"Authorization": f"Bearer {session.access_token}"}
        )
        self.assertEqual(response.status_code, 200)
        data = response.json()["data"]
        self.assertEqual(data["user"]["id"], user.id)
        self.assertEqual(data["profile"]["githubUrl"], "https://github.com/ada")
        self.assertEqual(data["profile"]["experience"][0]["period"], "1842-1843")
        self.assertEqual(data["card"]["header"]["title"], "The Founder")
        self.assertFalse(data["needsOnboarding"])

    def test_me_without_profile_needs_onboarding(self):
        user = self.backend.register_user("new@example.com", "secret")
        session = self.backend.start_session(user)

        response = self.client.get(
            "/api/me", headers={"Authorization": f"Bearer {session.access_token}"}
        )
        self.assertEqual(response.status_code, 200)
        data = response.json()["data"]
        self.assertIsNone(data["profile"])
        self.assertIsNone(data["card"])
        self.assertTrue(data["needsOnboarding"])

    def test_get_user_by_id(self):
        user = self.backend.register_user("ada@example.com", "secret", name="Ada")
        response = self.client.get(f"/api/users/{user.id}")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["data"]["email"], "ada@example.com")

        response = self.client.get("/api/users/missing")
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json()["code"], "NOT_FOUND")

    def test_get_profile_card(self):
        user = self.backend.register_user("ada@example.com", "secret", name="Ada")
        self.backend.add_profile(_profile_row(user.id))

        response = self.client.get(f"/api/profiles/{user.id}")
        self.assertEqual(response.status_code, 200)
        card = response.json()["data"]["card"]
        self.assertEqual(card["header"]["title"], "The Founder")
        self.assertEqual(card["skills"]["items"], ["Python", "Math"])
        self.assertEqual(card["experience"]["items"][0]["duration"], "1842-1843")

    def test_get_profile_missing_or_failing(self):
        response = self.client.get("/api/profiles/nobody")
        self.assertEqual(response.status_code, 404)

        self.backend.fail("fetch_profile_row", "upstream timeout")
        response = self.client.get("/api/profiles/nobody")
        self.assertEqual(response.status_code, 502)
        self.assertEqual(response.json()["message"], "upstream timeout")

    def test_validate_user(self):
        response = self.client.post(
            "/api/users/validate",
            json={"name": "  <script>alert(1)</script>Ada  ", "email": "ada@example.com"},
        )
        self.assertEqual(response.status_code, 200)
        data = response.json()["data"]
        self.assertEqual(data["name"], "Ada")
        self.assertEqual(data["email"], "ada@example.com")

    def test_validate_user_reports_errors(self):
        response = self.client.post(
            "/api/users/validate", json={"name": "", "email": "not-an-email"}
        )
        self.assertEqual(response.status_code, 400)
        payload = response.json()
        self.assertFalse(payload["success"])
        self.assertEqual(payload["code"], "VALIDATION_ERROR")
        self.assertIn("Name is required", payload["message"])
        self.assertIn("Invalid email format", payload["message"])


if __name__ == "__main__":
    unittest.main()
