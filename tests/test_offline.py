from __future__ import annotations

import unittest

from ig_verify.cli import run_verification
from ig_verify.config import RuntimeSecrets
from ig_verify.config_schema import AppConfig
from ig_verify.fetch_proof import build_extraction_rules
from ig_verify.offline import OfflineProofFetcher, OfflineSigningClient, offline_collaborators
from ig_verify.run_log import RunLogger


class TestOfflineCollaborators(unittest.IsolatedAsyncioTestCase):
    async def test_offline_fetcher_applies_username_pattern(self) -> None:
        fetcher = OfflineProofFetcher("app", "tok", username="someone")
        data = await fetcher.fetch_with_proof(
            "https://www.instagram.com/p/A/embed/",
            {"method": "GET", "context": {"contextAddress": "0x0"}},
            build_extraction_rules(AppConfig().fetch),
        )
        self.assertEqual(data["extractedParameterValues"], {"username": "someone"})

    async def test_run_verification_offline(self) -> None:
        log = RunLogger.in_memory()
        state = await run_verification(
            AppConfig(),
            RuntimeSecrets(app_id="app", app_secret="secret"),
            "https://www.instagram.com/reel/XYZ789/",
            collaborators=offline_collaborators(),
            token_source=OfflineSigningClient(),
            logger=log,
        )

        self.assertEqual(state.phase, "verified")
        assert state.post is not None
        self.assertEqual(state.post.media_code, "XYZ789")
        self.assertEqual(state.post.likes, 128)
        self.assertEqual(state.post.comments, 14)
        self.assertIn("verification_state_changed", log.events())


if __name__ == "__main__":
    unittest.main()
