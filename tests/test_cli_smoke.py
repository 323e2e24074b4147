from __future__ import annotations

import json
import os
import subprocess
import sys
import tempfile
import unittest
from pathlib import Path


def _env(repo_root: Path) -> dict[str, str]:
    env = dict(os.environ)
    env["RECLAIM_APP_ID"] = "dummy"
    env["RECLAIM_APP_SECRET"] = "dummy"

    existing_pp = env.get("PYTHONPATH", "")
    env["PYTHONPATH"] = (
        f"{repo_root}{os.pathsep}{existing_pp}" if existing_pp else str(repo_root)
    )
    return env


class TestCLISmoke(unittest.TestCase):
    def test_verify_offline_cli(self) -> None:
        repo_root = Path(__file__).resolve().parents[1]

        with tempfile.TemporaryDirectory() as td:
            cfg_path = Path(td) / "config.yaml"
            cfg_path.write_text("{}", encoding="utf-8")
            out_dir = Path(td) / "out"

            proc = subprocess.run(
                [
                    sys.executable,
                    "-m",
                    "ig_verify",
                    "verify",
                    "--config",
                    str(cfg_path),
                    "--url",
                    "https://www.instagram.com/p/ABC123/",
                    "--out",
                    str(out_dir),
                    "--offline",
                ],
                cwd=repo_root,
                env=_env(repo_root),
                capture_output=True,
                text=True,
            )

            self.assertEqual(proc.returncode, 0, msg=proc.stderr)
            self.assertIn("phase=verified", proc.stdout)
            self.assertIn("username=offline_athlete", proc.stdout)
            self.assertIn("owner=offline_athlete", proc.stdout)
            self.assertIn("post_url=https://www.instagram.com/p/ABC123/", proc.stdout)
            self.assertIn('"likes": 128', proc.stdout)
            self.assertIn('"media_code": "ABC123"', proc.stdout)
            self.assertTrue((out_dir / "verify.log").exists())

    def test_verify_bad_url_exits_with_flow_error(self) -> None:
        repo_root = Path(__file__).resolve().parents[1]

        with tempfile.TemporaryDirectory() as td:
            cfg_path = Path(td) / "config.yaml"
            cfg_path.write_text("{}", encoding="utf-8")

            proc = subprocess.run(
                [
                    sys.executable,
                    "-m",
                    "ig_verify",
                    "verify",
                    "--config",
                    str(cfg_path),
                    "--url",
                    "https://www.instagram.com/someone/",
                    "--out",
                    str(Path(td) / "out"),
                    "--offline",
                ],
                cwd=repo_root,
                env=_env(repo_root),
                capture_output=True,
                text=True,
            )

            self.assertEqual(proc.returncode, 4, msg=proc.stderr)
            self.assertIn("phase=error", proc.stdout)
            self.assertIn("Could not extract media code from URL.", proc.stdout)

    def test_verify_offline_without_reclaim_credentials(self) -> None:
        repo_root = Path(__file__).resolve().parents[1]
        env = _env(repo_root)
        env.pop("RECLAIM_APP_ID", None)
        env.pop("RECLAIM_APP_SECRET", None)

        with tempfile.TemporaryDirectory() as td:
            cfg_path = Path(td) / "config.yaml"
            cfg_path.write_text("{}", encoding="utf-8")

            proc = subprocess.run(
                [
                    sys.executable,
                    "-m",
                    "ig_verify",
                    "verify",
                    "--config",
                    str(cfg_path),
                    "--url",
                    "https://www.instagram.com/reel/XYZ789",
                    "--out",
                    str(Path(td) / "out"),
                    "--offline",
                ],
                cwd=repo_root,
                env=env,
                capture_output=True,
                text=True,
            )

            self.assertEqual(proc.returncode, 0, msg=proc.stderr)
            self.assertIn("phase=verified", proc.stdout)
            self.assertIn("post_url=https://www.instagram.com/p/XYZ789/", proc.stdout)

    def test_parse_proofs_cli(self) -> None:
        repo_root = Path(__file__).resolve().parents[1]

        proof = {
            "claimData": {
                "context": json.dumps(
                    {
                        "extractedParameters": {
                            "username": "owner1",
                            "comment_count": '{"value":{"results":[{"total_value":9}]}}',
                        }
                    }
                )
            },
            "publicData": {"caption": "hello"},
        }

        with tempfile.TemporaryDirectory() as td:
            proof_path = Path(td) / "proof.json"
            proof_path.write_text(json.dumps(proof), encoding="utf-8")

            proc = subprocess.run(
                [sys.executable, "-m", "ig_verify", "parse-proofs", "--file", str(proof_path)],
                cwd=repo_root,
                env=_env(repo_root),
                capture_output=True,
                text=True,
            )

            self.assertEqual(proc.returncode, 0, msg=proc.stderr)
            post = json.loads(proc.stdout)
            self.assertEqual(post["username"], "owner1")
            self.assertEqual(post["comments"], 9)
            self.assertEqual(post["caption"], "hello")


if __name__ == "__main__":
    unittest.main()
