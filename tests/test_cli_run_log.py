from __future__ import annotations

import json
import os
import subprocess
import sys
import tempfile
import unittest
from pathlib import Path


class TestVerifyCommandWritesLog(unittest.TestCase):
    def test_verify_creates_log_on_config_error(self) -> None:
        repo_root = Path(__file__).resolve().parents[1]

        with tempfile.TemporaryDirectory() as td:
            out_dir = Path(td) / "out"
            missing_cfg = Path(td) / "missing_config.yaml"

            env = dict(os.environ)
            env["RECLAIM_APP_ID"] = "dummy"
            env["RECLAIM_APP_SECRET"] = "dummy"

            existing_pp = env.get("PYTHONPATH", "")
            env["PYTHONPATH"] = (
                f"{repo_root}{os.pathsep}{existing_pp}" if existing_pp else str(repo_root)
            )

            proc = subprocess.run(
                [
                    sys.executable,
                    "-m",
                    "ig_verify",
                    "verify",
                    "--config",
                    str(missing_cfg),
                    "--url",
                    "https://www.instagram.com/p/ABC123/",
                    "--out",
                    str(out_dir),
                    "--offline",
                ],
                cwd=repo_root,
                env=env,
                capture_output=True,
                text=True,
            )

            self.assertEqual(proc.returncode, 2, msg=proc.stderr)

            log_path = out_dir / "verify.log"
            self.assertTrue(log_path.exists())

            events: list[str] = []
            for ln in log_path.read_text(encoding="utf-8").splitlines():
                if not ln.strip():
                    continue
                try:
                    obj = json.loads(ln)
                except Exception:
                    continue
                ev = obj.get("event")
                if isinstance(ev, str):
                    events.append(ev)

            self.assertIn("verify_command_started", events)
            self.assertIn("verify_command_failed", events)


if __name__ == "__main__":
    unittest.main()
