from __future__ import annotations

import json
import tempfile
import unittest
from pathlib import Path

from ig_verify.run_log import RunLogger


class TestRunLogger(unittest.TestCase):
    def test_writes_jsonl(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            path = Path(td) / "logs" / "verify.log"
            with RunLogger.open(path, session_id="s1") as log:
                log.info("first", url="https://www.instagram.com/p/A/", n=1)
                try:
                    raise ValueError("boom")
                except ValueError as e:
                    log.exception("second", exc=e)

            lines = path.read_text(encoding="utf-8").splitlines()
            records = [json.loads(ln) for ln in lines]

        self.assertEqual([r["event"] for r in records], ["first", "second"])
        self.assertEqual(records[0]["session_id"], "s1")
        self.assertEqual(records[0]["url"], "https://www.instagram.com/p/A/")
        self.assertEqual(records[0]["data"], {"n": 1})
        self.assertEqual(records[1]["level"], "ERROR")
        self.assertEqual(records[1]["data"]["error"]["type"], "ValueError")

    def test_in_memory_records(self) -> None:
        log = RunLogger.in_memory()
        log.warning("w")
        log.debug("d")
        self.assertEqual(log.events(), ["w", "d"])
        self.assertEqual(log.records[0]["level"], "WARN")


if __name__ == "__main__":
    unittest.main()
