from __future__ import annotations

import json
import unittest

from ig_verify.aggregate import decode_total_value, extract_post_data
from ig_verify.post import PostData
from ig_verify.run_log import RunLogger


def _count(n: object) -> str:
    return json.dumps({"value": {"results": [{"total_value": n}]}})


def _proof(*, public: dict | None = None, params: dict | None = None, raw_context: object = None) -> dict:
    proof: dict = {}
    if public is not None:
        proof["publicData"] = public
    if params is not None:
        proof["claimData"] = {"context": json.dumps({"extractedParameters": params})}
    elif raw_context is not None:
        proof["claimData"] = {"context": raw_context}
    return proof


class TestExtractPostData(unittest.TestCase):
    def test_empty_input_returns_none(self) -> None:
        self.assertIsNone(extract_post_data([]))
        self.assertIsNone(extract_post_data(None))

    def test_first_caption_wins(self) -> None:
        post = extract_post_data([
            _proof(public={"caption": "a"}),
            _proof(public={"caption": "b"}),
        ])
        assert post is not None
        self.assertEqual(post.caption, "a")

    def test_later_proof_fills_missing_fields(self) -> None:
        post = extract_post_data([
            _proof(public={"caption": "", "image": "https://cdn/img.jpg"}),
            _proof(public={"caption": "late caption", "video": "https://cdn/v.mp4"}),
        ])
        assert post is not None
        self.assertEqual(post.caption, "late caption")
        self.assertEqual(post.image, "https://cdn/img.jpg")
        self.assertEqual(post.video, "https://cdn/v.mp4")

    def test_params_and_counts(self) -> None:
        post = extract_post_data([
            _proof(params={"username": "owner", "media_code": "ABC", "like_count": _count(42)}),
            _proof(params={"username": "other", "comment_count": _count(7)}),
        ])
        assert post is not None
        self.assertEqual(post.username, "owner")
        self.assertEqual(post.media_code, "ABC")
        self.assertEqual(post.likes, 42)
        self.assertEqual(post.comments, 7)

    def test_malformed_like_count_defaults_to_zero(self) -> None:
        log = RunLogger.in_memory()
        post = extract_post_data(
            [_proof(params={"username": "owner", "like_count": "not-json", "comment_count": _count(3)})],
            logger=log,
        )
        assert post is not None
        self.assertEqual(post.likes, 0)
        self.assertEqual(post.comments, 3)
        self.assertEqual(post.username, "owner")
        self.assertIn("proof_count_parse_failed", log.events())

    def test_wrong_shape_count_defaults_to_zero(self) -> None:
        post = extract_post_data([
            _proof(params={"like_count": json.dumps({"value": {"results": []}})}),
            _proof(params={"like_count": json.dumps({"value": 5})}),
        ])
        assert post is not None
        self.assertEqual(post.likes, 0)

    def test_superscript_digit_count_defaults_to_zero(self) -> None:
        log = RunLogger.in_memory()
        post = extract_post_data(
            [_proof(params={"username": "owner", "like_count": _count("²"), "comment_count": _count("4")})],
            logger=log,
        )
        assert post is not None
        self.assertEqual(post.likes, 0)
        self.assertEqual(post.comments, 4)
        self.assertIn("proof_count_parse_failed", log.events())

    def test_unparseable_context_is_skipped(self) -> None:
        log = RunLogger.in_memory()
        post = extract_post_data(
            [
                _proof(public={"caption": "kept"}, raw_context="{broken"),
                _proof(params={"username": "owner"}),
            ],
            logger=log,
        )
        assert post is not None
        self.assertEqual(post.caption, "kept")
        self.assertEqual(post.username, "owner")
        self.assertIn("proof_context_parse_failed", log.events())

    def test_context_may_already_be_a_mapping(self) -> None:
        post = extract_post_data([
            {"claimData": {"context": {"extractedParameters": {"username": "owner"}}}},
        ])
        assert post is not None
        self.assertEqual(post.username, "owner")

    def test_non_mapping_proofs_are_ignored(self) -> None:
        post = extract_post_data(["junk", _proof(public={"caption": "c"})])
        assert post is not None
        self.assertEqual(post.caption, "c")
        self.assertEqual(post.likes, 0)


class TestDecodeTotalValue(unittest.TestCase):
    def test_decodes_nested_count(self) -> None:
        self.assertEqual(decode_total_value('{"value":{"results":[{"total_value":42}]}}'), 42)
        self.assertEqual(decode_total_value(_count("17")), 17)

    def test_bad_values_decode_to_zero(self) -> None:
        self.assertEqual(decode_total_value("not-json"), 0)
        self.assertEqual(decode_total_value(_count(-3)), 0)
        self.assertEqual(decode_total_value(_count(True)), 0)
        self.assertEqual(decode_total_value(_count("²")), 0)
        self.assertEqual(decode_total_value(None), 0)


class TestPostData(unittest.TestCase):
    def test_display_name_falls_back_to_fetched_owner(self) -> None:
        self.assertEqual(PostData(username="owner").display_name("fetched"), "owner")
        self.assertEqual(PostData().display_name("fetched"), "fetched")
        self.assertIsNone(PostData().display_name())


if __name__ == "__main__":
    unittest.main()
