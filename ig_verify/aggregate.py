from __future__ import annotations

import json
from typing import Any, Mapping, Sequence

from .post import PostData
from .run_log import RunLogger


def _coerce_str(value: Any) -> str | None:
    if isinstance(value, str):
        s = value.strip()
        return s if s else None
    return None


def _coerce_count(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value if value >= 0 else None
    if isinstance(value, float):
        if value.is_integer() and value >= 0:
            return int(value)
        return None
    if isinstance(value, str):
        s = value.strip()
        if not s.isdecimal():
            return None
        try:
            return int(s)
        except ValueError:
            return None
    return None


def _try_decode_total_value(raw: Any) -> int | None:
    """
    Decode a count shaped like {"value":{"results":[{"total_value": N}]}}.

    Returns None when the payload cannot be decoded or has the wrong shape.
    """
    data: Any = raw
    if isinstance(raw, (str, bytes)):
        try:
            data = json.loads(raw)
        except ValueError:
            return None

    if not isinstance(data, Mapping):
        return None
    value = data.get("value")
    if not isinstance(value, Mapping):
        return None
    results = value.get("results")
    if not isinstance(results, Sequence) or isinstance(results, (str, bytes)) or not results:
        return None
    first = results[0]
    if not isinstance(first, Mapping):
        return None
    return _coerce_count(first.get("total_value"))


def decode_total_value(raw: Any) -> int:
    return _try_decode_total_value(raw) or 0


def _parse_context(proof: Mapping[str, Any]) -> Mapping[str, Any] | None:
    claim = proof.get("claimData")
    if not isinstance(claim, Mapping):
        return None
    context = claim.get("context")
    if isinstance(context, (str, bytes)):
        context = json.loads(context)
    if isinstance(context, Mapping):
        return context
    return None


def _merge_first(acc: dict[str, Any], key: str, value: Any) -> None:
    if acc.get(key) is None and value is not None:
        acc[key] = value


def _merge_count(
    acc: dict[str, Any],
    key: str,
    params: Mapping[str, Any],
    param_name: str,
    *,
    index: int,
    logger: RunLogger | None,
) -> None:
    raw = params.get(param_name)
    if raw is None or raw == "":
        return

    decoded = _try_decode_total_value(raw)
    if decoded is None:
        if logger is not None:
            logger.warning(
                "proof_count_parse_failed",
                proof_index=index,
                field=param_name,
                raw=str(raw)[:200],
            )
        decoded = 0

    if not acc[key]:
        acc[key] = decoded


def extract_post_data(
    proofs: Sequence[Any] | None,
    *,
    logger: RunLogger | None = None,
) -> PostData | None:
    """
    Combine the proofs of a verification session into one PostData record.

    Proofs are scanned in order and every field keeps the first non-empty value
    seen. Malformed context or count payloads only blank out the affected field.
    """
    if not proofs:
        return None

    acc: dict[str, Any] = {
        "username": None,
        "caption": None,
        "image": None,
        "video": None,
        "likes": 0,
        "comments": 0,
        "media_code": None,
    }

    for index, proof in enumerate(proofs):
        if not isinstance(proof, Mapping):
            if logger is not None:
                logger.warning("proof_skipped_not_mapping", proof_index=index)
            continue

        public = proof.get("publicData")
        if isinstance(public, Mapping):
            _merge_first(acc, "caption", _coerce_str(public.get("caption")))
            _merge_first(acc, "image", _coerce_str(public.get("image")))
            _merge_first(acc, "video", _coerce_str(public.get("video")))

        try:
            context = _parse_context(proof)
        except ValueError as e:
            if logger is not None:
                logger.exception("proof_context_parse_failed", exc=e, level="WARN", proof_index=index)
            context = None

        params = context.get("extractedParameters") if context is not None else None
        if not isinstance(params, Mapping):
            continue

        _merge_first(acc, "username", _coerce_str(params.get("username")))
        _merge_first(acc, "media_code", _coerce_str(params.get("media_code")))

        _merge_count(acc, "likes", params, "like_count", index=index, logger=logger)
        _merge_count(acc, "comments", params, "comment_count", index=index, logger=logger)

    return PostData(**acc)
