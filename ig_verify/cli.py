from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Any, Sequence

from .aggregate import extract_post_data
from .collaborators import CollaboratorSet, load_collaborators
from .config import RuntimeSecrets, config_sha256, load_config, resolve_runtime_secrets
from .config_schema import AppConfig
from .errors import ConfigError, FetchProofError, SigningError, VerificationError
from .fetch_proof import OwnerIdentityFetcher, TokenSource
from .flow import FlowState, VerificationFlow
from .run_log import RunLogger
from .signing import SigningTokenClient
from .surface import ConsoleSurface
from .urls import post_url_for_media_code
from .verification import VerificationStage, normalize_proof_payload

_TERMINAL_PHASES = ("verified", "error")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="ig_verify")

    subparsers = parser.add_subparsers(dest="command", required=True)

    verify = subparsers.add_parser(
        "verify",
        help="Fetch the owner of an Instagram post and verify ownership.",
    )
    verify.add_argument("--config", required=True, help="Path to YAML config file.")
    verify.add_argument("--url", required=True, help="Instagram post or reel URL.")
    verify.add_argument("--out", required=True, help="Output directory for the run log.")
    verify.add_argument(
        "--offline",
        action="store_true",
        help="Run without network calls using stub collaborators.",
    )
    verify.add_argument(
        "--collaborators",
        default=None,
        help="'module:factory' returning a CollaboratorSet for live runs.",
    )
    verify.add_argument(
        "--no-browser",
        action="store_true",
        help="Print the verification URL instead of opening a browser.",
    )
    verify.add_argument(
        "--wait-seconds",
        type=float,
        default=None,
        help="Give up waiting for the verification result after this many seconds.",
    )
    verify.set_defaults(_handler=_cmd_verify)

    parse = subparsers.add_parser(
        "parse-proofs",
        help="Flatten a saved proof (or list of proofs) into a post record.",
    )
    parse.add_argument("--file", required=True, help="Path to a proof JSON file.")
    parse.set_defaults(_handler=_cmd_parse_proofs)

    check = subparsers.add_parser(
        "check-signer",
        help="Call the health endpoint of the signing backend.",
    )
    check.add_argument("--config", required=True, help="Path to YAML config file.")
    check.set_defaults(_handler=_cmd_check_signer)

    return parser


def _eprint(message: str) -> None:
    print(message, file=sys.stderr)


def _resolve_collaborators(args: argparse.Namespace) -> tuple[CollaboratorSet, TokenSource | None]:
    if bool(getattr(args, "offline", False)):
        from .offline import OfflineSigningClient, offline_collaborators

        return offline_collaborators(), OfflineSigningClient()

    target = getattr(args, "collaborators", None)
    if not target:
        raise ConfigError("Live runs need --collaborators module:factory (or use --offline)")
    try:
        collaborators = load_collaborators(target)
    except (ImportError, ValueError) as e:
        raise ConfigError(f"Failed to load collaborators {target!r}: {e}") from e

    if bool(getattr(args, "no_browser", False)):
        collaborators = CollaboratorSet(
            fetcher_factory=collaborators.fetcher_factory,
            session_factory=collaborators.session_factory,
            surface_opener=lambda: ConsoleSurface(print),
        )
    return collaborators, None


async def run_verification(
    config: AppConfig,
    secrets: RuntimeSecrets,
    url: str,
    *,
    collaborators: CollaboratorSet,
    token_source: TokenSource | None = None,
    logger: RunLogger | None = None,
    wait_seconds: float | None = None,
) -> FlowState:
    """
    Run one fetch + verify cycle and return the final flow state.
    """
    tokens = token_source or SigningTokenClient.from_config(config.signer, logger=logger)
    fetcher = OwnerIdentityFetcher(
        tokens,
        collaborators.fetcher_factory,
        app_id=secrets.app_id,
        fetch=config.fetch,
        logger=logger,
    )
    stage = VerificationStage(
        collaborators.session_factory,
        collaborators.surface_opener,
        secrets=secrets,
        reclaim=config.reclaim,
        logger=logger,
    )
    flow = VerificationFlow(fetcher, stage, logger=logger)

    finished = asyncio.Event()
    flow.subscribe(lambda state: finished.set() if state.phase in _TERMINAL_PHASES else None)

    flow.set_url(url)
    identity = await flow.fetch_owner()
    if identity is None or not identity.username or flow.snapshot().phase in _TERMINAL_PHASES:
        return flow.snapshot()

    await flow.start_verification()

    if flow.snapshot().phase not in _TERMINAL_PHASES:
        if wait_seconds is None:
            await finished.wait()
        else:
            try:
                await asyncio.wait_for(finished.wait(), timeout=wait_seconds)
            except asyncio.TimeoutError:
                if logger is not None:
                    logger.warning("verification_wait_timed_out", wait_seconds=wait_seconds)

    return flow.snapshot()


def _print_state(state: FlowState) -> None:
    post = state.post
    print(f"phase={state.phase}")
    print(f"verification={state.verification}")
    print(f"username={state.username or ''}")
    if post is not None:
        print(f"owner={post.display_name(state.username) or ''}")
        if post.media_code:
            print(f"post_url={post_url_for_media_code(post.media_code)}")
    if state.error:
        print(f"error={state.error}")
    print("post=")
    payload: Any = post.to_dict() if post is not None else None
    print(json.dumps(payload, indent=2, ensure_ascii=False, sort_keys=True))


def _cmd_verify(args: argparse.Namespace) -> int:
    out_dir = Path(args.out)
    out_dir.mkdir(parents=True, exist_ok=True)

    log_path = out_dir / "verify.log"
    with RunLogger.open(log_path, overwrite=True) as log:
        log.info("verify_command_started", url=str(args.url), config_path=str(args.config))

        try:
            cfg = load_config(args.config)
            secrets = resolve_runtime_secrets(cfg, offline=bool(args.offline))
            log.info(
                "config_loaded",
                config_sha256=config_sha256(cfg),
                signer_url=cfg.signer.api_url,
                provider_id=cfg.reclaim.provider_id,
            )

            collaborators, token_source = _resolve_collaborators(args)
            state = asyncio.run(
                run_verification(
                    cfg,
                    secrets,
                    str(args.url),
                    collaborators=collaborators,
                    token_source=token_source,
                    logger=log,
                    wait_seconds=args.wait_seconds,
                )
            )

            log.info("verify_command_completed", phase=state.phase, error=state.error)
            _print_state(state)
            print(f"run_log={log_path}")

            return 0 if state.phase == "verified" else 4
        except Exception as e:
            log.exception("verify_command_failed", exc=e)
            raise


def _cmd_parse_proofs(args: argparse.Namespace) -> int:
    path = Path(args.file)
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except OSError as e:
        raise ConfigError(f"Failed to read proof file: {path}") from e
    except ValueError as e:
        raise ConfigError(f"Proof file is not valid JSON: {path}: {e}") from e

    proofs = normalize_proof_payload(raw)
    if proofs is None:
        raise VerificationError(f"Proof file does not contain proof objects: {path}")

    post = extract_post_data(proofs)
    print(json.dumps(post.to_dict() if post else None, indent=2, ensure_ascii=False, sort_keys=True))
    return 0


def _cmd_check_signer(args: argparse.Namespace) -> int:
    cfg = load_config(args.config)
    client = SigningTokenClient.from_config(cfg.signer)
    message = asyncio.run(client.health_check())
    print(f"signer_url={client.api_url}")
    print(f"signer_status={message}")
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)

    try:
        handler = getattr(args, "_handler")
        return int(handler(args))
    except ConfigError as e:
        _eprint(str(e))
        return 2
    except (SigningError, FetchProofError, VerificationError) as e:
        _eprint(str(e))
        return 3
    except KeyboardInterrupt:
        _eprint("Interrupted")
        return 130
    except Exception as e:
        _eprint(f"Unexpected error: {e}")
        return 1
