import os
from collections.abc import Mapping

from dotenv import load_dotenv

load_dotenv()

try:
    import yaml
except ImportError as e:
    raise SystemExit(
        "Missing dependency: PyYAML\n"
        "Install it with: pip install -e ."
    ) from e

from dataclasses import dataclass
from pathlib import Path

from .aggregate import PLAYER_NAME_POLICIES


_REPO_ROOT = Path(__file__).resolve().parents[1]
_CONFIG_YAML = _REPO_ROOT / "config.yaml"

DEFAULT_LEADERBOARD_PATH = "leaderboards/leaderboard.json"
DEFAULT_LEADERBOARDS_DIR = "leaderboards"


@dataclass(frozen=True)
class Settings:
    discord_token: str
    gemini_api_key: str
    github_token: str
    github_repo: str
    github_branch: str = "main"
    port: int = 3000

    # config.yaml
    leaderboard_path: str = DEFAULT_LEADERBOARD_PATH
    leaderboards_dir: str = DEFAULT_LEADERBOARDS_DIR
    title: str = "Tournament Standings"
    gemini_model: str = "gemini-3-flash-preview"
    publish_attempts: int = 3
    publish_backoff: float = 0.5
    player_name_policy: str = "exact"
    # Push every ingested game into the cumulative leaderboard file right away.
    auto_publish: bool = True


def _get_required(env: Mapping[str, str], name: str) -> str:
    value = (env.get(name) or "").strip()
    if not value:
        raise SystemExit(f"Missing {name} env var.")
    return value


def _as_int(v) -> int | None:
    if v is None:
        return None
    if isinstance(v, bool):
        return None
    if isinstance(v, int):
        return v
    s = str(v).strip()
    if not s:
        return None
    try:
        return int(s, 0)
    except ValueError:
        return None


def _as_float(v) -> float | None:
    if v is None or isinstance(v, bool):
        return None
    try:
        return float(v)
    except (TypeError, ValueError):
        return None


def _as_bool(v, default: bool) -> bool:
    if v is None:
        return default
    if isinstance(v, bool):
        return v
    s = str(v).strip().lower()
    if not s:
        return default
    return s not in {"0", "false", "no", "off"}


def _as_str(v, default: str) -> str:
    s = str(v).strip() if v is not None else ""
    return s or default


def _load_yaml(path: Path) -> dict:
    # config.yaml is optional; every key has a default.
    if not path.exists():
        return {}
    with path.open("r", encoding="utf-8") as f:
        raw = yaml.safe_load(f) or {}
    if not isinstance(raw, dict):
        raise SystemExit(f"Invalid {path.name}: expected a mapping at top-level.")
    return {str(k).strip().upper(): v for k, v in raw.items()}


def load_settings(
    env: Mapping[str, str] | None = None,
    config_path: Path | None = None,
    *,
    require_discord: bool = True,
) -> Settings:
    """
    Build Settings from env vars (secrets, deployment) and config.yaml (tuning).

    `require_discord=False` is for the web-only entry point, which never
    talks to Discord or Gemini.
    """
    env = os.environ if env is None else env
    block = _load_yaml(config_path or _CONFIG_YAML)

    repo = _get_required(env, "GITHUB_REPO")
    if repo.count("/") != 1 or repo.startswith("/") or repo.endswith("/"):
        raise SystemExit(f"Invalid GITHUB_REPO env var {repo!r} (expected 'owner/name').")

    port_raw = (env.get("PORT") or "").strip()
    port = _as_int(port_raw) if port_raw else 3000
    if port is None or not (0 < port < 65536):
        raise SystemExit(f"Invalid PORT env var {port_raw!r} (expected a TCP port).")

    policy = _as_str(block.get("PLAYER_NAME_POLICY"), "exact").lower()
    if policy not in PLAYER_NAME_POLICIES:
        raise SystemExit(
            f"Invalid PLAYER_NAME_POLICY {policy!r} in config.yaml "
            f"(expected one of {', '.join(PLAYER_NAME_POLICIES)})."
        )

    attempts = _as_int(block.get("PUBLISH_ATTEMPTS"))
    backoff = _as_float(block.get("PUBLISH_BACKOFF"))

    return Settings(
        discord_token=_get_required(env, "DISCORD_TOKEN") if require_discord else (env.get("DISCORD_TOKEN") or ""),
        gemini_api_key=_get_required(env, "GEMINI_API_KEY") if require_discord else (env.get("GEMINI_API_KEY") or ""),
        # Public repos can be read anonymously, so the token is only needed to write.
        github_token=(env.get("GITHUB_TOKEN") or "").strip(),
        github_repo=repo,
        github_branch=_as_str(env.get("GITHUB_BRANCH"), "main"),
        port=port,
        leaderboard_path=_as_str(block.get("LEADERBOARD_PATH"), DEFAULT_LEADERBOARD_PATH),
        leaderboards_dir=_as_str(block.get("LEADERBOARDS_DIR"), DEFAULT_LEADERBOARDS_DIR),
        title=_as_str(block.get("TITLE"), "Tournament Standings"),
        gemini_model=_as_str(block.get("GEMINI_MODEL"), "gemini-3-flash-preview"),
        publish_attempts=attempts if attempts and attempts > 0 else 3,
        publish_backoff=backoff if backoff is not None and backoff >= 0 else 0.5,
        player_name_policy=policy,
        auto_publish=_as_bool(block.get("AUTO_PUBLISH"), True),
    )
