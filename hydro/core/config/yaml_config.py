from __future__ import annotations

import os
import re
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from dotenv import load_dotenv

from hydro.channels.gammu_sms import GammuConfig
from hydro.channels.mail_sender import MailConfig, SmtpConfig
from hydro.channels.twilio_call import TwilioConfig
from hydro.domain.errors import ConfigError
from hydro.domain.models import Alarm, User, parse_alarm, parse_user
from hydro.notification.webhook_notifier import WebhookConfig

_ENV_REF = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)\}")


@dataclass(frozen=True)
class LoggingConfig:
    """Root logger settings for the dev runner."""
    level: str = "INFO"
    format: str = "%(asctime)s %(levelname)s %(name)s: %(message)s"


@dataclass(frozen=True)
class DispatcherConfig:
    """Action dispatcher thread pool size."""
    max_workers: int = 8


@dataclass(frozen=True)
class AppConfig:
    """
    Root application configuration loaded from YAML.

    A channel section that is absent leaves the channel unwired; actions of
    that type are then skipped with a warning.
    """
    logging: LoggingConfig
    dispatcher: DispatcherConfig
    gammu: Optional[GammuConfig]
    mail: Optional[MailConfig]
    twilio: Optional[TwilioConfig]
    webhook: Optional[WebhookConfig]
    users: List[User]
    alarms: List[Alarm]


def _read_yaml(path: Path) -> Dict[str, Any]:
    with path.open("r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ConfigError("config.yaml must contain a YAML mapping at the root")
    return data


def _resolve_default_config_path() -> Path:
    """
    Resolve config.yaml location.

    Priority:
    1) HYDRO_CONFIG env var if provided
    2) config.yaml next to the executable
    3) ./config.yaml in current working directory
    """
    env = os.getenv("HYDRO_CONFIG")
    if env:
        return Path(env).expanduser().resolve()

    exe_dir = Path(sys.executable).resolve().parent
    candidate = exe_dir / "config.yaml"
    if candidate.exists():
        return candidate

    return Path("config.yaml").resolve()


def expand_env(value: Any) -> Any:
    """
    Replace ``${NAME}`` references in every string of a parsed YAML tree.

    Raises
    ------
    ConfigError
        If a referenced variable is not set.
    """
    if isinstance(value, dict):
        return {k: expand_env(v) for k, v in value.items()}
    if isinstance(value, list):
        return [expand_env(v) for v in value]
    if not isinstance(value, str):
        return value

    def _sub(m: "re.Match[str]") -> str:
        name = m.group(1)
        env = os.getenv(name)
        if env is None:
            raise ConfigError(f"Environment variable {name} is not set")
        return env

    return _ENV_REF.sub(_sub, value)


def _section(raw: Dict[str, Any], name: str) -> Optional[Dict[str, Any]]:
    section = raw.get(name)
    if section is None:
        return None
    if not isinstance(section, dict):
        raise ConfigError(f"`{name}` must be a mapping")
    return section


def _opt_str(value: Any) -> Optional[str]:
    return None if value in (None, "") else str(value)


def load_app_config(path: Optional[str] = None) -> AppConfig:
    """
    Load application configuration from YAML and convert into typed config objects.

    A ``.env`` file next to the config file is loaded first, so secrets can be
    referenced as ``${NAME}`` in YAML values.

    Parameters
    ----------
    path
        Explicit path to config.yaml. If None, uses default resolution.

    Returns
    -------
    AppConfig
        Parsed and validated configuration.

    Raises
    ------
    FileNotFoundError
        If config file does not exist.
    ConfigError
        If required fields are missing or invalid.
    """
    cfg_path = Path(path).expanduser().resolve() if path else _resolve_default_config_path()
    if not cfg_path.exists():
        raise FileNotFoundError(f"Config not found: {cfg_path}")

    load_dotenv(cfg_path.parent / ".env")
    raw = expand_env(_read_yaml(cfg_path))

    try:
        return _parse_config(raw)
    except ConfigError:
        raise
    except KeyError as e:
        raise ConfigError(f"Missing config field {e}") from e
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Invalid config value: {e}") from e


def _parse_config(raw: Dict[str, Any]) -> AppConfig:
    # ---- logging ----
    lg = _section(raw, "logging") or {}
    logging_cfg = LoggingConfig(
        level=str(lg.get("level", "INFO")).upper(),
        format=str(lg.get("format", LoggingConfig.format)),
    )

    # ---- dispatcher ----
    d = _section(raw, "dispatcher") or {}
    dispatcher = DispatcherConfig(max_workers=int(d.get("max_workers", 8)))

    # ---- gammu ----
    gammu = None
    g = _section(raw, "gammu")
    if g is not None:
        gammu = GammuConfig(
            gammu=str(g.get("gammu", "/usr/bin/gammu")),
            gammurc=str(g.get("gammurc", "/etc/gammurc")),
            timeout_s=float(g.get("timeout_s", 15.0)),
            security_code_type=str(g.get("security_code_type", "PIN")),
            security_code=_opt_str(g.get("security_code")),
            country_code=str(g.get("country_code", "48")),
            max_queue=int(g.get("max_queue", 100)),
        )

    # ---- mail ----
    mail = None
    m = _section(raw, "mail")
    if m is not None:
        smtp = None
        s = _section(m, "smtp")
        if s is not None:
            smtp = SmtpConfig(
                host=str(s["host"]),
                port=int(s.get("port", 587)),
                username=_opt_str(s.get("username")),
                password=_opt_str(s.get("password")),
                starttls=bool(s.get("starttls", True)),
                timeout_s=float(s.get("timeout_s", 10.0)),
            )
        mail = MailConfig(
            sender=str(m["from"]),
            reply_to=_opt_str(m.get("reply_to")),
            bcc=_opt_str(m.get("bcc")),
            smtp=smtp,
            remote_sender_url=_opt_str(m.get("remote_sender_url")),
            secret_key=_opt_str(m.get("secret_key")),
            timeout_s=float(m.get("timeout_s", 5.0)),
        )

    # ---- twilio ----
    twilio = None
    t = _section(raw, "twilio")
    if t is not None:
        twilio = TwilioConfig(
            account_sid=str(t["account_sid"]),
            auth_token=str(t["auth_token"]),
            from_number=str(t["from_number"]),
            voice=str(t.get("voice", "alice")),
            language=str(t.get("language", "pl-PL")),
        )

    # ---- webhook ----
    webhook = None
    w = _section(raw, "webhook")
    if w is not None and w.get("url"):
        webhook = WebhookConfig(
            url=str(w["url"]),
            auth_header=_opt_str(w.get("auth_header")),
            timeout_s=float(w.get("timeout_s", 2.0)),
            verify_tls=bool(w.get("verify_tls", True)),
            min_level=str(w.get("min_level", "info")).lower(),
        )

    # ---- seed data ----
    users = [parse_user(u) for u in raw.get("users") or []]
    alarms = [parse_alarm(a) for a in raw.get("alarms") or []]

    return AppConfig(
        logging=logging_cfg,
        dispatcher=dispatcher,
        gammu=gammu,
        mail=mail,
        twilio=twilio,
        webhook=webhook,
        users=users,
        alarms=alarms,
    )
