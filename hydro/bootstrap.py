from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from hydro.channels.gammu_sms import GammuSmsChannel
from hydro.channels.mail_sender import build_mail_channel
from hydro.channels.twilio_call import TwilioCallChannel
from hydro.core.actions.dispatcher import ActionDispatcher
from hydro.core.alarm.alarm_base import ConditionFacts
from hydro.core.alarm.state_machine import AlarmStateMachine
from hydro.core.config.yaml_config import AppConfig, load_app_config
from hydro.core.recipients.user_resolver import UserResolver
from hydro.core.state.alarm_store import InMemoryAlarmRepository
from hydro.core.state.event_store import EventStore
from hydro.core.state.user_directory import InMemoryUserDirectory
from hydro.notification.notification_thread import NotificationWorkerThread
from hydro.notification.webhook_notifier import WebhookConfig, WebhookNotifier
from hydro.runtime.app_runtime import AppRuntime
from hydro.runtime.event_bus import EventBus
from hydro.services.alarm_service import AlarmService


@dataclass(frozen=True)
class AlarmWiring:
    """Everything an entrypoint needs to run the alarm system."""
    config: AppConfig
    repository: InMemoryAlarmRepository
    users: InMemoryUserDirectory
    facts: ConditionFacts
    events: EventStore
    service: AlarmService
    runtime: AppRuntime


def build_notifier(cfg: AppConfig) -> Optional[NotificationWorkerThread]:
    if cfg.webhook is None:
        return None

    auth_header = cfg.webhook.auth_header
    if auth_header and not auth_header.startswith("Bearer "):
        auth_header = f"Bearer {auth_header}"

    return NotificationWorkerThread(
        notifiers=[
            WebhookNotifier(
                WebhookConfig(
                    url=cfg.webhook.url,
                    auth_header=auth_header,
                    timeout_s=cfg.webhook.timeout_s,
                    verify_tls=cfg.webhook.verify_tls,
                    min_level=cfg.webhook.min_level,
                )
            )
        ]
    )


def build_dispatcher(cfg: AppConfig, users: InMemoryUserDirectory, bus: EventBus) -> ActionDispatcher:
    return ActionDispatcher(
        resolver=UserResolver(users),
        events=bus,
        sms=GammuSmsChannel(cfg.gammu) if cfg.gammu is not None else None,
        mail=build_mail_channel(cfg.mail),
        call=TwilioCallChannel(cfg.twilio) if cfg.twilio is not None else None,
        max_workers=cfg.dispatcher.max_workers,
    )


def build_alarm_system(config_path: Optional[str] = None) -> AlarmWiring:
    cfg = load_app_config(config_path)

    # --- STATE ---
    repository = InMemoryAlarmRepository()
    repository.load(cfg.alarms)
    users = InMemoryUserDirectory()
    users.load(cfg.users)
    events = EventStore()
    facts = ConditionFacts()

    # --- EVENT BUS ---
    bus = EventBus()

    # --- ACTIONS ---
    dispatcher = build_dispatcher(cfg, users, bus)

    # --- SERVICE ---
    service = AlarmService(
        repository=repository,
        state_machine=AlarmStateMachine(repository),
        dispatcher=dispatcher,
        evaluator=facts,
        events=bus,
    )

    # --- RUNTIME ---
    runtime = AppRuntime(
        service=service,
        facts=facts,
        dispatcher=dispatcher,
        bus=bus,
        event_store=events,
        notifier=build_notifier(cfg),
        sms=dispatcher.sms if isinstance(dispatcher.sms, GammuSmsChannel) else None,
        notify_min_level=cfg.webhook.min_level if cfg.webhook is not None else "info",
    )

    return AlarmWiring(
        config=cfg,
        repository=repository,
        users=users,
        facts=facts,
        events=events,
        service=service,
        runtime=runtime,
    )
